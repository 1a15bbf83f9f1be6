from sqlalchemy import Column, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.sql import func

from chatrelay.database import Base


class ScheduledMessage(Base):
    __tablename__ = "scheduled_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    media_url = Column(Text)
    due_at = Column(Text, nullable=False)  # "DD/MM/YYYY HH:mm[:ss]", local time
    status = Column(Text, nullable=False, default="pending")  # pending, sent, failed
    last_error = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
