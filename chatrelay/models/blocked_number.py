from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.sql import func

from chatrelay.database import Base


class BlockedNumber(Base):
    __tablename__ = "blocked_numbers"

    phone = Column(Text, primary_key=True)
    reason = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
