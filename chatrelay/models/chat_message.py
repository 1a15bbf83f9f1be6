from sqlalchemy import Column, Index, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP

from chatrelay.database import Base


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (Index("ix_chat_messages_phone_created_at", "phone", "created_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(Text, nullable=False)
    role = Column(Text, nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
