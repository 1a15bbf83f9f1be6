from sqlalchemy import Column, Text

from chatrelay.database import Base


class BotSetting(Base):
    __tablename__ = "bot_settings"

    section = Column(Text, primary_key=True)  # handoff, survey, responder
    key = Column(Text, primary_key=True)
    value = Column(Text)
