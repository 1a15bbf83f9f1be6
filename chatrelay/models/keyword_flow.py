from sqlalchemy import Column, Integer, Text

from chatrelay.database import Base


class KeywordFlow(Base):
    __tablename__ = "keyword_flows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    position = Column(Integer, nullable=False, default=0)
    keyword = Column(Text, nullable=False)
    answer = Column(Text)
    media_url = Column(Text)
