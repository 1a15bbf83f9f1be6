from sqlalchemy import Boolean, Column, Integer, Text

from chatrelay.database import Base


class SurveyQuestion(Base):
    __tablename__ = "survey_questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    position = Column(Integer, nullable=False, default=0)
    text = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
