from chatrelay.models.blocked_number import BlockedNumber
from chatrelay.models.bot_setting import BotSetting
from chatrelay.models.chat_message import ChatMessage
from chatrelay.models.keyword_flow import KeywordFlow
from chatrelay.models.scheduled_message import ScheduledMessage
from chatrelay.models.survey_question import SurveyQuestion
from chatrelay.models.survey_response import SurveyResponse

__all__ = [
    "BlockedNumber",
    "BotSetting",
    "ChatMessage",
    "KeywordFlow",
    "ScheduledMessage",
    "SurveyQuestion",
    "SurveyResponse",
]
