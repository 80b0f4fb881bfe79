from .anonymized_record import AnonymizedRecord
from .background_job import BackgroundJob
from .consent_record import ConsentRecord
from .content import Answer, Forum, Question
from .privacy import BreachSeverity, BreachStatus, DataBreachReport, PrivacyAuditLog, PrivacySettingsRecord
from .provider import AIProvider
from .usage_log import UsageLog
from .user import User

__all__ = [
    "AIProvider",
    "AnonymizedRecord",
    "Answer",
    "BackgroundJob",
    "BreachSeverity",
    "BreachStatus",
    "ConsentRecord",
    "DataBreachReport",
    "Forum",
    "PrivacyAuditLog",
    "PrivacySettingsRecord",
    "Question",
    "UsageLog",
    "User",
]
