"""
Database models package.
"""

from budgenudge.models.notification import NotificationLog, NotificationStatus, SourceEndpoint, TemplateType
from budgenudge.models.user import User, SmsPreference
from budgenudge.models.transaction import Transaction
from budgenudge.models.recurring import RecurringMerchant, FrequencyClass, PredictionSource
from budgenudge.models.pacing import PacingRecord, TrackedKeyType, SelectionSource, PaceStatus

__all__ = [
    "NotificationLog",
    "NotificationStatus",
    "SourceEndpoint",
    "TemplateType",
    "User",
    "SmsPreference",
    "Transaction",
    "RecurringMerchant",
    "FrequencyClass",
    "PredictionSource",
    "PacingRecord",
    "TrackedKeyType",
    "SelectionSource",
    "PaceStatus",
]
