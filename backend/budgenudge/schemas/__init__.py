"""
Pydantic schemas package.
"""

from budgenudge.schemas.recurring import (
    RecurringMerchantResponse,
    RecurringMerchantUpdate,
    DetectionCandidate,
    DetectionResponse,
    CorrectionResponse,
)
from budgenudge.schemas.pacing import (
    PacingRecordResponse,
    PacingSelectionRequest,
    AutoSelectRequest,
)
from budgenudge.schemas.notification import (
    NotificationLogResponse,
    NotificationHistoryResponse,
    RetryResponse,
    PreviewResponse,
)
from budgenudge.schemas.scan import (
    UnitStatus,
    UnitResult,
    RunSummary,
)

__all__ = [
    "RecurringMerchantResponse",
    "RecurringMerchantUpdate",
    "DetectionCandidate",
    "DetectionResponse",
    "CorrectionResponse",
    "PacingRecordResponse",
    "PacingSelectionRequest",
    "AutoSelectRequest",
    "NotificationLogResponse",
    "NotificationHistoryResponse",
    "RetryResponse",
    "PreviewResponse",
    "UnitStatus",
    "UnitResult",
    "RunSummary",
]
