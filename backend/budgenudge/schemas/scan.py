"""Pydantic schemas for scan runs."""

from pydantic import BaseModel
from typing import Optional, List
from datetime import date, datetime
import enum


class UnitStatus(str, enum.Enum):
    """Outcome of one (user, template) unit."""
    sent = "sent"
    failed = "failed"
    skipped_dedup = "skipped_dedup"
    skipped_invalid = "skipped_invalid"
    aborted = "aborted"
    error = "error"


class UnitResult(BaseModel):
    user_id: str
    template_type: str
    status: UnitStatus
    log_id: Optional[str] = None
    detail: Optional[str] = None


class RunSummary(BaseModel):
    run_date: date
    started_at: datetime
    finished_at: Optional[datetime] = None
    corrected_predictions: int = 0
    deactivated_merchants: int = 0
    users_refreshed: int = 0
    users_skipped: int = 0
    units_total: int = 0
    sent: int = 0
    failed: int = 0
    skipped_dedup: int = 0
    skipped_invalid: int = 0
    aborted: int = 0
    errors: int = 0
    infrastructure_error: Optional[str] = None
    units: List[UnitResult] = []

    def record(self, result: UnitResult) -> None:
        self.units.append(result)
        counter = {
            UnitStatus.sent: "sent",
            UnitStatus.failed: "failed",
            UnitStatus.skipped_dedup: "skipped_dedup",
            UnitStatus.skipped_invalid: "skipped_invalid",
            UnitStatus.aborted: "aborted",
            UnitStatus.error: "errors",
        }[result.status]
        setattr(self, counter, getattr(self, counter) + 1)
