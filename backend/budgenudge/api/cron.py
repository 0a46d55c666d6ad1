"""Trigger endpoint for the periodic notification scan."""

from fastapi import APIRouter, Depends

from budgenudge.dependencies import verify_cron_secret
from budgenudge.schemas.scan import RunSummary
from budgenudge.services import scan_service

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post("/scan", response_model=RunSummary, dependencies=[Depends(verify_cron_secret)])
def trigger_scan():
    """
    Run one scan. Callers may overlap; the dedup ledger keeps every
    (user, template, day) to a single send.
    """
    return scan_service.run_scan()
