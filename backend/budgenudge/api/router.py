"""
Main API router.
"""

from fastapi import APIRouter
from budgenudge.api import cron, notifications, pacing, recurring

api_router = APIRouter()

api_router.include_router(recurring.router)
api_router.include_router(pacing.router)
api_router.include_router(notifications.router)
api_router.include_router(cron.router)
