"""
Streaks API Router

Status reads and event intake for collaborators (dashboards, review UI,
social features).

Endpoints:
- GET /api/streaks/{user_id} - Streak status
- GET /api/streaks/{user_id}/weekly - Weekly totals
- PUT /api/streaks/{user_id}/timezone - Change the user's timezone
- POST /api/ratings - Submit an item rating
- GET /api/items/{item_id}/downgrade-impact - Effect of lowering a rating
- POST /api/stacks - Register a stack and its items
- GET /api/stacks/{stack_id} - Stack lifecycle status
- GET /api/stacks/{stack_id}/deletion-impact - Effect of deleting a stack
- DELETE /api/stacks/{stack_id} - Delete an unfinished stack
- POST /api/checks/{check_id}/outcome - Report a comprehension check attempt

Errors are raised as streak_engine.exceptions and rendered by the error
handling middleware.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from streak_engine.db.base import get_db
from streak_engine.models.streaks import (
    CheckOutcomeEvent,
    CheckOutcomeResult,
    DowngradeImpact,
    RatingEvent,
    RatingOutcome,
    StackCreate,
    StackDeletionImpact,
    StackStatusResponse,
    StreakStatus,
    TimezoneUpdate,
    WeeklyStatsResponse,
)
from streak_engine.services.streaks.repository import SqlStreakRepository
from streak_engine.services.streaks.service import StreakService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["streaks"])


# ===========================================
# Dependency Injection
# ===========================================


async def get_streak_service(
    db: AsyncSession = Depends(get_db),
) -> StreakService:
    """Get streak service."""
    return StreakService(SqlStreakRepository(db))


# ===========================================
# Streak Endpoints
# ===========================================


@router.get("/streaks/{user_id}", response_model=StreakStatus)
async def get_streak_status(
    user_id: str,
    service: StreakService = Depends(get_streak_service),
) -> StreakStatus:
    """
    Get a user's streak status.

    Day rollover and streak loss are applied at read time, so the status is
    current even if the user hasn't rated anything since.
    """
    return await service.get_streak_status(user_id)


@router.get("/streaks/{user_id}/weekly", response_model=WeeklyStatsResponse)
async def get_weekly_stats(
    user_id: str,
    service: StreakService = Depends(get_streak_service),
) -> WeeklyStatsResponse:
    """Get the current week's count, the 4-week average and cap status."""
    return await service.get_weekly_stats(user_id)


@router.put("/streaks/{user_id}/timezone", response_model=StreakStatus)
async def set_timezone(
    user_id: str,
    update: TimezoneUpdate,
    service: StreakService = Depends(get_streak_service),
) -> StreakStatus:
    """Change the IANA timezone the user's days are counted in."""
    return await service.set_timezone(user_id, update)


# ===========================================
# Rating Endpoints
# ===========================================


@router.post("/ratings", response_model=RatingOutcome)
async def submit_rating(
    event: RatingEvent,
    service: StreakService = Depends(get_streak_service),
) -> RatingOutcome:
    """
    Submit a 1-5 rating for an item.

    The server clock decides which day the rating counts for; the event
    timestamp is informational.
    """
    return await service.process_rating(event)


@router.get("/items/{item_id}/downgrade-impact", response_model=DowngradeImpact)
async def get_downgrade_impact(
    item_id: str,
    service: StreakService = Depends(get_streak_service),
) -> DowngradeImpact:
    """Warn before an item is rated below the mastery threshold."""
    return await service.get_downgrade_impact(item_id)


# ===========================================
# Stack Endpoints
# ===========================================


@router.post(
    "/stacks", response_model=StackStatusResponse, status_code=status.HTTP_201_CREATED
)
async def create_stack(
    request: StackCreate,
    service: StreakService = Depends(get_streak_service),
) -> StackStatusResponse:
    """Register a stack and its items."""
    return await service.create_stack(request)


@router.get("/stacks/{stack_id}", response_model=StackStatusResponse)
async def get_stack_status(
    stack_id: str,
    service: StreakService = Depends(get_streak_service),
) -> StackStatusResponse:
    """Get a stack's lifecycle status, including whether it is locked."""
    return await service.get_stack_status(stack_id)


@router.get("/stacks/{stack_id}/deletion-impact", response_model=StackDeletionImpact)
async def get_deletion_impact(
    stack_id: str,
    service: StreakService = Depends(get_streak_service),
) -> StackDeletionImpact:
    """Describe what deleting the stack would do to the streak."""
    return await service.get_deletion_impact(stack_id)


@router.delete("/stacks/{stack_id}", response_model=StackDeletionImpact)
async def delete_stack(
    stack_id: str,
    service: StreakService = Depends(get_streak_service),
) -> StackDeletionImpact:
    """Delete an unfinished stack. Completed stacks are kept as history."""
    return await service.delete_stack(stack_id)


# ===========================================
# Check Endpoints
# ===========================================


@router.post("/checks/{check_id}/outcome", response_model=CheckOutcomeResult)
async def record_check_outcome(
    check_id: str,
    event: CheckOutcomeEvent,
    service: StreakService = Depends(get_streak_service),
) -> CheckOutcomeResult:
    """Report a passed or failed comprehension check attempt."""
    return await service.record_check_outcome(check_id, event)
