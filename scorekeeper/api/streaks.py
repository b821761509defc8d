from __future__ import annotations

from fastapi import APIRouter, Query

from scorekeeper.features.progress.service import progress_service

router = APIRouter()


@router.get("/v1/streaks/status")
def get_streak_status(user_id: str = Query(..., min_length=1)):
    """Recompute streaks for today, award any new milestones, return the status."""
    return progress_service.get_streak_status(user_id)
