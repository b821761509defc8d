from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from scorekeeper.features.progress.service import progress_service

router = APIRouter()


@router.get("/v1/season/rank")
def get_season_rank(user_id: str = Query(..., min_length=1)):
    return progress_service.get_season_rank(user_id)


@router.get("/v1/season/leaderboard")
def get_season_leaderboard(
    season_id: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
):
    """Standings for season_id (the current season when omitted), best first."""
    return progress_service.get_season_leaderboard(season_id, limit)


@router.post("/v1/season/{season_id}/end")
def end_season(season_id: str):
    return progress_service.end_season(season_id)


@router.post("/v1/season/{season_id}/transition")
def apply_season_transition(season_id: str):
    """Seed season_id with starting points from last season's final ranks."""
    return progress_service.apply_season_transition(season_id)
