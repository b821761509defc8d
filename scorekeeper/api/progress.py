from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from scorekeeper.features.progress.service import progress_service

router = APIRouter()


@router.get("/v1/progress/{user_id}")
def get_projected_progress(
    user_id: str,
    viewer_id: str = Query(..., min_length=1),
    relationship: Optional[str] = Query(default=None),
):
    """Progress for user_id filtered by what viewer_id may see.

    relationship is resolved from team membership when omitted.
    """
    return progress_service.get_projected_progress(user_id, viewer_id, relationship)
