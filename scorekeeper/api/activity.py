from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from scorekeeper.features.progress.service import progress_service

router = APIRouter()


class ActivityEvent(BaseModel):
    user_id: str = Field(..., min_length=1)
    activity_type: str = Field(..., min_length=1)
    reference_id: Optional[str] = None


class SaleEvent(BaseModel):
    user_id: str = Field(..., min_length=1)
    policy_type: Optional[str] = None
    # client-generated; retries resend the same id
    sale_id: str = Field(..., min_length=1, max_length=64)
    customer_name: Optional[str] = None


class GoalBonusRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    bonus_type: Literal["individual", "team"]


@router.post("/v1/activity")
def log_activity(event: ActivityEvent):
    # unknown activity types are rejected by the service with a 400
    return progress_service.log_daily_activity(
        event.user_id,
        event.activity_type,
        reference_id=event.reference_id,
    )


@router.post("/v1/sales")
def log_sale(event: SaleEvent):
    return progress_service.log_sale(
        event.user_id,
        event.policy_type,
        sale_id=event.sale_id,
        customer_name=event.customer_name,
    )


@router.post("/v1/goals/bonus")
def apply_goal_bonus(request: GoalBonusRequest):
    return progress_service.apply_goal_bonus(request.user_id, request.bonus_type)


@router.get("/v1/sales/{user_id}")
def get_sale_feed(
    user_id: str,
    viewer_id: str = Query(..., min_length=1),
    relationship: Optional[str] = Query(default=None),
    days: int = Query(default=30, ge=1, le=366),
):
    return progress_service.get_sale_feed(user_id, viewer_id, relationship, days=days)
