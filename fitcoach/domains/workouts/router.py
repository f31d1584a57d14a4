"""Workout plan endpoints."""
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fitcoach.config.database import get_db
from fitcoach.core.exceptions import ForbiddenException
from fitcoach.domains.auth.dependencies import CurrentUser
from fitcoach.domains.schedule.schemas import SessionResponse

from .plan_service import PlanService
from .schemas import (
    ActivePlanResponse,
    WorkoutPlanCreate,
    WorkoutPlanCreateResponse,
    WorkoutPlanResponse,
)

router = APIRouter()


@router.post("/workout-plans", response_model=WorkoutPlanCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_workout_plan(
    request: WorkoutPlanCreate,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WorkoutPlanCreateResponse:
    """Create a plan for one of your members and generate its sessions."""
    if not current_user.is_trainer:
        raise ForbiddenException("Only trainers can create workout plans", code="trainer_only")

    plan, sessions = await PlanService(db).create_plan(
        trainer_id=current_user.id,
        member_id=request.member_id,
        goal=request.goal,
        start_date=request.start_date,
        end_date=request.end_date,
        weeks=[w.to_week_request() for w in request.weekly_sessions],
    )
    return WorkoutPlanCreateResponse(
        plan=WorkoutPlanResponse.model_validate(plan),
        sessions=[SessionResponse.model_validate(s) for s in sessions],
        needs_manual_scheduling=sum(1 for s in sessions if s.needs_manual_scheduling),
    )


@router.get("/workout-plans/active", response_model=ActivePlanResponse)
async def get_active_workout_plan(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ActivePlanResponse:
    """Get your active plan with the number of sessions completed so far."""
    if not current_user.is_member:
        raise ForbiddenException("Only members have workout plans", code="member_only")

    active = await PlanService(db).get_active_plan(current_user.id)
    return ActivePlanResponse(
        plan=WorkoutPlanResponse.model_validate(active.plan),
        completed_sessions=active.completed_sessions,
    )
