"""Availability, free-slot and training session endpoints."""
import logging
from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fitcoach.config.database import get_db
from fitcoach.config.settings import settings
from fitcoach.core.exceptions import ForbiddenException, NotFoundException
from fitcoach.domains.auth.dependencies import CurrentUser
from fitcoach.domains.users.models import User

from .availability import (
    MAX_SESSION_DURATION_MINUTES,
    MIN_SESSION_DURATION_MINUTES,
    AvailabilityService,
    AvailabilitySnapshot,
)
from .models import SessionStatus
from .schemas import (
    AvailabilityCheckResponse,
    AvailabilityResponse,
    AvailabilityUpdate,
    DateOverrideSchema,
    FreeSlotsRangeResponse,
    FreeSlotsResponse,
    OverrideUpdate,
    RecurringWindowSchema,
    ResolvedWindowsResponse,
    SessionCancel,
    SessionClaim,
    SessionComplete,
    SessionCreate,
    SessionProgressResponse,
    SessionRequestCreate,
    SessionReschedule,
    SessionRespond,
    SessionResponse,
    WindowSchema,
)
from .session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter()

Granularity = Annotated[int | None, Query(ge=5, le=240)]


def _require_trainer(user: User) -> None:
    if not user.is_trainer:
        raise ForbiddenException("Only trainers can do this", code="trainer_only")


def _require_member(user: User) -> None:
    if not user.is_member:
        raise ForbiddenException("Only members can do this", code="member_only")


def _require_owner(user: User, trainer_id: UUID) -> None:
    if not user.is_trainer or user.id != trainer_id:
        raise ForbiddenException("You can only manage your own availability", code="not_availability_owner")


def _to_response(snapshot: AvailabilitySnapshot) -> AvailabilityResponse:
    return AvailabilityResponse(
        trainer_id=snapshot.trainer_id,
        recurring=[
            RecurringWindowSchema(day_of_week=day, start=w.start, end=w.end)
            for day in sorted(snapshot.recurring)
            for w in snapshot.recurring[day]
        ],
        overrides=[
            DateOverrideSchema(
                date=day,
                windows=[WindowSchema(start=w.start, end=w.end) for w in snapshot.overrides[day]],
            )
            for day in sorted(snapshot.overrides)
        ],
    )


# ==================== Availability ====================

@router.get("/trainers/{trainer_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    trainer_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AvailabilityResponse:
    """Get a trainer's recurring windows and date overrides."""
    snapshot = await AvailabilityService(db).load_availability(trainer_id)
    if snapshot is None:
        raise NotFoundException("Trainer not found", code="trainer_not_found")
    return _to_response(snapshot)


@router.put("/trainers/{trainer_id}/availability", response_model=AvailabilityResponse)
async def replace_availability(
    trainer_id: UUID,
    request: AvailabilityUpdate,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AvailabilityResponse:
    """Replace all availability (owner only)."""
    _require_owner(current_user, trainer_id)

    recurring: dict[int, list] = {}
    for window in request.recurring:
        recurring.setdefault(window.day_of_week, []).append(window.to_window())
    overrides = {o.date: [w.to_window() for w in o.windows] for o in request.overrides}

    snapshot = await AvailabilityService(db).replace_availability(trainer_id, recurring, overrides)
    return _to_response(snapshot)


@router.put("/trainers/{trainer_id}/availability/overrides/{override_date}", response_model=AvailabilityResponse)
async def set_override(
    trainer_id: UUID,
    override_date: date,
    request: OverrideUpdate,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AvailabilityResponse:
    """Create or replace the override for one date (owner only)."""
    _require_owner(current_user, trainer_id)
    snapshot = await AvailabilityService(db).set_override(
        trainer_id, override_date, [w.to_window() for w in request.windows],
    )
    return _to_response(snapshot)


@router.delete("/trainers/{trainer_id}/availability/overrides/{override_date}", response_model=AvailabilityResponse)
async def delete_override(
    trainer_id: UUID,
    override_date: date,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AvailabilityResponse:
    """Remove a date override (owner only)."""
    _require_owner(current_user, trainer_id)
    snapshot = await AvailabilityService(db).delete_override(trainer_id, override_date)
    return _to_response(snapshot)


@router.get("/trainers/{trainer_id}/availability/windows", response_model=ResolvedWindowsResponse)
async def get_resolved_windows(
    trainer_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    target_date: Annotated[date, Query(alias="date")],
) -> ResolvedWindowsResponse:
    """Windows that apply on a date after override resolution."""
    service = AvailabilityService(db)
    snapshot = await service.load_availability(trainer_id)
    if snapshot is None:
        raise NotFoundException("Trainer not found", code="trainer_not_found")
    windows = await service.resolve_windows(trainer_id, target_date)
    return ResolvedWindowsResponse(
        trainer_id=trainer_id,
        date=target_date,
        windows=[WindowSchema(start=w.start, end=w.end) for w in windows],
        is_override=target_date in snapshot.overrides,
    )


@router.get("/trainers/{trainer_id}/availability/check", response_model=AvailabilityCheckResponse)
async def check_availability(
    trainer_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    start: Annotated[datetime, Query()],
    duration_minutes: Annotated[
        int, Query(ge=MIN_SESSION_DURATION_MINUTES, le=MAX_SESSION_DURATION_MINUTES)
    ] = settings.DEFAULT_SESSION_DURATION_MINUTES,
) -> AvailabilityCheckResponse:
    """Whether the trainer could take a session at ``start``."""
    available = await AvailabilityService(db).is_available(trainer_id, start, duration_minutes)
    return AvailabilityCheckResponse(
        trainer_id=trainer_id,
        start=start,
        duration_minutes=duration_minutes,
        available=available,
    )


@router.get("/trainers/{trainer_id}/slots", response_model=FreeSlotsResponse)
async def get_free_slots(
    trainer_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    target_date: Annotated[date, Query(alias="date")],
    granularity_minutes: Granularity = None,
) -> FreeSlotsResponse:
    """Free slot start times on one date."""
    granularity = granularity_minutes or settings.SLOT_GRANULARITY_MINUTES
    slots = await AvailabilityService(db).get_free_slots(trainer_id, target_date, granularity)
    return FreeSlotsResponse(
        trainer_id=trainer_id,
        date=target_date,
        granularity_minutes=granularity,
        slots=slots,
    )


@router.get("/trainers/{trainer_id}/slots/range", response_model=FreeSlotsRangeResponse)
async def get_free_slots_range(
    trainer_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    start_date: Annotated[date, Query()],
    end_date: Annotated[date, Query()],
    granularity_minutes: Granularity = None,
) -> FreeSlotsRangeResponse:
    """Free slots per date; dates without free slots are left out."""
    granularity = granularity_minutes or settings.SLOT_GRANULARITY_MINUTES
    days = await AvailabilityService(db).get_free_slots_for_range(
        trainer_id, start_date, end_date, granularity,
    )
    return FreeSlotsRangeResponse(
        trainer_id=trainer_id,
        start_date=start_date,
        end_date=end_date,
        granularity_minutes=granularity,
        days=days,
    )


# ==================== Sessions ====================

@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionCreate,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionResponse:
    """Book a scheduled session with one of your members (trainer only)."""
    _require_trainer(current_user)
    session = await SessionService(db).create_session(
        trainer_id=current_user.id,
        member_id=request.member_id,
        start=request.scheduled_date,
        duration_minutes=request.duration_minutes,
        session_type=request.session_type,
        note=request.note,
    )
    return SessionResponse.model_validate(session)


@router.post("/sessions/request", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def request_session(
    request: SessionRequestCreate,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionResponse:
    """Ask your trainer for a session (member only)."""
    _require_member(current_user)
    session = await SessionService(db).request_session(
        member_id=current_user.id,
        start=request.scheduled_date,
        duration_minutes=request.duration_minutes,
        session_type=request.session_type,
        note=request.note,
    )
    return SessionResponse.model_validate(session)


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: Annotated[SessionStatus | None, Query(alias="status")] = None,
) -> list[SessionResponse]:
    """List your sessions, soonest first."""
    service = SessionService(db)
    if current_user.is_trainer:
        sessions = await service.list_trainer_sessions(current_user.id, status_filter)
    else:
        sessions = await service.list_member_sessions(
            current_user.id, [status_filter] if status_filter else None,
        )
    return [SessionResponse.model_validate(s) for s in sessions]


@router.get("/sessions/progress", response_model=SessionProgressResponse)
async def get_session_progress(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    period: Annotated[str, Query()] = "week",
) -> SessionProgressResponse:
    """Completed training hours over the last week, month, or today."""
    _require_member(current_user)
    progress = await SessionService(db).get_progress(current_user.id, period)
    return SessionProgressResponse(**progress)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: UUID,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionResponse:
    """Get a session you take part in."""
    session = await SessionService(db).get_session(session_id)
    if session is None:
        raise NotFoundException("Session not found", code="session_not_found")
    if current_user.id not in (session.trainer_id, session.member_id):
        raise ForbiddenException("You do not take part in this session", code="not_session_party")
    return SessionResponse.model_validate(session)


@router.post("/sessions/{session_id}/claim", response_model=SessionResponse)
async def claim_session(
    session_id: UUID,
    request: SessionClaim,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionResponse:
    """Propose a time for a pending plan session (member only)."""
    _require_member(current_user)
    session = await SessionService(db).claim_session(
        current_user.id, session_id, request.scheduled_date, request.duration_minutes,
    )
    return SessionResponse.model_validate(session)


@router.post("/sessions/{session_id}/respond", response_model=SessionResponse)
async def respond_to_request(
    session_id: UUID,
    request: SessionRespond,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionResponse:
    """Approve or reject a requested session (trainer only)."""
    _require_trainer(current_user)
    session = await SessionService(db).respond_to_request(
        current_user.id, session_id, request.action.value,
    )
    return SessionResponse.model_validate(session)


@router.patch("/sessions/{session_id}/reschedule", response_model=SessionResponse)
async def reschedule_session(
    session_id: UUID,
    request: SessionReschedule,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionResponse:
    """Move a session to a new time (trainer only)."""
    _require_trainer(current_user)
    session = await SessionService(db).reschedule_session(
        current_user.id, session_id, request.scheduled_date, request.duration_minutes,
    )
    return SessionResponse.model_validate(session)


@router.post("/sessions/{session_id}/complete", response_model=SessionResponse)
async def complete_session(
    session_id: UUID,
    request: SessionComplete,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionResponse:
    """Mark a scheduled session as completed (trainer only)."""
    _require_trainer(current_user)
    session = await SessionService(db).complete_session(
        current_user.id,
        session_id,
        actual_hours_spent=request.actual_hours_spent,
        attended=request.attended,
        note=request.note,
    )
    return SessionResponse.model_validate(session)


@router.post("/sessions/{session_id}/cancel", response_model=SessionResponse)
async def cancel_session(
    session_id: UUID,
    request: SessionCancel,
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionResponse:
    """Cancel a session as its trainer or member."""
    session = await SessionService(db).cancel_session(current_user, session_id, request.reason)
    return SessionResponse.model_validate(session)
