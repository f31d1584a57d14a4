"""Placement of a workout plan's sessions, week by week.

Pure computation: nothing here touches the database. ``schedule_plan``
either returns every placement for the whole plan or raises before any of
them could be persisted.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

from fitcoach.core.exceptions import ValidationFailedException
from fitcoach.domains.schedule.availability import (
    MAX_SESSION_DURATION_MINUTES,
    MIN_SESSION_DURATION_MINUTES,
    AvailabilitySnapshot,
    Interval,
    free_slots_for_date,
)
from fitcoach.domains.schedule.intervals import (
    ensure_utc,
    local_date_of,
    local_midnight,
    session_interval,
)
from fitcoach.domains.schedule.models import SessionType

DAYS_PER_WEEK = 7


@dataclass(frozen=True)
class ExplicitSession:
    start: datetime
    duration_minutes: int = 60
    note: str | None = None
    session_type: SessionType = SessionType.TBD


@dataclass(frozen=True)
class WeekRequest:
    """Requested sessions for one plan week.

    ``sessions`` set means the caller picked exact times for the week;
    ``None`` lets the scheduler place them.
    """

    week_number: int
    session_count: int
    sessions: tuple[ExplicitSession, ...] | None = None

    @property
    def is_explicit(self) -> bool:
        return self.sessions is not None


@dataclass(frozen=True)
class Placement:
    week_number: int
    start: datetime
    duration_minutes: int
    needs_manual_scheduling: bool = False
    note: str | None = None
    session_type: SessionType = SessionType.TBD


def plan_week_count(start_date: date, end_date: date) -> int:
    """Number of 7-day buckets spanned by the plan, counted from ``start_date``."""
    return (end_date - start_date).days // DAYS_PER_WEEK + 1


def week_start_of(start_date: date, week_index: int) -> date:
    return start_date + timedelta(weeks=week_index)


def validate_plan_weeks(
    start_date: date,
    end_date: date,
    weeks: list[WeekRequest],
    today: date | None = None,
) -> None:
    if start_date >= end_date:
        raise ValidationFailedException("Start date must be before end date", code="invalid_date_range")
    if today is not None and start_date < today:
        raise ValidationFailedException(
            "Plan cannot start in the past",
            code="start_in_past",
            details={"start_date": start_date.isoformat(), "today": today.isoformat()},
        )
    if not weeks:
        raise ValidationFailedException("Weekly sessions data is required", code="weekly_sessions_required")

    expected = plan_week_count(start_date, end_date)
    if len(weeks) != expected:
        raise ValidationFailedException(
            "Weekly session count must match total weeks in the plan",
            code="week_count_mismatch",
            details={"expected_weeks": expected, "received_weeks": len(weeks)},
        )

    for index, week in enumerate(weeks):
        if week.week_number != index + 1:
            raise ValidationFailedException(
                f"Week numbers must run 1..{expected} in order",
                code="invalid_week_number",
                details={"position": index, "week_number": week.week_number},
            )
        if week.session_count < 1:
            raise ValidationFailedException(
                f"Week {week.week_number} must have at least one session",
                code="invalid_session_count",
            )


def _explicit_placements(
    week: WeekRequest, week_start: date, tz: tzinfo, now: datetime,
) -> list[Placement]:
    sessions = week.sessions or ()
    if len(sessions) != week.session_count:
        raise ValidationFailedException(
            f"Week {week.week_number} lists {len(sessions)} sessions but declares {week.session_count}",
            code="explicit_session_count_mismatch",
            details={"week_number": week.week_number},
        )

    week_end = week_start + timedelta(days=DAYS_PER_WEEK - 1)
    placements = []
    for session in sessions:
        if not MIN_SESSION_DURATION_MINUTES <= session.duration_minutes <= MAX_SESSION_DURATION_MINUTES:
            raise ValidationFailedException(
                f"Duration must be between {MIN_SESSION_DURATION_MINUTES} and "
                f"{MAX_SESSION_DURATION_MINUTES} minutes",
                code="invalid_duration",
                details={"week_number": week.week_number},
            )
        local_day = local_date_of(session.start, tz)
        if not week_start <= local_day <= week_end:
            raise ValidationFailedException(
                f"Session on {local_day.isoformat()} falls outside week {week.week_number} "
                f"({week_start.isoformat()} to {week_end.isoformat()})",
                code="session_outside_week",
                details={"week_number": week.week_number},
            )
        if ensure_utc(session.start) <= now:
            raise ValidationFailedException(
                "Cannot schedule a session in the past",
                code="start_in_past",
                details={"week_number": week.week_number},
            )
        placements.append(Placement(
            week_number=week.week_number,
            start=ensure_utc(session.start),
            duration_minutes=session.duration_minutes,
            note=session.note,
            session_type=session.session_type,
        ))
    return placements


def place_week(
    availability: AvailabilitySnapshot,
    week_number: int,
    week_start: date,
    session_count: int,
    booked: list[Interval],
    tz: tzinfo,
    granularity_minutes: int,
    duration_minutes: int,
    not_before: datetime | None = None,
) -> list[Placement]:
    """Auto-place ``session_count`` sessions within one week.

    Natural phase: walk the 7 days from ``week_start`` and take the first
    free slot of each day that starts after ``not_before``, at most one per
    day. Fallback phase: put whatever
    is still missing at local midnight on successive days from
    ``week_start``, flagged for manual scheduling. Natural placements are
    appended to ``booked``.
    """
    placements: list[Placement] = []

    for offset in range(DAYS_PER_WEEK):
        if len(placements) == session_count:
            break
        day = week_start + timedelta(days=offset)
        slots = free_slots_for_date(
            availability, day, booked, tz,
            granularity_minutes=granularity_minutes,
            slot_minutes=duration_minutes,
        )
        if not_before is not None:
            slots = [slot for slot in slots if ensure_utc(slot) > not_before]
        if not slots:
            continue
        start, end = session_interval(slots[0], duration_minutes)
        booked.append((start, end))
        placements.append(Placement(week_number=week_number, start=start, duration_minutes=duration_minutes))

    offset = 0
    while len(placements) < session_count:
        day = week_start + timedelta(days=offset % DAYS_PER_WEEK)
        placements.append(Placement(
            week_number=week_number,
            start=ensure_utc(local_midnight(day, tz)),
            duration_minutes=duration_minutes,
            needs_manual_scheduling=True,
        ))
        offset += 1

    return placements


def schedule_plan(
    availability: AvailabilitySnapshot,
    start_date: date,
    end_date: date,
    weeks: list[WeekRequest],
    booked: list[Interval],
    tz: tzinfo,
    granularity_minutes: int = 30,
    duration_minutes: int = 60,
    now: datetime | None = None,
) -> list[Placement]:
    """Compute placements for every week of a plan.

    Raises ValidationFailedException for the first invalid week; in that
    case no placements are returned at all. A plan may start today but not
    earlier, and nothing is placed at or before ``now``.
    """
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    validate_plan_weeks(start_date, end_date, weeks, today=local_date_of(now, tz))

    booked = list(booked)
    placements: list[Placement] = []
    for index, week in enumerate(weeks):
        week_start = week_start_of(start_date, index)
        if week.is_explicit:
            placements.extend(_explicit_placements(week, week_start, tz, now))
        else:
            placements.extend(place_week(
                availability, week.week_number, week_start, week.session_count,
                booked, tz, granularity_minutes, duration_minutes,
                not_before=now,
            ))
    return placements
