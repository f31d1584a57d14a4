"""Trainer availability: window resolution, conflict checks and free slots.

The pure functions at the top of this module hold the scheduling rules and
know nothing about the database. ``AvailabilityService`` loads trainer data,
feeds it through them and handles availability edits.
"""
import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitcoach.config.settings import settings
from fitcoach.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationFailedException,
)
from fitcoach.domains.schedule.intervals import (
    TimeWindow,
    date_range,
    ensure_utc,
    local_date_of,
    local_midnight,
    overlaps,
    parse_hhmm,
    session_interval,
    window_bounds,
)
from fitcoach.domains.schedule.models import (
    SessionStatus,
    TrainerAvailability,
    TrainerAvailabilityOverride,
    TrainingSession,
)
from fitcoach.domains.users.models import User, UserRole

logger = logging.getLogger(__name__)

MIN_SESSION_DURATION_MINUTES = 30
MAX_SESSION_DURATION_MINUTES = 240

Interval = tuple[datetime, datetime]


@dataclass(frozen=True)
class AvailabilitySnapshot:
    """A trainer's declared availability.

    Recurring windows and date overrides are kept as two separate mappings;
    they are never merged.
    """

    trainer_id: uuid.UUID
    recurring: Mapping[int, tuple[TimeWindow, ...]] = field(default_factory=dict)
    overrides: Mapping[date, tuple[TimeWindow, ...]] = field(default_factory=dict)


# ==================== Pure scheduling rules ====================

def resolve_windows(availability: AvailabilitySnapshot, target_date: date) -> list[TimeWindow]:
    """Open windows for ``target_date``, independent of bookings.

    An override for the date wins outright, even when it is empty.
    """
    if target_date in availability.overrides:
        return list(availability.overrides[target_date])
    return list(availability.recurring.get(target_date.weekday(), ()))


def fits_declared_window(
    availability: AvailabilitySnapshot,
    start: datetime,
    end: datetime,
    tz: tzinfo,
) -> bool:
    """True if ``[start, end)`` lies entirely inside one window of its local day."""
    day = local_date_of(start, tz)
    for window in resolve_windows(availability, day):
        window_start, window_end = window_bounds(day, window, tz)
        if start >= window_start and end <= window_end:
            return True
    return False


def check_candidate(
    availability: AvailabilitySnapshot,
    booked: Iterable[Interval],
    start: datetime,
    end: datetime,
    tz: tzinfo,
) -> bool:
    """Admissibility of a candidate interval against bookings and windows."""
    for booked_start, booked_end in booked:
        if overlaps(start, end, booked_start, booked_end):
            return False
    return fits_declared_window(availability, start, end, tz)


def free_slots_for_date(
    availability: AvailabilitySnapshot,
    target_date: date,
    booked: Iterable[Interval],
    tz: tzinfo,
    granularity_minutes: int = 30,
    slot_minutes: int | None = None,
) -> list[datetime]:
    """Start instants of free sub-slots on ``target_date``.

    Candidates step by ``granularity_minutes`` from each window start and are
    ``slot_minutes`` long (defaults to the granularity). A candidate is free
    when it fits in its window and overlaps no booked interval.
    """
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be positive")

    booked = list(booked)
    step = timedelta(minutes=granularity_minutes)
    length = timedelta(minutes=slot_minutes or granularity_minutes)

    slots: set[datetime] = set()
    for window in resolve_windows(availability, target_date):
        window_start, window_end = window_bounds(target_date, window, tz)
        current = window_start
        while current + length <= window_end:
            slot_end = current + length
            if not any(overlaps(current, slot_end, b_start, b_end) for b_start, b_end in booked):
                slots.add(current)
            current += step
    return sorted(slots)


def free_slots_for_range(
    availability: AvailabilitySnapshot,
    start_date: date,
    end_date: date,
    booked: Iterable[Interval],
    tz: tzinfo,
    granularity_minutes: int = 30,
    slot_minutes: int | None = None,
) -> dict[date, list[datetime]]:
    """Free slots per date over an inclusive range; empty dates are omitted."""
    booked = list(booked)
    result: dict[date, list[datetime]] = {}
    for day in date_range(start_date, end_date):
        if not resolve_windows(availability, day):
            continue
        slots = free_slots_for_date(
            availability, day, booked, tz,
            granularity_minutes=granularity_minutes,
            slot_minutes=slot_minutes,
        )
        if slots:
            result[day] = slots
    return result


def normalize_windows(windows: Iterable[TimeWindow | dict]) -> tuple[TimeWindow, ...]:
    """Validate windows and return them as zero-padded HH:MM, ordered by start."""
    normalized = []
    for raw in windows:
        window = raw if isinstance(raw, TimeWindow) else TimeWindow.from_dict(raw)
        try:
            start = parse_hhmm(window.start)
            end = parse_hhmm(window.end)
        except ValueError as e:
            raise ValidationFailedException(str(e), code="invalid_window")
        if start >= end:
            raise ValidationFailedException(
                f"Window {window.start}-{window.end} must end after it starts",
                code="invalid_window",
            )
        normalized.append(TimeWindow(start=start.strftime("%H:%M"), end=end.strftime("%H:%M")))
    return tuple(sorted(normalized, key=lambda w: w.start))


# ==================== Database-backed service ====================

class AvailabilityService:
    """Availability queries and edits for a single operating timezone."""

    def __init__(self, db: AsyncSession, tz: ZoneInfo | None = None):
        self.db = db
        self.tz = tz or settings.operating_zone

    async def get_trainer(self, trainer_id: uuid.UUID) -> User | None:
        """Get an active trainer by ID."""
        result = await self.db.execute(
            select(User).where(
                and_(
                    User.id == trainer_id,
                    User.role == UserRole.TRAINER,
                    User.is_active == True,  # noqa: E712
                )
            )
        )
        return result.scalar_one_or_none()

    async def load_availability(self, trainer_id: uuid.UUID) -> AvailabilitySnapshot | None:
        """Load a trainer's recurring windows and overrides, or None if no such trainer."""
        if await self.get_trainer(trainer_id) is None:
            return None

        result = await self.db.execute(
            select(TrainerAvailability)
            .where(TrainerAvailability.trainer_id == trainer_id)
            .order_by(TrainerAvailability.day_of_week, TrainerAvailability.start_time)
        )
        recurring: dict[int, list[TimeWindow]] = {}
        for row in result.scalars().all():
            recurring.setdefault(row.day_of_week, []).append(
                TimeWindow(start=row.start_time, end=row.end_time)
            )

        result = await self.db.execute(
            select(TrainerAvailabilityOverride)
            .where(TrainerAvailabilityOverride.trainer_id == trainer_id)
        )
        overrides = {
            row.specific_date: tuple(TimeWindow.from_dict(w) for w in (row.windows or []))
            for row in result.scalars().all()
        }

        return AvailabilitySnapshot(
            trainer_id=trainer_id,
            recurring={day: tuple(windows) for day, windows in recurring.items()},
            overrides=overrides,
        )

    async def get_booked_intervals(
        self,
        trainer_id: uuid.UUID,
        range_start: datetime,
        range_end: datetime,
        exclude_session_id: uuid.UUID | None = None,
    ) -> list[Interval]:
        """Intervals of the trainer's scheduled sessions that may touch the range.

        Only ``scheduled`` sessions block time; requested and pending ones never do.
        """
        lookback = timedelta(minutes=MAX_SESSION_DURATION_MINUTES)
        query = select(TrainingSession).where(
            and_(
                TrainingSession.trainer_id == trainer_id,
                TrainingSession.status == SessionStatus.SCHEDULED,
                TrainingSession.scheduled_date >= ensure_utc(range_start) - lookback,
                TrainingSession.scheduled_date < ensure_utc(range_end),
            )
        )
        if exclude_session_id is not None:
            query = query.where(TrainingSession.id != exclude_session_id)

        result = await self.db.execute(query)
        return [
            session_interval(s.scheduled_date, s.duration_minutes)
            for s in result.scalars().all()
        ]

    async def _booked_for_days(self, trainer_id: uuid.UUID, start_date: date, end_date: date) -> list[Interval]:
        return await self.get_booked_intervals(
            trainer_id,
            local_midnight(start_date, self.tz),
            local_midnight(end_date + timedelta(days=1), self.tz),
        )

    async def resolve_windows(self, trainer_id: uuid.UUID, target_date: date) -> list[TimeWindow]:
        """Resolved windows for a date; raises NotFound for unknown trainers."""
        availability = await self.load_availability(trainer_id)
        if availability is None:
            raise NotFoundException("Trainer not found", code="trainer_not_found")
        return resolve_windows(availability, target_date)

    async def is_available(
        self,
        trainer_id: uuid.UUID,
        candidate_start: datetime,
        duration_minutes: int,
        exclude_session_id: uuid.UUID | None = None,
    ) -> bool:
        """Whether the trainer can take a session at ``candidate_start``.

        Returns False (never raises) for unknown trainers: with no trainer
        there is no availability.
        """
        availability = await self.load_availability(trainer_id)
        if availability is None:
            logger.info("Availability check for unknown trainer %s", trainer_id)
            return False

        start, end = session_interval(candidate_start, duration_minutes)
        booked = await self.get_booked_intervals(
            trainer_id, start, end, exclude_session_id=exclude_session_id,
        )
        available = check_candidate(availability, booked, start, end, self.tz)
        logger.debug(
            "Trainer %s %s for %s +%dmin",
            trainer_id, "available" if available else "unavailable", start.isoformat(), duration_minutes,
        )
        return available

    async def get_free_slots(
        self,
        trainer_id: uuid.UUID,
        target_date: date,
        granularity_minutes: int | None = None,
        slot_minutes: int | None = None,
    ) -> list[datetime]:
        """Free slot start times for one date (empty for unknown trainers)."""
        availability = await self.load_availability(trainer_id)
        if availability is None:
            return []
        booked = await self._booked_for_days(trainer_id, target_date, target_date)
        return free_slots_for_date(
            availability, target_date, booked, self.tz,
            granularity_minutes=granularity_minutes or settings.SLOT_GRANULARITY_MINUTES,
            slot_minutes=slot_minutes,
        )

    async def get_free_slots_for_range(
        self,
        trainer_id: uuid.UUID,
        start_date: date,
        end_date: date,
        granularity_minutes: int | None = None,
        slot_minutes: int | None = None,
    ) -> dict[date, list[datetime]]:
        """Free slots per date over ``[start_date, end_date]``."""
        if end_date < start_date:
            raise ValidationFailedException("end_date must not be before start_date", code="invalid_range")
        if (end_date - start_date).days + 1 > settings.MAX_SLOT_RANGE_DAYS:
            raise ValidationFailedException(
                f"Date range is limited to {settings.MAX_SLOT_RANGE_DAYS} days",
                code="range_too_long",
            )

        availability = await self.load_availability(trainer_id)
        if availability is None:
            return {}
        booked = await self._booked_for_days(trainer_id, start_date, end_date)
        return free_slots_for_range(
            availability, start_date, end_date, booked, self.tz,
            granularity_minutes=granularity_minutes or settings.SLOT_GRANULARITY_MINUTES,
            slot_minutes=slot_minutes,
        )

    # Availability edits

    async def _require_availability(self, trainer_id: uuid.UUID) -> AvailabilitySnapshot:
        availability = await self.load_availability(trainer_id)
        if availability is None:
            raise NotFoundException("Trainer not found", code="trainer_not_found")
        return availability

    async def _ensure_sessions_still_fit(self, candidate: AvailabilitySnapshot, now: datetime | None = None) -> None:
        """Reject edits that would leave an upcoming scheduled session outside every window."""
        now = ensure_utc(now or datetime.now(timezone.utc))
        result = await self.db.execute(
            select(TrainingSession).where(
                and_(
                    TrainingSession.trainer_id == candidate.trainer_id,
                    TrainingSession.status == SessionStatus.SCHEDULED,
                    TrainingSession.scheduled_date >= now,
                )
            )
        )
        for session in result.scalars().all():
            start, end = session_interval(session.scheduled_date, session.duration_minutes)
            if not fits_declared_window(candidate, start, end, self.tz):
                raise ConflictException(
                    "New availability conflicts with an existing scheduled session",
                    code="availability_orphans_session",
                    details={
                        "session_id": str(session.id),
                        "scheduled_date": start.isoformat(),
                    },
                )

    async def replace_availability(
        self,
        trainer_id: uuid.UUID,
        recurring: Mapping[int, Iterable[TimeWindow | dict]],
        overrides: Mapping[date, Iterable[TimeWindow | dict]],
    ) -> AvailabilitySnapshot:
        """Replace all recurring windows and overrides of a trainer."""
        await self._require_availability(trainer_id)

        for day in recurring:
            if not 0 <= day <= 6:
                raise ValidationFailedException(
                    f"day_of_week must be 0 (Monday) to 6 (Sunday), got {day}",
                    code="invalid_day_of_week",
                )

        candidate = AvailabilitySnapshot(
            trainer_id=trainer_id,
            recurring={day: normalize_windows(w) for day, w in recurring.items()},
            overrides={day: normalize_windows(w) for day, w in overrides.items()},
        )
        await self._ensure_sessions_still_fit(candidate)

        await self.db.execute(
            delete(TrainerAvailability).where(TrainerAvailability.trainer_id == trainer_id)
        )
        await self.db.execute(
            delete(TrainerAvailabilityOverride).where(TrainerAvailabilityOverride.trainer_id == trainer_id)
        )
        for day, windows in candidate.recurring.items():
            for window in windows:
                self.db.add(TrainerAvailability(
                    trainer_id=trainer_id,
                    day_of_week=day,
                    start_time=window.start,
                    end_time=window.end,
                ))
        for day, windows in candidate.overrides.items():
            self.db.add(TrainerAvailabilityOverride(
                trainer_id=trainer_id,
                specific_date=day,
                windows=[w.to_dict() for w in windows],
            ))

        await self.db.commit()
        logger.info(
            "Replaced availability for trainer %s (%d weekdays, %d overrides)",
            trainer_id, len(candidate.recurring), len(candidate.overrides),
        )
        return candidate

    async def set_override(
        self,
        trainer_id: uuid.UUID,
        specific_date: date,
        windows: Iterable[TimeWindow | dict],
    ) -> AvailabilitySnapshot:
        """Create or replace the override for one date (empty windows = closed)."""
        current = await self._require_availability(trainer_id)
        normalized = normalize_windows(windows)
        candidate = AvailabilitySnapshot(
            trainer_id=trainer_id,
            recurring=current.recurring,
            overrides={**current.overrides, specific_date: normalized},
        )
        await self._ensure_sessions_still_fit(candidate)

        result = await self.db.execute(
            select(TrainerAvailabilityOverride).where(
                and_(
                    TrainerAvailabilityOverride.trainer_id == trainer_id,
                    TrainerAvailabilityOverride.specific_date == specific_date,
                )
            )
        )
        override = result.scalar_one_or_none()
        if override is None:
            override = TrainerAvailabilityOverride(trainer_id=trainer_id, specific_date=specific_date)
            self.db.add(override)
        override.windows = [w.to_dict() for w in normalized]

        await self.db.commit()
        return candidate

    async def delete_override(self, trainer_id: uuid.UUID, specific_date: date) -> AvailabilitySnapshot:
        """Remove a date override so the recurring pattern applies again."""
        current = await self._require_availability(trainer_id)
        if specific_date not in current.overrides:
            raise NotFoundException("No override for this date", code="override_not_found")

        candidate = AvailabilitySnapshot(
            trainer_id=trainer_id,
            recurring=current.recurring,
            overrides={d: w for d, w in current.overrides.items() if d != specific_date},
        )
        await self._ensure_sessions_still_fit(candidate)

        await self.db.execute(
            delete(TrainerAvailabilityOverride).where(
                and_(
                    TrainerAvailabilityOverride.trainer_id == trainer_id,
                    TrainerAvailabilityOverride.specific_date == specific_date,
                )
            )
        )
        await self.db.commit()
        return candidate
