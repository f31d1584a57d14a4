"""Tests for plan session placement."""
import uuid
from collections import Counter
from datetime import date, timedelta

import pytest

from fitcoach.core.exceptions import ValidationFailedException
from fitcoach.domains.schedule.availability import AvailabilitySnapshot
from fitcoach.domains.schedule.intervals import TimeWindow, ensure_utc, local_date_of
from fitcoach.domains.workouts.plan_scheduler import (
    ExplicitSession,
    WeekRequest,
    place_week,
    plan_week_count,
    schedule_plan,
)
from tests.conftest import LONDON, WINTER_MONDAY, utc

EMPTY = AvailabilitySnapshot(trainer_id=uuid.uuid4())


def weekdays(*days: int) -> AvailabilitySnapshot:
    return AvailabilitySnapshot(
        trainer_id=uuid.uuid4(),
        recurring={day: (TimeWindow("09:00", "12:00"),) for day in days},
    )


class TestPlanWeekCount:
    @pytest.mark.parametrize(
        "days,weeks",
        [(1, 1), (6, 1), (7, 2), (13, 2), (14, 3), (27, 4)],
    )
    def test_whole_week_buckets(self, days, weeks):
        assert plan_week_count(WINTER_MONDAY, WINTER_MONDAY + timedelta(days=days)) == weeks


class TestNaturalPlacement:
    def test_first_slot_of_each_day(self):
        placements = place_week(
            weekdays(0, 2, 4), 1, WINTER_MONDAY, 3, [], LONDON,
            granularity_minutes=30, duration_minutes=60,
        )

        assert [p.start for p in placements] == [
            utc(2030, 1, 7, 9), utc(2030, 1, 9, 9), utc(2030, 1, 11, 9),
        ]
        assert not any(p.needs_manual_scheduling for p in placements)

    def test_one_session_per_day(self):
        """A long window on one day still yields a single placement."""
        placements = place_week(
            weekdays(0), 1, WINTER_MONDAY, 2, [], LONDON,
            granularity_minutes=30, duration_minutes=60,
        )

        assert placements[0].start == utc(2030, 1, 7, 9)
        assert placements[0].needs_manual_scheduling is False
        assert placements[1].needs_manual_scheduling is True

    def test_skips_booked_slot(self):
        booked = [(utc(2030, 1, 7, 9), utc(2030, 1, 7, 10))]

        placements = place_week(
            weekdays(0), 1, WINTER_MONDAY, 1, booked, LONDON,
            granularity_minutes=30, duration_minutes=60,
        )

        assert placements[0].start == utc(2030, 1, 7, 10)

    def test_placements_are_added_to_booked(self):
        booked = []

        place_week(weekdays(0), 1, WINTER_MONDAY, 1, booked, LONDON, granularity_minutes=30, duration_minutes=60)

        assert booked == [(utc(2030, 1, 7, 9), utc(2030, 1, 7, 10))]


class TestFallbackPlacement:
    def test_no_availability_still_yields_count(self):
        placements = place_week(
            EMPTY, 1, WINTER_MONDAY, 3, [], LONDON,
            granularity_minutes=30, duration_minutes=60,
        )

        assert len(placements) == 3
        assert all(p.needs_manual_scheduling for p in placements)
        assert [p.start for p in placements] == [
            utc(2030, 1, 7, 0), utc(2030, 1, 8, 0), utc(2030, 1, 9, 0),
        ]

    def test_fallback_restarts_at_week_start(self):
        """Natural finds Wednesday only; fallback fills from Monday."""
        placements = place_week(
            weekdays(2), 1, WINTER_MONDAY, 3, [], LONDON,
            granularity_minutes=30, duration_minutes=60,
        )

        assert [p.start for p in placements] == [
            utc(2030, 1, 9, 9), utc(2030, 1, 7, 0), utc(2030, 1, 8, 0),
        ]

    def test_fallback_midnight_is_local(self):
        summer_monday = date(2030, 7, 1)

        placements = place_week(EMPTY, 1, summer_monday, 1, [], LONDON, granularity_minutes=30, duration_minutes=60)

        assert placements[0].start == utc(2030, 6, 30, 23)
        assert local_date_of(placements[0].start, LONDON) == summer_monday

    def test_more_sessions_than_days_stay_in_week(self):
        placements = place_week(EMPTY, 1, WINTER_MONDAY, 9, [], LONDON, granularity_minutes=30, duration_minutes=60)

        assert len(placements) == 9
        assert all(
            WINTER_MONDAY <= local_date_of(p.start, LONDON) <= WINTER_MONDAY + timedelta(days=6)
            for p in placements
        )


class TestSchedulePlan:
    def test_two_week_plan_scenario(self):
        """Monday start, Sunday-after-next end, two sessions per week."""
        end = WINTER_MONDAY + timedelta(days=13)
        weeks = [WeekRequest(1, 2), WeekRequest(2, 2)]

        placements = schedule_plan(weekdays(0, 3), WINTER_MONDAY, end, weeks, [], LONDON)

        assert len(placements) == 4
        assert Counter(p.week_number for p in placements) == {1: 2, 2: 2}

    def test_week_count_mismatch(self):
        end = WINTER_MONDAY + timedelta(days=13)

        with pytest.raises(ValidationFailedException) as exc_info:
            schedule_plan(EMPTY, WINTER_MONDAY, end, [WeekRequest(1, 2)], [], LONDON)

        assert exc_info.value.details == {"expected_weeks": 2, "received_weeks": 1}

    def test_start_must_precede_end(self):
        with pytest.raises(ValidationFailedException):
            schedule_plan(EMPTY, WINTER_MONDAY, WINTER_MONDAY, [WeekRequest(1, 1)], [], LONDON)

    def test_week_numbers_must_be_in_order(self):
        end = WINTER_MONDAY + timedelta(days=13)

        with pytest.raises(ValidationFailedException):
            schedule_plan(EMPTY, WINTER_MONDAY, end, [WeekRequest(2, 1), WeekRequest(1, 1)], [], LONDON)

    def test_explicit_week(self):
        end = WINTER_MONDAY + timedelta(days=6)
        explicit = WeekRequest(1, 2, sessions=(
            ExplicitSession(start=utc(2030, 1, 8, 18), duration_minutes=45, note="Legs"),
            ExplicitSession(start=utc(2030, 1, 10, 18)),
        ))

        placements = schedule_plan(EMPTY, WINTER_MONDAY, end, [explicit], [], LONDON)

        assert [p.start for p in placements] == [utc(2030, 1, 8, 18), utc(2030, 1, 10, 18)]
        assert placements[0].duration_minutes == 45
        assert placements[0].note == "Legs"
        assert not any(p.needs_manual_scheduling for p in placements)

    def test_explicit_count_mismatch(self):
        end = WINTER_MONDAY + timedelta(days=6)
        explicit = WeekRequest(1, 3, sessions=(ExplicitSession(start=utc(2030, 1, 8, 18)),))

        with pytest.raises(ValidationFailedException) as exc_info:
            schedule_plan(EMPTY, WINTER_MONDAY, end, [explicit], [], LONDON)

        assert exc_info.value.code == "explicit_session_count_mismatch"

    def test_explicit_session_outside_its_week(self):
        end = WINTER_MONDAY + timedelta(days=13)
        weeks = [
            WeekRequest(1, 1, sessions=(ExplicitSession(start=utc(2030, 1, 15, 18)),)),
            WeekRequest(2, 1),
        ]

        with pytest.raises(ValidationFailedException) as exc_info:
            schedule_plan(EMPTY, WINTER_MONDAY, end, weeks, [], LONDON)

        assert exc_info.value.code == "session_outside_week"

    def test_invalid_week_fails_whole_plan(self):
        """A bad second week means no placements at all, not a partial list."""
        end = WINTER_MONDAY + timedelta(days=13)
        weeks = [
            WeekRequest(1, 2),
            WeekRequest(2, 2, sessions=(ExplicitSession(start=utc(2030, 1, 15, 18)),)),
        ]

        with pytest.raises(ValidationFailedException):
            schedule_plan(weekdays(0, 1), WINTER_MONDAY, end, weeks, [], LONDON)

    def test_mid_week_start_uses_rolling_weeks(self):
        """Plan weeks run Thursday to Wednesday when the plan starts on a Thursday."""
        start = WINTER_MONDAY + timedelta(days=3)
        end = start + timedelta(days=7)
        weeks = [WeekRequest(1, 1), WeekRequest(2, 1)]

        placements = schedule_plan(weekdays(0), start, end, weeks, [], LONDON)

        assert [(p.week_number, ensure_utc(p.start)) for p in placements] == [
            (1, utc(2030, 1, 14, 9)),
            (2, utc(2030, 1, 21, 9)),
        ]

    def test_start_before_today_rejected(self):
        end = WINTER_MONDAY + timedelta(days=6)

        with pytest.raises(ValidationFailedException) as exc_info:
            schedule_plan(EMPTY, WINTER_MONDAY, end, [WeekRequest(1, 1)], [], LONDON, now=utc(2030, 1, 8, 9))

        assert exc_info.value.code == "start_in_past"

    def test_start_today_skips_passed_slots(self):
        end = WINTER_MONDAY + timedelta(days=6)

        placements = schedule_plan(
            weekdays(0), WINTER_MONDAY, end, [WeekRequest(1, 1)], [], LONDON, now=utc(2030, 1, 7, 9, 30),
        )

        assert placements[0].start == utc(2030, 1, 7, 10)
        assert placements[0].needs_manual_scheduling is False

    def test_explicit_session_in_past_rejected(self):
        end = WINTER_MONDAY + timedelta(days=6)
        explicit = WeekRequest(1, 1, sessions=(ExplicitSession(start=utc(2030, 1, 7, 8)),))

        with pytest.raises(ValidationFailedException) as exc_info:
            schedule_plan(EMPTY, WINTER_MONDAY, end, [explicit], [], LONDON, now=utc(2030, 1, 7, 9))

        assert exc_info.value.code == "start_in_past"
