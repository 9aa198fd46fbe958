from datetime import datetime, time, timezone

import pytest

from impcg_companion.modules.audit_trail import AuditAction
from impcg_companion.modules.partogram_tracker import (
    PartogramTracker,
    action_line_hours,
    alert_line_hours,
    detect_breach,
)
from impcg_companion.modules.schemas import LaborDataPoint, PartogramState
from impcg_companion.modules.storage import PARTOGRAM_KEY


@pytest.fixture
def tracker(store, audit, clock):
    return PartogramTracker(store, audit=audit, clock=clock)


def at(hour, minute=0):
    return datetime(2026, 3, 1, hour, minute, tzinfo=timezone.utc)


class TestLines:

    def test_action_line_starts_at_two_hours(self):
        assert action_line_hours(4) == 2
        assert action_line_hours(10) == 8

    def test_alert_line_starts_at_zero(self):
        assert alert_line_hours(4) == 0
        assert alert_line_hours(7) == 3

    def test_latent_phase_has_no_lines(self):
        assert action_line_hours(3) is None
        assert alert_line_hours(3.5) is None

    def test_latent_points_never_breach(self):
        points = [LaborDataPoint(dilation_cm=3, observed_at=at(0), hours_from_start=12)]
        assert not detect_breach(points)


class TestPartogramTracker:

    def test_first_observation_defines_origin(self, tracker):
        point = tracker.add_observation(4, "06:30")
        assert tracker.active_phase_start == at(6, 30)
        assert point.hours_from_start == 0

    def test_time_of_day_uses_clock_date(self, tracker):
        tracker.add_observation(5, time(9, 15))
        assert tracker.points[0].observed_at == at(9, 15)

    def test_normal_progress_does_not_breach(self, tracker):
        tracker.add_observation(4, "00:00")
        tracker.add_observation(10, "05:00")
        assert not tracker.breach_action_line

    def test_slow_progress_breaches(self, tracker):
        tracker.add_observation(4, "00:00")
        tracker.add_observation(6, "05:00")
        assert tracker.breach_action_line

    def test_earlier_entry_retimes_existing_points(self, tracker):
        tracker.add_observation(6, "02:00")
        tracker.add_observation(4, "00:00")

        points = tracker.points
        assert tracker.active_phase_start == at(0)
        assert [p.dilation_cm for p in points] == [4, 6]
        assert points[0].hours_from_start == 0
        assert points[1].hours_from_start == pytest.approx(2.0)

    def test_breach_rederived_after_retiming(self, tracker):
        tracker.add_observation(6, "05:00")
        assert not tracker.breach_action_line

        tracker.add_observation(4, "00:00")
        assert tracker.breach_action_line

    def test_equal_offsets_keep_entry_order(self, tracker):
        tracker.add_observation(4, "01:00")
        tracker.add_observation(5, "01:00")
        assert [p.dilation_cm for p in tracker.points] == [4, 5]

    def test_dilation_out_of_range_rejected(self, tracker, store):
        with pytest.raises(ValueError):
            tracker.add_observation(11, "01:00")
        assert PARTOGRAM_KEY not in store

    def test_observation_is_persisted_and_audited(self, tracker, store, audit):
        tracker.add_observation(4, "00:00")
        tracker.add_observation(6, "01:30")

        assert PARTOGRAM_KEY in store
        audit.record.assert_called_with(AuditAction.CLINICAL_ACTION, "Partogram Plot: 6cm at 1.50hrs")

    def test_state_survives_reload(self, tracker, store, clock):
        tracker.add_observation(4, "00:00")
        tracker.add_observation(6, "05:00")

        reloaded = PartogramTracker(store, clock=clock)
        reloaded.load()
        assert reloaded.active_phase_start == at(0)
        assert [p.dilation_cm for p in reloaded.points] == [4, 6]
        assert reloaded.breach_action_line

    def test_corrupt_state_loads_empty(self, store, clock):
        store.set(PARTOGRAM_KEY, "{not json")
        tracker = PartogramTracker(store, clock=clock)
        tracker.load()
        assert tracker.points == []
        assert tracker.active_phase_start is None

    def test_reset_requires_confirmation(self, tracker, store):
        tracker.add_observation(4, "00:00")
        assert tracker.reset() is False
        assert len(tracker.points) == 1

        assert tracker.reset(confirmed=True) is True
        assert tracker.points == []
        assert tracker.active_phase_start is None
        assert not tracker.breach_action_line
        assert PARTOGRAM_KEY not in store

    def test_naive_datetime_mixes_with_time_of_day(self, tracker):
        tracker.add_observation(4, datetime(2026, 3, 1, 0, 0))
        tracker.add_observation(6, "05:00")

        assert tracker.active_phase_start == at(0)
        assert tracker.points[1].hours_from_start == pytest.approx(5.0)
        assert tracker.breach_action_line

    def test_naive_stored_state_is_localized_on_load(self, store, clock):
        naive = datetime(2026, 3, 1, 0, 0)
        state = PartogramState(active_phase_start=naive, points=[
            LaborDataPoint(dilation_cm=4, observed_at=naive, hours_from_start=0),
        ])
        store.set(PARTOGRAM_KEY, state.model_dump_json())

        tracker = PartogramTracker(store, clock=clock)
        tracker.load()
        tracker.add_observation(5, "02:00")

        assert tracker.active_phase_start == at(0)
        assert [p.hours_from_start for p in tracker.points] == [0, pytest.approx(2.0)]
