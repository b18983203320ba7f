"""
Session state machine tests: start / stop / extend / reset and the
auto-stop sweep, driven with a fixed clock.
"""

from datetime import timedelta

import pytest

from billiard_pos import events
from billiard_pos.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from billiard_pos.services import session_service, table_service
from billiard_pos.services.table_service import get_table, open_session

from conftest import T0


def _at(seconds):
    return T0 + timedelta(seconds=seconds)


class TestStartSession:

    def test_start_marks_table_occupied(self, tables):
        session = session_service.start_session(1, "open", now=T0)

        assert session.is_open
        assert session.mode == "open"
        assert session.start_time == T0
        assert get_table(1).status == "occupied"

    def test_second_start_conflicts(self, tables):
        session_service.start_session(1, now=T0)

        with pytest.raises(ConflictError):
            session_service.start_session(1, now=_at(10))

        assert len(session_service.list_sessions(table_id=1)) == 1

    def test_countdown_requires_positive_duration(self, tables):
        with pytest.raises(ValidationError):
            session_service.start_session(1, "countdown", now=T0)
        with pytest.raises(ValidationError):
            session_service.start_session(1, "countdown", 0, now=T0)

        assert get_table(1).status == "available"

    def test_invalid_mode_rejected(self, tables):
        with pytest.raises(ValidationError):
            session_service.start_session(1, "weekly", now=T0)

    def test_duration_ignored_outside_countdown(self, tables):
        session = session_service.start_session(1, "hour", 1800, now=T0)
        assert session.countdown_duration is None

    def test_unknown_table(self, tables):
        with pytest.raises(NotFoundError):
            session_service.start_session(99, now=T0)

    def test_inactive_table_cannot_start(self, tables):
        session_service.start_session(4, now=T0)
        session_service.reset_table(4, now=_at(60))
        table_service.set_table_count(3)

        assert get_table(4).status == "inactive"
        with pytest.raises(InvalidStateError):
            session_service.start_session(4, now=_at(120))

    def test_start_publishes_table_change(self, tables):
        received = []

        def receiver(sender, **payload):
            received.append(payload["table"])

        with events.table_changed.connected_to(receiver):
            session_service.start_session(2, now=T0)

        assert len(received) == 1
        assert received[0]["id"] == 2
        assert received[0]["status"] == "occupied"
        assert received[0]["is_active"] is True


class TestStopSession:

    def test_open_time_stop_bills_tiered_cost(self, tables):
        session_service.start_session(1, "open", now=T0)

        result = session_service.stop_session(1, now=_at(5400))

        assert result["status"] == "stopped"
        assert result["total_minutes"] == 90
        assert result["cost"] == "250.00"
        assert result["session"]["end_time"] is not None
        assert get_table(1).status == "stopped"
        assert open_session(1) is None

    def test_duration_minutes_round_up(self, tables):
        session_service.start_session(1, now=T0)
        result = session_service.stop_session(1, now=_at(61))
        assert result["total_minutes"] == 2

    @pytest.mark.parametrize("seconds, minutes", [
        (0.5, 1),
        (60, 1),
        (60.5, 2),
        (119.999, 2),
    ])
    def test_duration_minutes_count_partial_seconds(self, tables, seconds, minutes):
        session = session_service.start_session(1, now=T0)

        result = session_service.stop_session(1, now=_at(seconds))

        assert result["total_minutes"] == minutes
        assert session_service.get_session(session.id).duration_minutes == minutes

    def test_reset_records_partial_minute(self, tables):
        session = session_service.start_session(1, now=T0)

        session_service.reset_table(1, now=_at(120.25))

        assert session_service.get_session(session.id).duration_minutes == 3

    def test_countdown_used_up_needs_checkout(self, tables):
        session_service.start_session(1, "countdown", 1800, now=T0)
        session_service.extend_session(1, 1800, now=_at(1500))

        result = session_service.stop_session(1, now=_at(3700))

        assert result["status"] == "needs_checkout"
        assert result["cost"] == "150.00"
        assert get_table(1).status == "needs_checkout"

    def test_countdown_stopped_early(self, tables):
        session_service.start_session(1, "countdown", 1800, now=T0)
        session_service.extend_session(1, 1800, now=_at(1500))

        result = session_service.stop_session(1, now=_at(3000))

        assert result["status"] == "stopped"
        assert result["cost"] == "150.00"

    def test_countdown_at_exact_allocation(self, tables):
        session_service.start_session(1, "countdown", 1800, now=T0)
        result = session_service.stop_session(1, now=_at(1800))
        assert result["status"] == "needs_checkout"

    def test_hour_mode_linear(self, tables):
        session_service.start_session(1, "hour", now=T0)
        result = session_service.stop_session(1, now=_at(1800))
        assert result["cost"] == "75.00"

    def test_stop_without_session(self, tables):
        with pytest.raises(InvalidStateError):
            session_service.stop_session(1, now=T0)

    def test_stop_twice(self, tables):
        session_service.start_session(1, now=T0)
        session_service.stop_session(1, now=_at(60))
        with pytest.raises(InvalidStateError):
            session_service.stop_session(1, now=_at(120))


class TestExtendSession:

    def test_extension_adds_time_not_cost(self, tables):
        session_service.start_session(1, "countdown", 1800, now=T0)

        session = session_service.extend_session(1, 900, now=_at(600))

        assert session.total_allocated_seconds == 2700
        assert len(session.extensions) == 1
        assert session.extensions[0].added_duration == 900
        assert session.extensions[0].to_dict()["cost"] == "0.00"

    def test_extensions_accumulate(self, tables):
        session_service.start_session(1, "countdown", 600, now=T0)
        session_service.extend_session(1, 600, now=_at(100))
        session = session_service.extend_session(1, 1200, now=_at(200))
        assert session.total_allocated_seconds == 2400

    def test_only_countdown_can_extend(self, tables):
        session_service.start_session(1, "open", now=T0)
        with pytest.raises(InvalidStateError):
            session_service.extend_session(1, 600, now=_at(60))

    def test_extend_requires_open_session(self, tables):
        with pytest.raises(InvalidStateError):
            session_service.extend_session(1, 600, now=T0)

    def test_extend_rejects_non_positive(self, tables):
        session_service.start_session(1, "countdown", 600, now=T0)
        with pytest.raises(ValidationError):
            session_service.extend_session(1, 0, now=_at(60))
        with pytest.raises(ValidationError):
            session_service.extend_session(1, -60, now=_at(60))


class TestResetTable:

    def test_reset_closes_open_session(self, tables):
        session = session_service.start_session(1, now=T0)

        view = session_service.reset_table(1, now=_at(300))

        assert view["status"] == "available"
        assert view["is_active"] is False
        assert session_service.get_session(session.id).end_time == _at(300)

    def test_reset_is_idempotent(self, tables):
        first = session_service.reset_table(1, now=T0)
        second = session_service.reset_table(1, now=_at(10))

        assert first["status"] == second["status"] == "available"
        assert session_service.list_sessions(table_id=1) == []

    def test_reset_from_stopped(self, tables):
        session_service.start_session(1, now=T0)
        session_service.stop_session(1, now=_at(600))

        view = session_service.reset_table(1, now=_at(700))

        assert view["status"] == "available"
        # Table can be started again
        session_service.start_session(1, now=_at(800))


class TestAutoStop:

    def test_stops_expired_hour_and_countdown_sessions(self, tables):
        session_service.start_session(1, "hour", now=T0)
        session_service.start_session(2, "countdown", 1800, now=T0)
        session_service.start_session(3, "open", now=T0)
        session_service.start_session(4, "countdown", 7200, now=T0)

        stopped = session_service.auto_stop_expired(now=_at(3600))

        assert stopped == [1, 2]
        assert get_table(1).status == "stopped"
        assert get_table(2).status == "needs_checkout"
        assert get_table(3).status == "occupied"
        assert get_table(4).status == "occupied"

    def test_nothing_due(self, tables):
        session_service.start_session(1, "hour", now=T0)
        assert session_service.auto_stop_expired(now=_at(3599)) == []


class TestListSessions:

    def test_filters(self, tables):
        session_service.start_session(1, now=T0)
        session_service.stop_session(1, now=_at(600))
        session_service.start_session(2, now=_at(3600))

        assert len(session_service.list_sessions()) == 2
        assert [s.table_id for s in session_service.list_sessions(open_only=True)] == [2]
        assert [s.table_id for s in session_service.list_sessions(start=_at(1800))] == [2]
        assert [s.table_id for s in session_service.list_sessions(end=_at(1800))] == [1]
        assert len(session_service.list_sessions(limit=1)) == 1

    def test_get_session_not_found(self, tables):
        with pytest.raises(NotFoundError):
            session_service.get_session(12345)
