from decimal import Decimal

import pytest

from billiard_hall.models.billiard_tables import BilliardTable
from billiard_hall.models.game_sessions import GameSession
from billiard_hall.models.enums import SessionStatus, SessionType, TableStatus, ReservationStatus
from billiard_hall.services.sessions import SessionService
from billiard_hall.utils.errors import ValidationError, ConflictError, StateError, NotFoundError
from conftest import TUESDAY, at


@pytest.fixture
def service(db, settings):
    return SessionService(db, settings)


def active_count(db, table_id):
    return db.query(GameSession).filter(
        GameSession.table_id == table_id,
        GameSession.status == SessionStatus.ACTIVE
    ).count()


def test_start_walk_in(db, table, service):
    session = service.start({"table_id": table.id, "user_id": 5}, user_id=9, now=at(TUESDAY, 10))

    assert session.status == SessionStatus.ACTIVE
    assert session.session_type == SessionType.WALK_IN
    assert session.final_cost == Decimal("0")
    assert session.user_id == 5
    assert db.get(BilliardTable, table.id).status == TableStatus.OCCUPIED


def test_start_on_occupied_table(db, table, service):
    table.status = TableStatus.OCCUPIED
    db.commit()

    with pytest.raises(ConflictError) as exc:
        service.start({"table_id": table.id}, now=at(TUESDAY, 10))

    assert exc.value.code == "table_occupied"
    assert exc.value.message == "table is already occupied"
    assert db.query(GameSession).count() == 0
    assert db.get(BilliardTable, table.id).status == TableStatus.OCCUPIED


def test_start_on_table_under_maintenance(db, table, service):
    table.status = TableStatus.MAINTENANCE
    db.commit()

    with pytest.raises(ConflictError) as exc:
        service.start({"table_id": table.id}, now=at(TUESDAY, 10))

    assert exc.value.code == "table_maintenance"


def test_at_most_one_active_session_per_table(db, table, service):
    first = service.start({"table_id": table.id}, now=at(TUESDAY, 10))
    with pytest.raises(ConflictError):
        service.start({"table_id": table.id}, now=at(TUESDAY, 10, 5))
    assert active_count(db, table.id) == 1

    service.close(first.id, end_time=at(TUESDAY, 11))
    service.start({"table_id": table.id}, now=at(TUESDAY, 11, 5))
    assert active_count(db, table.id) == 1


def test_start_requires_table(service):
    with pytest.raises(ValidationError):
        service.start({}, now=at(TUESDAY, 10))


def test_unknown_table(service):
    with pytest.raises(NotFoundError):
        service.start({"table_id": 99}, now=at(TUESDAY, 10))


def test_walk_in_blocked_by_upcoming_reservation(db, table, service, make_reservation):
    make_reservation(at(TUESDAY, 11), at(TUESDAY, 12), status=ReservationStatus.CONFIRMED)

    with pytest.raises(ConflictError) as exc:
        service.start({"table_id": table.id}, now=at(TUESDAY, 10))

    assert exc.value.code == "upcoming_reservation"
    assert db.query(GameSession).count() == 0


def test_walk_in_allowed_when_reservation_is_far(table, service, make_reservation):
    make_reservation(at(TUESDAY, 13), at(TUESDAY, 14), status=ReservationStatus.CONFIRMED)

    session = service.start({"table_id": table.id}, now=at(TUESDAY, 10))

    assert session.status == SessionStatus.ACTIVE


def test_start_from_reservation(table, service, make_reservation):
    reservation = make_reservation(at(TUESDAY, 10), at(TUESDAY, 12), status=ReservationStatus.CONFIRMED, user_id=4)

    session = service.start({"table_id": table.id, "reservation_id": reservation.id}, now=at(TUESDAY, 10, 10))

    assert session.session_type == SessionType.FROM_RESERVATION
    assert session.reservation_id == reservation.id
    assert session.user_id == 4


def test_reservation_must_be_confirmed(table, service, make_reservation):
    reservation = make_reservation(at(TUESDAY, 10), at(TUESDAY, 12))

    with pytest.raises(StateError):
        service.start({"table_id": table.id, "reservation_id": reservation.id}, now=at(TUESDAY, 10))


def test_reservation_outside_checkin_window(table, service, make_reservation):
    reservation = make_reservation(at(TUESDAY, 10), at(TUESDAY, 12), status=ReservationStatus.CONFIRMED)

    with pytest.raises(ValidationError) as exc:
        service.start({"table_id": table.id, "reservation_id": reservation.id}, now=at(TUESDAY, 11))

    assert exc.value.code == "outside_checkin_window"


def test_reservation_used_only_once(table, service, make_reservation):
    reservation = make_reservation(at(TUESDAY, 10), at(TUESDAY, 12), status=ReservationStatus.CONFIRMED)
    first = service.start({"table_id": table.id, "reservation_id": reservation.id}, now=at(TUESDAY, 10))
    service.close(first.id, end_time=at(TUESDAY, 10, 15))

    with pytest.raises(ConflictError) as exc:
        service.start({"table_id": table.id, "reservation_id": reservation.id}, now=at(TUESDAY, 10, 20))

    assert exc.value.code == "session_exists"


def test_reservation_session_type_needs_reservation(table, service):
    with pytest.raises(ValidationError):
        service.start({"table_id": table.id, "session_type": "from_reservation"}, now=at(TUESDAY, 10))


def test_close_computes_final_cost(db, table, service):
    session = service.start({"table_id": table.id}, now=at(TUESDAY, 10))

    result = service.close(session.id, end_time=at(TUESDAY, 12, 30))

    assert result["pricing"]["final_price"] == Decimal("25.00")
    assert result["final_cost"] == Decimal("25.00")
    assert result["session"].status == SessionStatus.CLOSED
    assert result["session"].end_time == at(TUESDAY, 12, 30)
    assert db.get(BilliardTable, table.id).status == TableStatus.AVAILABLE


def test_close_adds_penalties(table, service):
    session = service.start({"table_id": table.id}, now=at(TUESDAY, 10))
    service.add_penalty(session.id, "15.00", "broken cue", applied_by=9)
    service.add_penalty(session.id, 5, "spilled drink", applied_by=9)

    result = service.close(session.id, end_time=at(TUESDAY, 12, 30))

    assert result["total_penalties"] == Decimal("20.00")
    assert len(result["penalties"]) == 2
    assert result["final_cost"] == Decimal("45.00")
    assert service.get(session.id).final_cost == Decimal("45.00")


def test_close_twice(table, service):
    session = service.start({"table_id": table.id}, now=at(TUESDAY, 10))
    service.close(session.id, end_time=at(TUESDAY, 11))

    with pytest.raises(StateError) as exc:
        service.close(session.id, end_time=at(TUESDAY, 12))

    assert exc.value.code == "session_not_active"


def test_close_before_start(table, service):
    session = service.start({"table_id": table.id}, now=at(TUESDAY, 10))

    with pytest.raises(ValidationError) as exc:
        service.close(session.id, end_time=at(TUESDAY, 9))

    assert exc.value.code == "invalid_end_time"
    assert service.get(session.id).status == SessionStatus.ACTIVE


def test_penalty_validation(table, service):
    session = service.start({"table_id": table.id}, now=at(TUESDAY, 10))

    with pytest.raises(ValidationError):
        service.add_penalty(session.id, 0, "nothing", applied_by=9)
    with pytest.raises(ValidationError):
        service.add_penalty(session.id, 10, "  ", applied_by=9)
    with pytest.raises(ValidationError):
        service.add_penalty(session.id, 10, "late", applied_by=None)
    assert service.list_penalties(session.id) == []


def test_penalty_on_closed_session(table, service):
    session = service.start({"table_id": table.id}, now=at(TUESDAY, 10))
    service.close(session.id, end_time=at(TUESDAY, 11))

    with pytest.raises(StateError) as exc:
        service.add_penalty(session.id, 10, "late", applied_by=9)

    assert exc.value.code == "session_closed"


def test_cancel_frees_table(db, table, service):
    session = service.start({"table_id": table.id}, now=at(TUESDAY, 10))

    cancelled = service.cancel(session.id, user_id=9)

    assert cancelled.status == SessionStatus.CANCELLED
    assert cancelled.final_cost == Decimal("0")
    assert db.get(BilliardTable, table.id).status == TableStatus.AVAILABLE
    with pytest.raises(StateError):
        service.cancel(session.id)


def test_estimate_includes_penalties(table, service):
    session = service.start({"table_id": table.id}, now=at(TUESDAY, 10))
    service.add_penalty(session.id, 5, "late", applied_by=9)

    estimate = service.estimate(session.id, now=at(TUESDAY, 11))

    assert estimate["pricing"]["final_price"] == Decimal("10.00")
    assert estimate["estimated_cost"] == Decimal("15.00")
    assert service.get(session.id).status == SessionStatus.ACTIVE


def test_list_active(table, service):
    session = service.start({"table_id": table.id}, now=at(TUESDAY, 10))

    assert [s.id for s in service.list_active()] == [session.id]


def test_close_at_the_start_instant_costs_nothing(service, make_session):
    session = make_session(at(TUESDAY, 10))

    result = service.close(session.id, end_time=at(TUESDAY, 10))

    assert result["final_cost"] == Decimal("0.00")
    assert result["session"].status == SessionStatus.CLOSED
