from datetime import datetime, timedelta, timezone

import pytest

from billiard_hall.models.billiard_tables import BilliardTable
from billiard_hall.models.enums import TableStatus, ReservationStatus
from conftest import TUESDAY, at


def tomorrow_at(hour, minute=0):
    return (datetime.now() + timedelta(days=1)).replace(hour=hour, minute=minute, second=0, microsecond=0)


@pytest.fixture
def reservation_body(table):
    return {
        "user_id": 1,
        "table_id": table.id,
        "start_time": tomorrow_at(10).isoformat(),
        "end_time": tomorrow_at(12).isoformat(),
    }


def test_create_reservation(client, reservation_body):
    resp = client.post("/reservations", json=reservation_body)

    assert resp.status_code == 201
    data = resp.get_json()
    assert data["ok"] is True
    assert data["reservation"]["status"] == int(ReservationStatus.PENDING)
    assert data["reservation"]["status_label"] == "pending"


def test_create_reservation_outside_business_hours(client, reservation_body):
    reservation_body["start_time"] = tomorrow_at(7, 30).isoformat()
    reservation_body["end_time"] = tomorrow_at(9, 30).isoformat()

    resp = client.post("/reservations", json=reservation_body)

    assert resp.status_code == 400
    data = resp.get_json()
    assert data["ok"] is False
    assert data["reason"] == "outside_business_hours"
    assert data["message"] == "reservation must be between 09:00 and 23:00"


def test_overlapping_reservation_is_409(client, reservation_body):
    client.post("/reservations", json=reservation_body)
    reservation_body["user_id"] = 2

    resp = client.post("/reservations", json=reservation_body)

    assert resp.status_code == 409
    assert resp.get_json()["reason"] == "time_conflict"


def test_approve_and_reject(client, reservation_body):
    first = client.post("/reservations", json=reservation_body).get_json()["reservation"]
    reservation_body.update(start_time=tomorrow_at(14).isoformat(), end_time=tomorrow_at(15).isoformat())
    second = client.post("/reservations", json=reservation_body).get_json()["reservation"]

    approved = client.patch(f"/reservations/{first['id']}/approve", headers={"X-User-Id": "7"})
    rejected = client.patch(f"/reservations/{second['id']}/reject")

    assert approved.status_code == 200
    assert approved.get_json()["reservation"]["status"] == int(ReservationStatus.CONFIRMED)
    assert approved.get_json()["reservation"]["handled_by"] == 7
    assert rejected.get_json()["reservation"]["rejection_reason"] == "no reason specified"

    again = client.patch(f"/reservations/{first['id']}/approve")
    assert again.status_code == 409


def test_list_and_get_reservations(client, reservation_body):
    created = client.post("/reservations", json=reservation_body).get_json()["reservation"]

    listed = client.get("/reservations?status=pending").get_json()
    single = client.get(f"/reservations/{created['id']}")
    missing = client.get("/reservations/999")

    assert [r["id"] for r in listed["reservations"]] == [created["id"]]
    assert single.status_code == 200
    assert missing.status_code == 404
    assert missing.get_json()["reason"] == "reservation_not_found"


def test_available_slots(client, table, reservation_body):
    client.post("/reservations", json=reservation_body)
    day = tomorrow_at(0).date().isoformat()

    resp = client.get(f"/reservations/available-slots?table_id={table.id}&date={day}")

    assert resp.status_code == 200
    starts = [s["start_time"][11:16] for s in resp.get_json()["slots"]]
    assert "09:00" in starts
    assert "10:00" not in starts and "11:00" not in starts
    assert "12:00" in starts


def test_available_slots_requires_params(client):
    resp = client.get("/reservations/available-slots")

    assert resp.status_code == 400
    assert resp.get_json()["reason"] == "missing_fields"


def test_session_lifecycle(client, db, table):
    started = client.post("/sessions/start", json={"table_id": table.id, "session_type": "walk_in"})
    assert started.status_code == 201
    session_id = started.get_json()["session"]["id"]

    occupied = client.post("/sessions/start", json={"table_id": table.id})
    assert occupied.status_code == 409
    assert occupied.get_json()["reason"] == "table_occupied"
    assert occupied.get_json()["message"] == "table is already occupied"

    active = client.get("/sessions/active").get_json()["sessions"]
    assert [s["id"] for s in active] == [session_id]

    penalty = client.post(f"/sessions/{session_id}/penalties", json={"amount": 5, "reason": "late"},
                          headers={"X-User-Id": "3"})
    assert penalty.status_code == 201
    assert penalty.get_json()["penalty"]["applied_by"] == 3

    ended = client.post(f"/sessions/{session_id}/end", json={})
    assert ended.status_code == 200
    body = ended.get_json()
    assert body["session"]["status_label"] == "closed"
    assert body["total_penalties"] == 5.0
    assert body["final_cost"] == pytest.approx(body["pricing"]["final_price"] + 5.0)

    db.expire_all()
    assert db.get(BilliardTable, table.id).status == TableStatus.AVAILABLE


def test_session_estimate_and_cancel(client, table, make_session):
    session = make_session(datetime.now() - timedelta(hours=1))

    estimate = client.get(f"/sessions/{session.id}/estimate")
    cancelled = client.post(f"/sessions/{session.id}/cancel")

    assert estimate.status_code == 200
    assert estimate.get_json()["estimated_cost"] == pytest.approx(10.0, abs=0.05)
    assert cancelled.get_json()["session"]["status_label"] == "cancelled"


def test_payment_closes_session(client, table, make_session):
    session = make_session(datetime.now() - timedelta(hours=2))

    resp = client.post("/payments", json={"session_id": session.id, "method": "card"})

    assert resp.status_code == 201
    data = resp.get_json()
    assert data["payment"]["amount"] == data["session"]["final_cost"]
    assert data["payment"]["method_label"] == "card"
    assert data["session"]["status_label"] == "closed"
    assert data["balance"] == 0.0

    again = client.post("/payments", json={"session_id": session.id, "amount": 1})
    assert again.status_code == 409
    assert again.get_json()["reason"] == "already_settled"

    listed = client.get(f"/payments?session_id={session.id}").get_json()
    assert len(listed["payments"]) == 1
    assert client.get(f"/payments/{data['payment']['id']}").status_code == 200


def test_finalize(client, table, make_session):
    session = make_session(datetime.now() - timedelta(hours=1))

    resp = client.post(f"/sessions/{session.id}/finalize", json={"method": "qr"})

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["payment"]["method_label"] == "qr"
    assert data["balance"] == 0.0
    assert "pricing" in data


def test_payment_errors(client):
    assert client.post("/payments", json={}).status_code == 400
    assert client.post("/payments", json={"session_id": 404}).status_code == 404


def test_settings_endpoints(client):
    settings = client.get("/settings").get_json()["settings"]
    assert settings["opening_time"] == "09:00"
    assert settings["business_days"] == [1, 2, 3, 4, 5, 6, 7]

    hours = client.get("/settings/business-hours").get_json()
    assert hours["closing_time"] == "23:00"

    updated = client.put("/settings/opening_time", json={"value": "08:30"})
    assert updated.status_code == 200
    assert updated.get_json()["value"] == "08:30"

    bad = client.put("/settings/opening_time", json={"value": "soon"})
    assert bad.status_code == 400
    assert bad.get_json()["reason"] == "invalid_setting"

    bulk = client.put("/settings", json={"settings": {"slot_minutes": 30, "tax_rate": "0.1"}})
    assert bulk.get_json()["settings"]["slot_minutes"] == 30
    assert bulk.get_json()["settings"]["tax_rate"] == 0.1

    grouped = client.get("/settings/grouped?group=schedule").get_json()
    assert grouped["settings"]["opening_time"] == "08:30"


def test_pricing_endpoints(client, category):
    estimate = client.get(
        f"/pricing/estimate?category_id={category.id}&start=2030-01-08T10:00:00&end=2030-01-08T12:30:00"
    )
    assert estimate.get_json()["pricing"]["final_price"] == 25.0

    created = client.post("/pricing/rules", json={
        "category_id": category.id, "type": "weekend", "percentage": 20, "weekday": 6,
    })
    assert created.status_code == 201

    saturday = client.get(f"/pricing/applicable?category_id={category.id}&at=2030-01-05T10:00:00").get_json()
    tuesday = client.get(f"/pricing/applicable?category_id={category.id}&at=2030-01-08T10:00:00").get_json()
    assert len(saturday["rules"]) == 1
    assert tuesday["rules"] == []

    invalid = client.post("/pricing/rules", json={
        "category_id": category.id, "type": "weekend", "percentage": 20, "weekday": 9,
    })
    assert invalid.status_code == 400
    assert invalid.get_json()["reason"] == "invalid_weekday"


def test_activity_log(client, reservation_body):
    client.post("/reservations", json=reservation_body)

    logs = client.get("/admin/logs?table=reservations").get_json()

    assert logs["total"] == 1
    assert logs["logs"][0]["action"] == "insert"


def test_unknown_route_is_json(client):
    resp = client.get("/nowhere")

    assert resp.status_code == 404
    assert resp.get_json()["ok"] is False
    assert resp.get_json()["reason"] == "not_found"


def test_end_session_with_utc_offset(client, make_session):
    session = make_session(at(TUESDAY, 10))
    expected = datetime(2030, 1, 8, 23, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)

    resp = client.post(f"/sessions/{session.id}/end", json={"end_time": "2030-01-08T23:00:00+00:00"})

    assert resp.status_code == 200
    assert resp.get_json()["session"]["end_time"] == expected.isoformat()


def test_invalid_settings_are_rejected_and_reservations_keep_working(client, reservation_body):
    bad_days = client.put("/settings/business_days", json={"value": "\"weekdays\""})
    bad_slot = client.put("/settings/slot_minutes", json={"value": -60})
    bad_hours = client.put("/settings", json={"settings": {"opening_time": "20:00", "closing_time": "10:00"}})

    assert bad_days.status_code == 400
    assert bad_days.get_json()["reason"] == "invalid_setting"
    assert bad_slot.status_code == 400
    assert bad_hours.status_code == 400
    assert client.get("/settings").get_json()["settings"]["business_days"] == [1, 2, 3, 4, 5, 6, 7]
    assert client.post("/reservations", json=reservation_body).status_code == 201


def test_pricing_rule_management(client, category):
    created = client.post("/pricing/rules", json={
        "category_id": category.id, "type": "weekend", "percentage": 20, "weekday": 6,
    }).get_json()["rule"]

    listed = client.get(f"/pricing/rules?category_id={category.id}").get_json()["rules"]
    assert [r["id"] for r in listed] == [created["id"]]
    assert client.get(f"/pricing/rules/{created['id']}").status_code == 200

    toggled = client.patch(f"/pricing/rules/{created['id']}", json={"is_active": False})
    assert toggled.status_code == 200
    assert toggled.get_json()["rule"]["is_active"] is False
    assert client.get("/pricing/rules?active=true").get_json()["rules"] == []
    saturday = client.get(f"/pricing/applicable?category_id={category.id}&at=2030-01-05T10:00:00").get_json()
    assert saturday["rules"] == []

    invalid = client.patch(f"/pricing/rules/{created['id']}", json={"weekday": 9})
    assert invalid.status_code == 400

    deleted = client.delete(f"/pricing/rules/{created['id']}")
    assert deleted.status_code == 200
    missing = client.get(f"/pricing/rules/{created['id']}")
    assert missing.status_code == 404
    assert missing.get_json()["reason"] == "pricing_rule_not_found"
