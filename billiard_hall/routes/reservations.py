# billiard_hall/routes/reservations.py
from flask import Blueprint, request, jsonify
from billiard_hall.database import SessionLocal
from billiard_hall.models.enums import ReservationStatus
from billiard_hall.services.availability import get_available_slots
from billiard_hall.services.reservations import ReservationService
from billiard_hall.services.settings_provider import SettingsProvider
from billiard_hall.utils.errors import ValidationError
from billiard_hall.utils.helpers import (
    get_current_user_id, get_json_body, reservation_to_dict, parse_date, parse_enum, parse_optional_int,
)
from billiard_hall.utils.limiter import limiter

reservations_bp = Blueprint("reservations", __name__, url_prefix="/reservations")


@reservations_bp.route("", methods=["GET"])
def list_reservations():
    db = SessionLocal()
    try:
        status = request.args.get("status")
        day = request.args.get("date")
        rows = ReservationService(db).list_reservations(
            status=parse_enum(ReservationStatus, status, "status") if status else None,
            table_id=parse_optional_int(request.args.get("table_id"), "table_id"),
            user_id=parse_optional_int(request.args.get("user_id"), "user_id"),
            day=parse_date(day, "date") if day else None,
        )
        return jsonify({"ok": True, "reservations": [reservation_to_dict(r) for r in rows]})
    finally:
        db.close()


@reservations_bp.route("/available-slots", methods=["GET"])
def available_slots():
    table_id = parse_optional_int(request.args.get("table_id"), "table_id")
    day = request.args.get("date")
    if table_id is None or not day:
        raise ValidationError("missing_fields", "table_id and date are required")
    day = parse_date(day, "date")

    db = SessionLocal()
    try:
        slots = get_available_slots(db, table_id, day, SettingsProvider(db))
        return jsonify({
            "ok": True,
            "table_id": table_id,
            "date": day.isoformat(),
            "slots": [
                {"start_time": s["start_time"].isoformat(), "end_time": s["end_time"].isoformat()}
                for s in slots
            ],
        })
    finally:
        db.close()


@reservations_bp.route("/<int:reservation_id>", methods=["GET"])
def get_reservation(reservation_id):
    db = SessionLocal()
    try:
        reservation = ReservationService(db).get(reservation_id)
        return jsonify({"ok": True, "reservation": reservation_to_dict(reservation)})
    finally:
        db.close()


@reservations_bp.route("", methods=["POST"])
@limiter.limit("10 per minute")
def create_reservation():
    db = SessionLocal()
    try:
        reservation = ReservationService(db).create(get_json_body())
        return jsonify({"ok": True, "reservation": reservation_to_dict(reservation)}), 201
    finally:
        db.close()


@reservations_bp.route("/<int:reservation_id>", methods=["PATCH"])
def update_reservation(reservation_id):
    db = SessionLocal()
    try:
        reservation = ReservationService(db).update(reservation_id, get_json_body(), user_id=get_current_user_id())
        return jsonify({"ok": True, "reservation": reservation_to_dict(reservation)})
    finally:
        db.close()


@reservations_bp.route("/<int:reservation_id>/approve", methods=["PATCH"])
def approve_reservation(reservation_id):
    db = SessionLocal()
    try:
        reservation = ReservationService(db).approve(reservation_id, get_current_user_id())
        return jsonify({"ok": True, "reservation": reservation_to_dict(reservation)})
    finally:
        db.close()


@reservations_bp.route("/<int:reservation_id>/reject", methods=["PATCH"])
def reject_reservation(reservation_id):
    db = SessionLocal()
    try:
        reason = get_json_body().get("reason")
        reservation = ReservationService(db).reject(reservation_id, get_current_user_id(), reason)
        return jsonify({"ok": True, "reservation": reservation_to_dict(reservation)})
    finally:
        db.close()


@reservations_bp.route("/<int:reservation_id>/cancel", methods=["PATCH"])
def cancel_reservation(reservation_id):
    db = SessionLocal()
    try:
        reservation = ReservationService(db).cancel(reservation_id, get_current_user_id())
        return jsonify({"ok": True, "reservation": reservation_to_dict(reservation)})
    finally:
        db.close()


@reservations_bp.route("/<int:reservation_id>/expire", methods=["PATCH"])
def expire_reservation(reservation_id):
    db = SessionLocal()
    try:
        reservation = ReservationService(db).expire(reservation_id, get_current_user_id())
        return jsonify({"ok": True, "reservation": reservation_to_dict(reservation)})
    finally:
        db.close()


@reservations_bp.route("/expire-overdue", methods=["POST"])
def expire_overdue():
    db = SessionLocal()
    try:
        expired = ReservationService(db).expire_overdue()
        return jsonify({"ok": True, "expired": [r.id for r in expired]})
    finally:
        db.close()
