# billiard_hall/routes/sessions.py
from flask import Blueprint, jsonify
from billiard_hall.database import SessionLocal
from billiard_hall.services.payments import PaymentService
from billiard_hall.services.sessions import SessionService
from billiard_hall.utils.helpers import (
    get_current_user_id, get_json_body, parse_datetime, parse_optional_int,
    session_to_dict, penalty_to_dict, payment_to_dict, pricing_to_dict,
)

sessions_bp = Blueprint("sessions", __name__, url_prefix="/sessions")


def _optional_datetime(data: dict, field: str):
    value = data.get(field)
    return parse_datetime(value, field) if value else None


def _closure_to_dict(closure: dict) -> dict:
    return {
        "session": session_to_dict(closure["session"]),
        "pricing": pricing_to_dict(closure["pricing"]),
        "penalties": [penalty_to_dict(p) for p in closure["penalties"]],
        "total_penalties": float(closure["total_penalties"]),
        "final_cost": float(closure["final_cost"]),
    }


@sessions_bp.route("/start", methods=["POST"])
def start_session():
    db = SessionLocal()
    try:
        session = SessionService(db).start(get_json_body(), user_id=get_current_user_id())
        return jsonify({"ok": True, "session": session_to_dict(session)}), 201
    finally:
        db.close()


@sessions_bp.route("/active", methods=["GET"])
def active_sessions():
    db = SessionLocal()
    try:
        rows = SessionService(db).list_active()
        return jsonify({"ok": True, "sessions": [session_to_dict(s) for s in rows]})
    finally:
        db.close()


@sessions_bp.route("/<int:session_id>", methods=["GET"])
def get_session(session_id):
    db = SessionLocal()
    try:
        service = SessionService(db)
        session = service.get(session_id)
        return jsonify({
            "ok": True,
            "session": session_to_dict(session),
            "penalties": [penalty_to_dict(p) for p in session.penalties],
            "payments": [payment_to_dict(p) for p in session.payments],
        })
    finally:
        db.close()


@sessions_bp.route("/<int:session_id>/estimate", methods=["GET"])
def estimate_session(session_id):
    db = SessionLocal()
    try:
        estimate = SessionService(db).estimate(session_id)
        return jsonify({
            "ok": True,
            "session": session_to_dict(estimate["session"]),
            "pricing": pricing_to_dict(estimate["pricing"]),
            "total_penalties": float(estimate["total_penalties"]),
            "estimated_cost": float(estimate["estimated_cost"]),
        })
    finally:
        db.close()


@sessions_bp.route("/<int:session_id>/end", methods=["POST"])
def end_session(session_id):
    db = SessionLocal()
    try:
        data = get_json_body()
        closure = SessionService(db).close(session_id, _optional_datetime(data, "end_time"), user_id=get_current_user_id())
        return jsonify({"ok": True, **_closure_to_dict(closure)})
    finally:
        db.close()


@sessions_bp.route("/<int:session_id>/finalize", methods=["POST"])
def finalize_session(session_id):
    db = SessionLocal()
    try:
        data = get_json_body()
        result = PaymentService(db).finalize(
            session_id,
            method=data.get("method"),
            user_id=get_current_user_id(),
            end_time=_optional_datetime(data, "end_time"),
        )
        body = {
            "ok": True,
            "session": session_to_dict(result["session"]),
            "payment": payment_to_dict(result["payment"]) if result["payment"] else None,
            "final_cost": float(result["session"].final_cost),
            "amount_paid": float(result["amount_paid"]),
            "balance": float(result["balance"]),
        }
        if result["closure"]:
            body["pricing"] = pricing_to_dict(result["closure"]["pricing"])
            body["total_penalties"] = float(result["closure"]["total_penalties"])
        return jsonify(body)
    finally:
        db.close()


@sessions_bp.route("/<int:session_id>/cancel", methods=["POST"])
def cancel_session(session_id):
    db = SessionLocal()
    try:
        session = SessionService(db).cancel(session_id, user_id=get_current_user_id())
        return jsonify({"ok": True, "session": session_to_dict(session)})
    finally:
        db.close()


@sessions_bp.route("/<int:session_id>/penalties", methods=["GET"])
def list_penalties(session_id):
    db = SessionLocal()
    try:
        rows = SessionService(db).list_penalties(session_id)
        return jsonify({"ok": True, "penalties": [penalty_to_dict(p) for p in rows]})
    finally:
        db.close()


@sessions_bp.route("/<int:session_id>/penalties", methods=["POST"])
def add_penalty(session_id):
    db = SessionLocal()
    try:
        data = get_json_body()
        # applied_by esplicito oppure l'operatore autenticato
        applied_by = parse_optional_int(data.get("applied_by"), "applied_by") or get_current_user_id()
        penalty = SessionService(db).add_penalty(session_id, data.get("amount"), data.get("reason"), applied_by)
        return jsonify({"ok": True, "penalty": penalty_to_dict(penalty)}), 201
    finally:
        db.close()
