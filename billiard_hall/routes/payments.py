# billiard_hall/routes/payments.py
from flask import Blueprint, request, jsonify
from billiard_hall.database import SessionLocal
from billiard_hall.services.payments import PaymentService
from billiard_hall.utils.errors import ValidationError
from billiard_hall.utils.helpers import (
    get_current_user_id, get_json_body, parse_optional_int, payment_to_dict, session_to_dict,
)

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


@payments_bp.route("", methods=["POST"])
def record_payment():
    data = get_json_body()
    session_id = parse_optional_int(data.get("session_id"), "session_id")
    if session_id is None:
        raise ValidationError("missing_fields", "session_id is required")

    db = SessionLocal()
    try:
        result = PaymentService(db).record_payment(
            session_id,
            amount=data.get("amount"),
            method=data.get("method"),
            user_id=get_current_user_id(),
        )
        if result["payment"] is None:
            # sessione a costo zero: chiusa, niente da incassare
            return jsonify({
                "ok": True,
                "payment": None,
                "session": session_to_dict(result["session"]),
                "balance": float(result["balance"]),
            })
        return jsonify({
            "ok": True,
            "payment": payment_to_dict(result["payment"]),
            "session": session_to_dict(result["session"]),
            "amount_paid": float(result["amount_paid"]),
            "balance": float(result["balance"]),
        }), 201
    finally:
        db.close()


@payments_bp.route("", methods=["GET"])
def list_payments():
    session_id = parse_optional_int(request.args.get("session_id"), "session_id")
    if session_id is None:
        raise ValidationError("missing_fields", "session_id is required")

    db = SessionLocal()
    try:
        service = PaymentService(db)
        rows = service.list_for_session(session_id)
        return jsonify({
            "ok": True,
            "payments": [payment_to_dict(p) for p in rows],
            "amount_paid": float(service.amount_paid(session_id)),
            "balance": float(service.balance(session_id)),
        })
    finally:
        db.close()


@payments_bp.route("/<int:payment_id>", methods=["GET"])
def get_payment(payment_id):
    db = SessionLocal()
    try:
        payment = PaymentService(db).get(payment_id)
        return jsonify({"ok": True, "payment": payment_to_dict(payment)})
    finally:
        db.close()
