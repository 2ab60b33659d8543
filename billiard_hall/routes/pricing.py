# billiard_hall/routes/pricing.py
from flask import Blueprint, request, jsonify
from billiard_hall.database import SessionLocal
from billiard_hall.services.pricing import (
    calculate_session_price, get_applicable_pricing, create_pricing_rule, list_pricing_rules, get_pricing_rule,
    update_pricing_rule, delete_pricing_rule,
)
from billiard_hall.utils.errors import ValidationError
from billiard_hall.utils.helpers import (
    get_current_user_id, get_json_body, parse_datetime, parse_optional_int, pricing_rule_to_dict, pricing_to_dict,
)

pricing_bp = Blueprint("pricing", __name__, url_prefix="/pricing")


def _category_arg() -> int:
    category_id = parse_optional_int(request.args.get("category_id"), "category_id")
    if category_id is None:
        raise ValidationError("missing_fields", "category_id is required")
    return category_id


@pricing_bp.route("/applicable", methods=["GET"])
def applicable_rules():
    category_id = _category_arg()
    at = request.args.get("at")
    moment = parse_datetime(at, "at") if at else None

    db = SessionLocal()
    try:
        rules = get_applicable_pricing(db, category_id, moment)
        return jsonify({"ok": True, "category_id": category_id, "rules": [pricing_rule_to_dict(r) for r in rules]})
    finally:
        db.close()


@pricing_bp.route("/estimate", methods=["GET"])
def estimate_price():
    category_id = _category_arg()
    if not request.args.get("start"):
        raise ValidationError("missing_fields", "start is required")
    start = parse_datetime(request.args.get("start"), "start")
    end = parse_datetime(request.args.get("end"), "end") if request.args.get("end") else None

    db = SessionLocal()
    try:
        pricing = calculate_session_price(db, category_id, start, end)
        return jsonify({"ok": True, "category_id": category_id, "pricing": pricing_to_dict(pricing)})
    finally:
        db.close()


@pricing_bp.route("/rules", methods=["POST"])
def create_rule():
    db = SessionLocal()
    try:
        rule = create_pricing_rule(db, get_json_body(), user_id=get_current_user_id())
        return jsonify({"ok": True, "rule": pricing_rule_to_dict(rule)}), 201
    finally:
        db.close()


@pricing_bp.route("/rules", methods=["GET"])
def list_rules():
    category_id = parse_optional_int(request.args.get("category_id"), "category_id")
    active = request.args.get("active")
    db = SessionLocal()
    try:
        rules = list_pricing_rules(db, category_id, None if active is None else active.lower() in ("1", "true", "yes"))
        return jsonify({"ok": True, "rules": [pricing_rule_to_dict(r) for r in rules]})
    finally:
        db.close()


@pricing_bp.route("/rules/<int:rule_id>", methods=["GET"])
def get_rule(rule_id):
    db = SessionLocal()
    try:
        return jsonify({"ok": True, "rule": pricing_rule_to_dict(get_pricing_rule(db, rule_id))})
    finally:
        db.close()


@pricing_bp.route("/rules/<int:rule_id>", methods=["PATCH"])
def update_rule(rule_id):
    db = SessionLocal()
    try:
        rule = update_pricing_rule(db, rule_id, get_json_body(), user_id=get_current_user_id())
        return jsonify({"ok": True, "rule": pricing_rule_to_dict(rule)})
    finally:
        db.close()


@pricing_bp.route("/rules/<int:rule_id>", methods=["DELETE"])
def delete_rule(rule_id):
    db = SessionLocal()
    try:
        delete_pricing_rule(db, rule_id, user_id=get_current_user_id())
        return jsonify({"ok": True, "deleted": rule_id})
    finally:
        db.close()
