# billiard_hall/routes/settings.py
from flask import Blueprint, request, jsonify
from billiard_hall.database import SessionLocal
from billiard_hall.services.settings_provider import SettingsProvider
from billiard_hall.utils.errors import ValidationError
from billiard_hall.utils.helpers import get_current_user_id, get_json_body, settings_to_json, setting_value_to_json

settings_bp = Blueprint("settings", __name__, url_prefix="/settings")


@settings_bp.route("", methods=["GET"])
def get_settings():
    db = SessionLocal()
    try:
        provider = SettingsProvider(db)
        if request.args.get("detailed"):
            rows = provider.list_settings()
            for row in rows:
                row["value"] = setting_value_to_json(row["value"])
            return jsonify({"ok": True, "settings": rows})
        return jsonify({"ok": True, "settings": settings_to_json(provider.get_all())})
    finally:
        db.close()


@settings_bp.route("/grouped", methods=["GET"])
def get_grouped_settings():
    db = SessionLocal()
    try:
        group = request.args.get("group")
        grouped = SettingsProvider(db).get_grouped(group)
        if group:
            return jsonify({"ok": True, "group": group, "settings": settings_to_json(grouped)})
        return jsonify({"ok": True, "settings": {name: settings_to_json(values) for name, values in grouped.items()}})
    finally:
        db.close()


@settings_bp.route("/business-hours", methods=["GET"])
def get_business_hours():
    db = SessionLocal()
    try:
        return jsonify({"ok": True, **settings_to_json(SettingsProvider(db).get_business_hours())})
    finally:
        db.close()


@settings_bp.route("", methods=["PUT"])
def update_settings():
    data = get_json_body()
    items = data.get("settings")
    if isinstance(items, dict):
        items = [{"key": k, "value": v} for k, v in items.items()]
    if not isinstance(items, list) or not items:
        raise ValidationError("missing_fields", "settings must be a non-empty list or object")

    db = SessionLocal()
    try:
        values = SettingsProvider(db).update_many(items, user_id=get_current_user_id())
        return jsonify({"ok": True, "settings": settings_to_json(values)})
    finally:
        db.close()


@settings_bp.route("/<key>", methods=["PUT"])
def update_setting(key):
    data = get_json_body()
    if "value" not in data:
        raise ValidationError("missing_fields", "value is required")

    db = SessionLocal()
    try:
        value = SettingsProvider(db).update(key, data["value"], user_id=get_current_user_id())
        return jsonify({"ok": True, "key": key, "value": setting_value_to_json(value)})
    finally:
        db.close()
