# billiard_hall/routes/activity_log.py
from flask import Blueprint, request, jsonify
from billiard_hall.database import SessionLocal
from billiard_hall.models.activity_log import ActivityLog
from billiard_hall.utils.helpers import parse_datetime

log_bp = Blueprint("log", __name__, url_prefix="/admin/logs")


@log_bp.route("", methods=["GET"])
def list_logs():
    db = SessionLocal()
    try:
        table_name = request.args.get("table")
        user_id = request.args.get("user_id", type=int)
        action = request.args.get("action")
        since = request.args.get("from")
        until = request.args.get("to")
        page = max(request.args.get("page", 1, type=int), 1)
        per_page = min(max(request.args.get("per_page", 50, type=int), 1), 200)

        q = db.query(ActivityLog)
        if table_name:
            q = q.filter(ActivityLog.table_name == table_name)
        if user_id:
            q = q.filter(ActivityLog.user_id == user_id)
        if action:
            q = q.filter(ActivityLog.action == action)
        if since:
            q = q.filter(ActivityLog.timestamp >= parse_datetime(since, "from"))
        if until:
            q = q.filter(ActivityLog.timestamp <= parse_datetime(until, "to"))

        total = q.count()
        rows = (
            q.order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
             .offset((page - 1) * per_page)
             .limit(per_page)
             .all()
        )
        return jsonify({
            "ok": True,
            "total": total,
            "page": page,
            "per_page": per_page,
            "logs": [
                {
                    "id": log.id,
                    "table": log.table_name,
                    "record_id": log.record_id,
                    "user_id": log.user_id,
                    "action": log.action,
                    "note": log.note,
                    "timestamp": log.timestamp.isoformat() if log.timestamp else None,
                }
                for log in rows
            ],
        })
    finally:
        db.close()
