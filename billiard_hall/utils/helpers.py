"""
Helper centralizzati.

Parsing dell'input (date, orari, importi) con errori parlanti e
serializzazione JSON delle entità, condivisi da servizi e route.
"""
from datetime import datetime, date, time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from flask import request
from billiard_hall.utils.errors import ValidationError

MONEY_QUANTUM = Decimal("0.01")


# ─────────────────────────────────────────
# PARSING
# ─────────────────────────────────────────

def round_money(value) -> Decimal:
    """Arrotonda a 2 decimali (half-up). Da usare solo ai bordi dei calcoli."""
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def parse_decimal(value, field: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValidationError("invalid_amount", f"{field} must be a number")
    try:
        # str() evita gli artefatti binari dei float
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("invalid_amount", f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError("invalid_amount", f"{field} must be a number")
    return result


def to_local_naive(value: datetime) -> datetime:
    """Gli orari salvati sono naive in ora locale: gli offset vengono convertiti."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def parse_datetime(value, field: str) -> datetime:
    if isinstance(value, datetime):
        return to_local_naive(value)
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            return to_local_naive(datetime.fromisoformat(raw))
        except ValueError:
            pass
    raise ValidationError("invalid_datetime", f"{field} must be an ISO datetime (YYYY-MM-DDTHH:MM[:SS][+HH:MM])")


def parse_date(value, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError("invalid_date", f"{field} must be a date (YYYY-MM-DD)")


def parse_time(value, field: str) -> time:
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        for fmt in ("%H:%M:%S", "%H:%M"):
            try:
                return datetime.strptime(raw, fmt).time()
            except ValueError:
                continue
    raise ValidationError("invalid_time", f"{field} must be a time (HH:MM or HH:MM:SS)")


def parse_optional_int(value, field: str):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("invalid_field", f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("invalid_field", f"{field} must be an integer")


def parse_enum(enum_class, value, field: str, default=None):
    """Accetta il codice intero o il nome (es. 2 / "card")."""
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError("invalid_field", f"{field} is required")
    if isinstance(value, str) and not value.strip().isdigit():
        try:
            return enum_class[value.strip().upper()]
        except KeyError:
            pass
    else:
        try:
            return enum_class(int(value))
        except (TypeError, ValueError):
            pass
    allowed = ", ".join(f"{m.value}={m.name.lower()}" for m in enum_class)
    raise ValidationError("invalid_field", f"{field} must be one of: {allowed}")


# ─────────────────────────────────────────
# REQUEST HELPERS
# ─────────────────────────────────────────

def get_current_user_id() -> int | None:
    """ID utente impostato dal layer di autenticazione a monte."""
    return request.headers.get("X-User-Id", type=int)


def get_json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ─────────────────────────────────────────
# SERIALIZZAZIONE
# ─────────────────────────────────────────

def _iso(value):
    return value.isoformat() if value is not None else None


def _money(value):
    return float(value) if value is not None else None


def reservation_to_dict(res) -> dict:
    return {
        "id": res.id,
        "user_id": res.user_id,
        "table_id": res.table_id,
        "reservation_date": _iso(res.reservation_date),
        "start_time": _iso(res.start_time),
        "end_time": _iso(res.end_time),
        "status": int(res.status),
        "status_label": res.status.name.lower(),
        "notes": res.notes,
        "handled_by": res.handled_by,
        "handled_at": _iso(res.handled_at),
        "rejection_reason": res.rejection_reason,
        "created_at": _iso(res.created_at),
    }


def session_to_dict(s) -> dict:
    return {
        "id": s.id,
        "user_id": s.user_id,
        "reservation_id": s.reservation_id,
        "table_id": s.table_id,
        "start_time": _iso(s.start_time),
        "end_time": _iso(s.end_time),
        "session_type": int(s.session_type),
        "session_type_label": s.session_type.name.lower(),
        "final_cost": _money(s.final_cost),
        "status": int(s.status),
        "status_label": s.status.name.lower(),
    }


def penalty_to_dict(p) -> dict:
    return {
        "id": p.id,
        "session_id": p.session_id,
        "amount": _money(p.amount),
        "reason": p.reason,
        "applied_by": p.applied_by,
        "created_at": _iso(p.created_at),
    }


def payment_to_dict(p) -> dict:
    return {
        "id": p.id,
        "session_id": p.session_id,
        "amount": _money(p.amount),
        "method": int(p.method),
        "method_label": p.method.name.lower(),
        "created_at": _iso(p.created_at),
    }


def pricing_rule_to_dict(rule) -> dict:
    return {
        "id": rule.id,
        "category_id": rule.category_id,
        "type": int(rule.type),
        "type_description": rule.type.description,
        "percentage": _money(rule.percentage),
        "time_start": _iso(rule.time_start),
        "time_end": _iso(rule.time_end),
        "weekday": rule.weekday,
        "date_start": _iso(rule.date_start),
        "date_end": _iso(rule.date_end),
        "is_active": rule.is_active,
        "description": rule.description,
    }


def pricing_to_dict(pricing: dict) -> dict:
    """Breakdown di calculate_session_price() in forma JSON."""
    return {
        "base_price": _money(pricing["base_price"]),
        "duration_hours": _money(pricing["duration_hours"]),
        "base_cost": _money(pricing["base_cost"]),
        "adjustments": [
            {**adj, "percentage": _money(adj["percentage"])}
            for adj in pricing["adjustments"]
        ],
        "total_percentage_adjustment": _money(pricing["total_percentage_adjustment"]),
        "final_price": _money(pricing["final_price"]),
    }


def setting_value_to_json(value):
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, Decimal):
        return float(value)
    return value


def settings_to_json(values: dict) -> dict:
    return {key: setting_value_to_json(value) for key, value in values.items()}
