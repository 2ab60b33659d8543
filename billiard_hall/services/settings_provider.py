"""
⚙️ SettingsProvider — regole di business lette da system_settings.

Unica fonte per orari, giorni lavorativi, durate e anticipo delle
prenotazioni, aliquote. Viene passato esplicitamente ai servizi che
ne hanno bisogno (ReservationService, SessionService), mai letto come
stato globale.
"""
import json
import logging
from datetime import date, time, datetime
from decimal import Decimal, InvalidOperation
from sqlalchemy.orm import Session
from billiard_hall.database import transaction
from billiard_hall.models.system_settings import SystemSetting
from billiard_hall.services.activity_log import log_action
from billiard_hall.utils.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# chiave -> (tipo, valore di default serializzato, descrizione)
DEFAULT_SETTINGS = {
    "opening_time": ("time", "09:00", "Opening time"),
    "closing_time": ("time", "23:00", "Closing time"),
    "business_days": ("json", "[1, 2, 3, 4, 5, 6, 7]", "Business days (1=Mon .. 7=Sun)"),
    "min_reservation_duration": ("number", "60", "Minimum reservation duration (minutes)"),
    "max_reservation_duration": ("number", "240", "Maximum reservation duration (minutes)"),
    "min_advance_hours": ("number", "1", "Minimum advance notice (hours)"),
    "max_advance_days": ("number", "30", "Maximum advance notice (days)"),
    "max_concurrent_reservations": ("number", "3", "Upcoming reservations allowed per user"),
    "tax_rate": ("number", "0", "Tax rate applied to payments"),
    "late_cancellation_penalty_rate": ("number", "0", "Late cancellation penalty rate"),
    "no_show_penalty_rate": ("number", "0", "No-show penalty rate"),
    "auto_cancel_no_show_minutes": ("number", "15", "Minutes after start before a reservation expires"),
    "grace_period_minutes": ("number", "30", "Check-in window around a reservation start (minutes)"),
    "slot_minutes": ("number", "60", "Granularity of the available slots (minutes)"),
    "business_name": ("string", "Billiard Hall", "Business name"),
}

BUSINESS_HOURS_KEYS = ("opening_time", "closing_time", "business_days")

# Valori numerici che devono essere > 0 oppure >= 0
POSITIVE_KEYS = {
    "min_reservation_duration", "max_reservation_duration", "max_advance_days",
    "max_concurrent_reservations", "slot_minutes",
}
NON_NEGATIVE_KEYS = {
    "min_advance_hours", "tax_rate", "late_cancellation_penalty_rate", "no_show_penalty_rate",
    "auto_cancel_no_show_minutes", "grace_period_minutes",
}
INTEGER_KEYS = {"slot_minutes", "max_concurrent_reservations"}


def parse_value(raw, setting_type: str):
    """
    Converte il valore testuale salvato nel tipo dichiarato.

    Solleva ValueError se il valore non è coerente con il tipo.
    """
    if raw is None:
        return None
    if setting_type == "number":
        try:
            number = Decimal(str(raw).strip())
        except InvalidOperation:
            raise ValueError(f"not a number: {raw!r}")
        if not number.is_finite():
            raise ValueError(f"not a number: {raw!r}")
        return int(number) if number == number.to_integral_value() else number
    if setting_type == "boolean":
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("true", "1", "yes")
    if setting_type == "time":
        if isinstance(raw, time):
            return raw
        text = str(raw).strip()
        for fmt in ("%H:%M:%S", "%H:%M"):
            try:
                return datetime.strptime(text, fmt).time()
            except ValueError:
                continue
        raise ValueError(f"not a time: {raw!r}")
    if setting_type == "json":
        if isinstance(raw, (list, dict)):
            return raw
        return json.loads(raw)
    return str(raw)


def check_value(key: str, value) -> None:
    """Vincoli di dominio sul valore già tipizzato; ValueError se violati."""
    if key in POSITIVE_KEYS and not value > 0:
        raise ValueError(f"{key} must be greater than zero")
    if key in NON_NEGATIVE_KEYS and value < 0:
        raise ValueError(f"{key} must not be negative")
    if key in INTEGER_KEYS and not isinstance(value, int):
        raise ValueError(f"{key} must be a whole number")
    if key == "business_days":
        if not isinstance(value, list) or not value:
            raise ValueError("business_days must be a non-empty list of days")
        for day in value:
            if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 7:
                raise ValueError("business_days must contain days between 0 and 7")


def serialize_value(value, setting_type: str) -> str:
    if setting_type == "json":
        return value if isinstance(value, str) else json.dumps(value)
    if setting_type == "time" and isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if setting_type == "boolean" and isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _group_for(key: str) -> str:
    if key.startswith(("opening_", "closing_")) or key == "business_days":
        return "schedule"
    if key.startswith("business_") or "currency" in key:
        return "business"
    if "reservation" in key or "cancellation_" in key or "advance" in key or key.startswith(("max_concurrent", "slot_")):
        return "reservations"
    if "penalty" in key or "overtime" in key or key.startswith(("tax_", "grace_")):
        return "pricing"
    return "system"


class SettingsProvider:
    """
    Mappa tipizzata delle impostazioni di sistema.

    I valori vengono letti una volta per istanza (una richiesta HTTP = un
    provider); dopo update() la cache viene invalidata.
    """

    def __init__(self, db: Session):
        self.db = db
        self._values = None

    def _rows(self) -> dict:
        return {row.setting_key: row for row in self.db.query(SystemSetting).all()}

    def _resolve(self, key: str, row: SystemSetting | None):
        default_type, default_raw, _ = DEFAULT_SETTINGS.get(key, ("string", None, None))
        if row is None:
            return parse_value(default_raw, default_type)
        try:
            value = parse_value(row.setting_value, row.setting_type)
            check_value(key, value)
            return value
        except (ValueError, TypeError):
            logger.warning("Impostazione %s malformata (%r), uso il default", key, row.setting_value)
            return parse_value(default_raw, default_type)

    def invalidate(self) -> None:
        self._values = None

    def get_all(self) -> dict:
        if self._values is None:
            rows = self._rows()
            keys = list(DEFAULT_SETTINGS) + [k for k in rows if k not in DEFAULT_SETTINGS]
            self._values = {key: self._resolve(key, rows.get(key)) for key in keys}
        return self._values

    def get(self, key: str):
        values = self.get_all()
        if key not in values:
            raise NotFoundError("setting_not_found", f"setting '{key}' does not exist")
        return values[key]

    def get_business_hours(self) -> dict:
        return {key: self.get(key) for key in BUSINESS_HOURS_KEYS}

    def list_settings(self) -> list:
        """Vista completa (per il pannello admin) con tipo e valore grezzo."""
        rows = self._rows()
        values = self.get_all()
        result = []
        for key, value in values.items():
            row = rows.get(key)
            default_type, default_raw, description = DEFAULT_SETTINGS.get(key, ("string", None, None))
            result.append({
                "key": key,
                "value": value,
                "raw_value": row.setting_value if row else default_raw,
                "type": row.setting_type if row else default_type,
                "description": (row.description if row and row.description else description),
                "updated_at": row.updated_at.isoformat() if row and row.updated_at else None,
                "is_default": row is None,
            })
        return result

    def get_grouped(self, group: str | None = None):
        grouped = {"business": {}, "schedule": {}, "reservations": {}, "pricing": {}, "system": {}}
        for key, value in self.get_all().items():
            grouped[_group_for(key)][key] = value
        if group is None:
            return grouped
        if group not in grouped:
            raise NotFoundError("group_not_found", f"settings group '{group}' does not exist")
        return grouped[group]

    # ─────────────────────────────────────────
    # SCRITTURA
    # ─────────────────────────────────────────

    def _apply(self, key: str, value, user_id: int | None) -> SystemSetting:
        row = self.db.query(SystemSetting).filter(SystemSetting.setting_key == key).first()
        if row is None:
            if key not in DEFAULT_SETTINGS:
                raise NotFoundError("setting_not_found", f"setting '{key}' does not exist")
            setting_type, _, description = DEFAULT_SETTINGS[key]
            row = SystemSetting(setting_key=key, setting_type=setting_type, description=description)
            self.db.add(row)

        try:
            parsed = parse_value(value, row.setting_type)
        except (ValueError, TypeError):
            raise ValidationError("invalid_setting", f"setting '{key}' expects a value of type {row.setting_type}")
        if parsed is None:
            raise ValidationError("invalid_setting", f"setting '{key}' requires a value")
        try:
            check_value(key, parsed)
        except ValueError as exc:
            raise ValidationError("invalid_setting", str(exc))

        row.setting_value = serialize_value(value, row.setting_type)
        self.db.flush()
        log_action(self.db, table_name="system_settings", record_id=row.id, user_id=user_id,
                   action="setting_update", note=f"{key}={row.setting_value}"[:255])
        return row

    def _check_consistency(self) -> None:
        """Vincoli tra più chiavi, sui valori risultanti dopo la scrittura."""
        self.invalidate()
        if self.get("opening_time") >= self.get("closing_time"):
            raise ValidationError("invalid_setting", "opening_time must be before closing_time")
        if self.get("min_reservation_duration") > self.get("max_reservation_duration"):
            raise ValidationError("invalid_setting",
                                  "min_reservation_duration must not exceed max_reservation_duration")

    def update(self, key: str, value, user_id: int | None = None):
        try:
            with transaction(self.db):
                self._apply(key, value, user_id)
                self._check_consistency()
        finally:
            self.invalidate()
        logger.info("Impostazione %s aggiornata", key)
        return self.get(key)

    def update_many(self, items: list, user_id: int | None = None) -> dict:
        """items: lista di {"key": ..., "value": ...}; tutto o niente."""
        try:
            with transaction(self.db):
                for item in items:
                    if not isinstance(item, dict) or "key" not in item or "value" not in item:
                        raise ValidationError("invalid_setting", "each item requires 'key' and 'value'")
                    self._apply(item["key"], item["value"], user_id)
                self._check_consistency()
        finally:
            self.invalidate()
        return self.get_all()

    # ─────────────────────────────────────────
    # REGOLE DERIVATE
    # ─────────────────────────────────────────

    def business_days(self) -> set:
        days = self.get("business_days") or []
        # 0 e 7 valgono entrambi domenica
        return {7 if d == 0 else d for d in days}

    def is_business_day(self, day: date) -> bool:
        return day.isoweekday() in self.business_days()

    def is_within_business_hours(self, moment: time) -> bool:
        return self.get("opening_time") <= moment <= self.get("closing_time")
