"""
📅 Ciclo di vita delle prenotazioni.

    PENDING ──approve──► CONFIRMED
       │                    │
       ├──reject/cancel──►  ├──cancel──► CANCELLED (terminale)
       └──expire──────────► └──expire──► EXPIRED   (terminale)

La validazione di create/update è una pipeline ordinata: il primo
controllo che fallisce interrompe con un messaggio specifico.
"""
import logging
from datetime import datetime, date, time, timedelta
from decimal import Decimal
from sqlalchemy.orm import Session
from billiard_hall.database import transaction
from billiard_hall.models.billiard_tables import BilliardTable
from billiard_hall.models.reservations import Reservation
from billiard_hall.models.enums import ReservationStatus, TableStatus, BLOCKING_RESERVATION_STATUSES
from billiard_hall.services.activity_log import log_action
from billiard_hall.services.availability import check_table_availability
from billiard_hall.services.settings_provider import SettingsProvider
from billiard_hall.utils.errors import ValidationError, NotFoundError, ConflictError, StateError
from billiard_hall.utils.helpers import parse_date, parse_datetime, parse_time, parse_decimal, parse_optional_int

logger = logging.getLogger(__name__)

DEFAULT_REJECT_REASON = "no reason specified"
WINDOW_FIELDS = ("table_id", "reservation_date", "start_time", "end_time", "duration_hours")


def _looks_like_time(value: str) -> bool:
    return ":" in value and "-" not in value and "T" not in value


class ReservationService:

    def __init__(self, db: Session, settings: SettingsProvider | None = None):
        self.db = db
        self.settings = settings or SettingsProvider(db)

    # ─────────────────────────────────────────
    # LETTURA
    # ─────────────────────────────────────────

    def get(self, reservation_id: int) -> Reservation:
        reservation = self.db.get(Reservation, reservation_id)
        if not reservation:
            raise NotFoundError("reservation_not_found", "reservation not found")
        return reservation

    def _get_for_update(self, reservation_id: int) -> Reservation:
        reservation = self.db.query(Reservation).filter(
            Reservation.id == reservation_id
        ).with_for_update().first()
        if not reservation:
            raise NotFoundError("reservation_not_found", "reservation not found")
        return reservation

    def list_reservations(self, status=None, table_id=None, user_id=None, day: date | None = None) -> list:
        q = self.db.query(Reservation)
        if status is not None:
            q = q.filter(Reservation.status == status)
        if table_id is not None:
            q = q.filter(Reservation.table_id == table_id)
        if user_id is not None:
            q = q.filter(Reservation.user_id == user_id)
        if day is not None:
            q = q.filter(Reservation.reservation_date == day)
        return q.order_by(Reservation.start_time.asc(), Reservation.id.asc()).all()

    # ─────────────────────────────────────────
    # PARSING FINESTRA TEMPORALE
    # ─────────────────────────────────────────

    def _to_datetime(self, day: date | None, value, field: str) -> datetime:
        if isinstance(value, time) or (isinstance(value, str) and _looks_like_time(value)):
            if day is None:
                raise ValidationError("missing_fields", f"reservation_date is required when {field} is a time of day")
            return datetime.combine(day, parse_time(value, field))
        return parse_datetime(value, field)

    def _parse_window(self, data: dict, existing: Reservation | None = None) -> tuple:
        """Ritorna (reservation_date, start, end) da input completo o parziale."""
        day = parse_date(data["reservation_date"], "reservation_date") if data.get("reservation_date") else None
        base_day = day or (existing.reservation_date if existing else None)

        start_raw = data.get("start_time")
        if start_raw in (None, ""):
            if existing is None:
                raise ValidationError("missing_fields", "missing required fields: start_time")
            # cambio di sola data: stesso orario nel nuovo giorno
            start_raw = existing.start_time.time() if day else existing.start_time
        start = self._to_datetime(base_day, start_raw, "start_time")

        if day is None:
            day = start.date()
        elif start.date() != day:
            raise ValidationError("date_mismatch", "reservation_date does not match start_time")

        end_raw = data.get("end_time")
        if end_raw not in (None, ""):
            end = self._to_datetime(day, end_raw, "end_time")
        elif data.get("duration_hours") not in (None, ""):
            hours = parse_decimal(data["duration_hours"], "duration_hours")
            end = start + timedelta(seconds=int(hours * 3600))
        elif existing is not None:
            end = start + (existing.end_time - existing.start_time)
        else:
            raise ValidationError("missing_fields", "missing required fields: end_time")
        return day, start, end

    # ─────────────────────────────────────────
    # PIPELINE DI VALIDAZIONE
    # ─────────────────────────────────────────

    def _validate(self, table_id: int, user_id: int, start: datetime, end: datetime, now: datetime,
                  exclude_reservation_id: int | None = None) -> BilliardTable:
        # 1. tavolo (lock di riga: check + insert restano atomici)
        table = self.db.query(BilliardTable).filter(
            BilliardTable.id == table_id
        ).with_for_update().first()
        if not table:
            raise NotFoundError("table_not_found", "table not found")
        if table.status == TableStatus.MAINTENANCE:
            raise ConflictError("table_maintenance", "table is under maintenance")

        # 2. giorno lavorativo
        if not self.settings.is_business_day(start.date()):
            raise ValidationError("closed_day", "the selected day is not a business day")

        # 3. orario di apertura
        opening = self.settings.get("opening_time")
        closing = self.settings.get("closing_time")
        within = (
            self.settings.is_within_business_hours(start.time())
            and end.date() == start.date()
            and self.settings.is_within_business_hours(end.time())
        )
        if not within:
            raise ValidationError(
                "outside_business_hours",
                f"reservation must be between {opening.strftime('%H:%M')} and {closing.strftime('%H:%M')}"
            )

        # 4. durata
        minutes = Decimal(str((end - start).total_seconds())) / 60
        if minutes <= 0:
            raise ValidationError("invalid_time_range", "end_time must be after start_time")
        min_duration = self.settings.get("min_reservation_duration")
        max_duration = self.settings.get("max_reservation_duration")
        if minutes < min_duration:
            raise ValidationError("duration_too_short", f"the minimum reservation duration is {min_duration} minutes")
        if minutes > max_duration:
            raise ValidationError("duration_too_long", f"the maximum reservation duration is {max_duration} minutes")

        # 5. anticipo
        hours_ahead = Decimal(str((start - now).total_seconds())) / 3600
        if hours_ahead < 0:
            raise ValidationError("past_time", "reservations cannot start in the past")
        min_advance = self.settings.get("min_advance_hours")
        max_days = self.settings.get("max_advance_days")
        if hours_ahead < min_advance:
            raise ValidationError("insufficient_advance", f"reservations must be made at least {min_advance} hours in advance")
        if hours_ahead / 24 > max_days:
            raise ValidationError("too_far_in_advance", f"reservations cannot be made more than {max_days} days in advance")

        # 6. disponibilità del tavolo
        if not check_table_availability(self.db, table_id, start, end, exclude_reservation_id):
            raise ConflictError("time_conflict", "the table already has a reservation or an active session in that time range")

        # 7. prenotazioni contemporanee per utente
        max_concurrent = self.settings.get("max_concurrent_reservations")
        if max_concurrent:
            q = self.db.query(Reservation).filter(
                Reservation.user_id == user_id,
                Reservation.status.in_(BLOCKING_RESERVATION_STATUSES),
                Reservation.end_time > now
            )
            if exclude_reservation_id is not None:
                q = q.filter(Reservation.id != exclude_reservation_id)
            if q.count() >= max_concurrent:
                raise ValidationError("too_many_reservations",
                                      f"a user cannot hold more than {max_concurrent} upcoming reservations")
        return table

    # ─────────────────────────────────────────
    # OPERAZIONI
    # ─────────────────────────────────────────

    def create(self, data: dict, now: datetime | None = None) -> Reservation:
        missing = [f for f in ("user_id", "table_id", "start_time") if data.get(f) in (None, "")]
        if data.get("end_time") in (None, "") and data.get("duration_hours") in (None, ""):
            missing.append("end_time")
        if missing:
            raise ValidationError("missing_fields", f"missing required fields: {', '.join(missing)}")

        now = now or datetime.now()
        user_id = parse_optional_int(data.get("user_id"), "user_id")
        table_id = parse_optional_int(data.get("table_id"), "table_id")
        day, start, end = self._parse_window(data)

        with transaction(self.db):
            self._validate(table_id, user_id, start, end, now)
            reservation = Reservation(
                user_id=user_id,
                table_id=table_id,
                reservation_date=day,
                start_time=start,
                end_time=end,
                status=ReservationStatus.PENDING,
                notes=(data.get("notes") or None),
            )
            self.db.add(reservation)
            self.db.flush()
            log_action(self.db, table_name="reservations", record_id=reservation.id, user_id=user_id,
                       action="insert", note=f"table {table_id} {start:%Y-%m-%d %H:%M}-{end:%H:%M}")

        logger.info("Prenotazione %s creata (tavolo %s, %s)", reservation.id, table_id, start)
        return reservation

    def update(self, reservation_id: int, data: dict, user_id: int | None = None, now: datetime | None = None) -> Reservation:
        now = now or datetime.now()
        with transaction(self.db):
            reservation = self._get_for_update(reservation_id)
            if reservation.status.is_terminal:
                raise StateError("invalid_status", "cancelled or expired reservations cannot be modified")

            if "notes" in data:
                reservation.notes = data.get("notes") or None
            if data.get("user_id") not in (None, ""):
                reservation.user_id = parse_optional_int(data.get("user_id"), "user_id")

            if any(data.get(f) not in (None, "") for f in WINDOW_FIELDS):
                table_id = parse_optional_int(data.get("table_id"), "table_id") or reservation.table_id
                day, start, end = self._parse_window(data, existing=reservation)
                self._validate(table_id, reservation.user_id, start, end, now, exclude_reservation_id=reservation.id)
                reservation.table_id = table_id
                reservation.reservation_date = day
                reservation.start_time = start
                reservation.end_time = end

            log_action(self.db, table_name="reservations", record_id=reservation.id, user_id=user_id, action="update")
        return reservation

    def approve(self, reservation_id: int, admin_user_id: int | None) -> Reservation:
        with transaction(self.db):
            reservation = self._get_for_update(reservation_id)
            if reservation.status != ReservationStatus.PENDING:
                raise StateError("invalid_status", "only pending reservations can be approved")
            reservation.status = ReservationStatus.CONFIRMED
            reservation.handled_by = admin_user_id
            reservation.handled_at = datetime.now()
            log_action(self.db, table_name="reservations", record_id=reservation.id, user_id=admin_user_id,
                       action="reservation_approve")
        logger.info("Prenotazione %s approvata da %s", reservation_id, admin_user_id)
        return reservation

    def reject(self, reservation_id: int, admin_user_id: int | None, reason: str | None = None) -> Reservation:
        # Motivo facoltativo: senza motivo si salva il placeholder
        reason = (reason or "").strip() or DEFAULT_REJECT_REASON
        with transaction(self.db):
            reservation = self._get_for_update(reservation_id)
            if reservation.status != ReservationStatus.PENDING:
                raise StateError("invalid_status", "only pending reservations can be rejected")
            reservation.status = ReservationStatus.CANCELLED
            reservation.handled_by = admin_user_id
            reservation.handled_at = datetime.now()
            reservation.rejection_reason = reason[:255]
            log_action(self.db, table_name="reservations", record_id=reservation.id, user_id=admin_user_id,
                       action="reservation_reject", note=reason[:255])
        logger.info("Prenotazione %s rifiutata: %s", reservation_id, reason)
        return reservation

    def cancel(self, reservation_id: int, user_id: int | None = None) -> Reservation:
        with transaction(self.db):
            reservation = self._get_for_update(reservation_id)
            if reservation.status == ReservationStatus.CANCELLED:
                raise StateError("already_cancelled", "reservation is already cancelled")
            if reservation.status == ReservationStatus.EXPIRED:
                raise StateError("invalid_status", "expired reservations cannot be cancelled")
            if reservation.session is not None:
                raise StateError("reservation_in_use", "a session has already been started for this reservation")
            reservation.status = ReservationStatus.CANCELLED
            log_action(self.db, table_name="reservations", record_id=reservation.id, user_id=user_id,
                       action="reservation_cancel")
        return reservation

    def expire(self, reservation_id: int, user_id: int | None = None) -> Reservation:
        with transaction(self.db):
            reservation = self._get_for_update(reservation_id)
            if reservation.status not in BLOCKING_RESERVATION_STATUSES:
                raise StateError("invalid_status", "only pending or confirmed reservations can expire")
            reservation.status = ReservationStatus.EXPIRED
            log_action(self.db, table_name="reservations", record_id=reservation.id, user_id=user_id,
                       action="reservation_expire")
        return reservation

    def expire_overdue(self, now: datetime | None = None) -> list:
        """
        Scade le prenotazioni pending/confirmed mai trasformate in sessione
        oltre `auto_cancel_no_show_minutes` dall'inizio.
        """
        now = now or datetime.now()
        cutoff = now - timedelta(minutes=int(self.settings.get("auto_cancel_no_show_minutes") or 0))
        with transaction(self.db):
            overdue = self.db.query(Reservation).filter(
                Reservation.status.in_(BLOCKING_RESERVATION_STATUSES),
                Reservation.start_time <= cutoff,
                ~Reservation.session.has()
            ).with_for_update().all()
            for reservation in overdue:
                reservation.status = ReservationStatus.EXPIRED
                log_action(self.db, table_name="reservations", record_id=reservation.id, user_id=None,
                           action="reservation_expire", note="no-show")
        if overdue:
            logger.info("Scadute %d prenotazioni no-show", len(overdue))
        return overdue
