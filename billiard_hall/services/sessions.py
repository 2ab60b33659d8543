"""
🎱 Ciclo di vita delle sessioni di gioco.

    (nessuna) ──start──► ACTIVE ──close──► CLOSED    (terminale)
                           └────cancel──► CANCELLED (terminale)

Sessione e stato del tavolo cambiano sempre nella stessa transazione,
con lock di riga sul tavolo (start) o sulla sessione (close/cancel/multe):
non esiste un tavolo OCCUPIED senza sessione attiva né il contrario.

Il costo finale si calcola solo qui (close): tariffa dinamica + multe.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy import func
from sqlalchemy.orm import Session
from billiard_hall.database import transaction
from billiard_hall.models.billiard_tables import BilliardTable
from billiard_hall.models.game_sessions import GameSession
from billiard_hall.models.penalties import Penalty
from billiard_hall.models.reservations import Reservation
from billiard_hall.models.enums import (
    SessionStatus, SessionType, TableStatus, ReservationStatus, BLOCKING_RESERVATION_STATUSES,
)
from billiard_hall.services.activity_log import log_action
from billiard_hall.services.pricing import calculate_session_price
from billiard_hall.services.settings_provider import SettingsProvider
from billiard_hall.utils.errors import ValidationError, NotFoundError, ConflictError, StateError
from billiard_hall.utils.helpers import round_money, parse_decimal, parse_optional_int, parse_enum

logger = logging.getLogger(__name__)

# Un walk-in non può partire se una prenotazione inizia entro questa finestra
WALK_IN_LOOKAHEAD = timedelta(hours=2)


class SessionService:

    def __init__(self, db: Session, settings: SettingsProvider | None = None):
        self.db = db
        self.settings = settings or SettingsProvider(db)

    # ─────────────────────────────────────────
    # LETTURA
    # ─────────────────────────────────────────

    def get(self, session_id: int) -> GameSession:
        session = self.db.get(GameSession, session_id)
        if not session:
            raise NotFoundError("session_not_found", "session not found")
        return session

    def lock(self, session_id: int) -> GameSession:
        """SELECT ... FOR UPDATE sulla sessione; da usare dentro transaction()."""
        session = self.db.query(GameSession).filter(
            GameSession.id == session_id
        ).with_for_update().first()
        if not session:
            raise NotFoundError("session_not_found", "session not found")
        return session

    def _lock_table(self, table_id: int) -> BilliardTable:
        table = self.db.query(BilliardTable).filter(
            BilliardTable.id == table_id
        ).with_for_update().first()
        if not table:
            raise NotFoundError("table_not_found", "table not found")
        return table

    def list_active(self) -> list:
        return self.db.query(GameSession).filter(
            GameSession.status == SessionStatus.ACTIVE
        ).order_by(GameSession.start_time.asc()).all()

    def find_active_for_table(self, table_id: int) -> GameSession | None:
        return self.db.query(GameSession).filter(
            GameSession.table_id == table_id,
            GameSession.status == SessionStatus.ACTIVE
        ).first()

    def list_penalties(self, session_id: int) -> list:
        self.get(session_id)
        return self.db.query(Penalty).filter(Penalty.session_id == session_id).order_by(Penalty.id).all()

    def total_penalties(self, session_id: int) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(Penalty.amount), 0)).filter(
            Penalty.session_id == session_id
        ).scalar()
        return Decimal(str(total))

    # ─────────────────────────────────────────
    # START
    # ─────────────────────────────────────────

    def _check_reservation(self, reservation_id: int, table_id: int, now: datetime) -> Reservation:
        reservation = self.db.get(Reservation, reservation_id)
        if not reservation:
            raise NotFoundError("reservation_not_found", "reservation not found")
        if reservation.status != ReservationStatus.CONFIRMED:
            raise StateError("reservation_not_confirmed", "reservation is not confirmed")
        if reservation.table_id != table_id:
            raise ValidationError("table_mismatch", "the reservation is for another table")

        grace = int(self.settings.get("grace_period_minutes") or 0)
        if abs((reservation.start_time - now).total_seconds()) > grace * 60:
            raise ValidationError("outside_checkin_window",
                                  f"the reservation can only be started within {grace} minutes of its start time")
        if reservation.session is not None:
            raise ConflictError("session_exists", "a session already exists for this reservation")
        return reservation

    def _check_upcoming_reservations(self, table_id: int, now: datetime) -> None:
        upcoming = self.db.query(Reservation).filter(
            Reservation.table_id == table_id,
            Reservation.status.in_(BLOCKING_RESERVATION_STATUSES),
            Reservation.start_time < now + WALK_IN_LOOKAHEAD,
            Reservation.end_time > now,
            ~Reservation.session.has()
        ).order_by(Reservation.start_time).first()
        if upcoming:
            minutes = max(0, int((upcoming.start_time - now).total_seconds() // 60))
            raise ConflictError("upcoming_reservation",
                                f"cannot start a walk-in session: a reservation starts in {minutes} minutes")

    def start(self, data: dict, user_id: int | None = None, now: datetime | None = None) -> GameSession:
        table_id = parse_optional_int(data.get("table_id"), "table_id")
        if table_id is None:
            raise ValidationError("missing_table", "table_id is required")
        reservation_id = parse_optional_int(data.get("reservation_id"), "reservation_id")
        customer_id = parse_optional_int(data.get("user_id"), "user_id")
        requested_type = None
        if data.get("session_type") not in (None, ""):
            requested_type = parse_enum(SessionType, data.get("session_type"), "session_type")
        if requested_type == SessionType.FROM_RESERVATION and reservation_id is None:
            raise ValidationError("missing_reservation", "reservation_id is required for reservation sessions")
        now = now or datetime.now()

        with transaction(self.db):
            table = self._lock_table(table_id)
            if table.status == TableStatus.MAINTENANCE:
                raise ConflictError("table_maintenance", "table is under maintenance")
            if table.status == TableStatus.OCCUPIED or self.find_active_for_table(table_id):
                raise ConflictError("table_occupied", "table is already occupied")

            if reservation_id is not None:
                reservation = self._check_reservation(reservation_id, table_id, now)
                session_type = SessionType.FROM_RESERVATION
                customer_id = reservation.user_id
            else:
                self._check_upcoming_reservations(table_id, now)
                session_type = SessionType.WALK_IN

            session = GameSession(
                user_id=customer_id,
                reservation_id=reservation_id,
                table_id=table_id,
                start_time=now,
                end_time=None,
                session_type=session_type,
                final_cost=Decimal("0"),
                status=SessionStatus.ACTIVE,
            )
            self.db.add(session)
            table.status = TableStatus.OCCUPIED
            self.db.flush()
            log_action(self.db, table_name="sessions", record_id=session.id, user_id=user_id,
                       action="session_start", note=f"table {table.code} ({session_type.name.lower()})")

        logger.info("Sessione %s aperta sul tavolo %s", session.id, table_id)
        return session

    # ─────────────────────────────────────────
    # CLOSE
    # ─────────────────────────────────────────

    def close_locked(self, session: GameSession, end_time: datetime | None = None, user_id: int | None = None) -> dict:
        """
        Chiude una sessione già bloccata con lock() dentro una transazione aperta.

        Non fa commit: lo usa anche PaymentService per chiudere e incassare
        nella stessa transazione.
        """
        if not session.is_active:
            raise StateError("session_not_active", "session is not active")
        end = end_time or datetime.now()
        if end < session.start_time:
            raise ValidationError("invalid_end_time", "end_time cannot be before the session start")

        table = self._lock_table(session.table_id)
        pricing = calculate_session_price(self.db, table.category_id, session.start_time, end)
        penalties = self.db.query(Penalty).filter(Penalty.session_id == session.id).order_by(Penalty.id).all()
        total_penalties = sum((Decimal(p.amount) for p in penalties), Decimal("0"))
        final_cost = round_money(pricing["final_price"] + total_penalties)

        session.end_time = end
        session.final_cost = final_cost
        session.status = SessionStatus.CLOSED
        table.status = TableStatus.AVAILABLE
        self.db.flush()
        log_action(self.db, table_name="sessions", record_id=session.id, user_id=user_id,
                   action="session_close", note=f"final cost {final_cost}")

        logger.info("Sessione %s chiusa: %s (multe %s)", session.id, final_cost, total_penalties)
        return {
            "session": session,
            "pricing": pricing,
            "penalties": penalties,
            "total_penalties": round_money(total_penalties),
            "final_cost": final_cost,
        }

    def close(self, session_id: int, end_time: datetime | None = None, user_id: int | None = None) -> dict:
        with transaction(self.db):
            session = self.lock(session_id)
            result = self.close_locked(session, end_time, user_id)
        return result

    def cancel(self, session_id: int, user_id: int | None = None) -> GameSession:
        with transaction(self.db):
            session = self.lock(session_id)
            if session.status != SessionStatus.ACTIVE:
                raise StateError("session_not_active", "session is not active")
            table = self._lock_table(session.table_id)
            session.status = SessionStatus.CANCELLED
            session.end_time = datetime.now()
            session.final_cost = Decimal("0")
            table.status = TableStatus.AVAILABLE
            log_action(self.db, table_name="sessions", record_id=session.id, user_id=user_id,
                       action="session_cancel")
        logger.info("Sessione %s annullata", session_id)
        return session

    def estimate(self, session_id: int, now: datetime | None = None) -> dict:
        """Costo maturato finora da una sessione attiva (nessuna scrittura)."""
        session = self.get(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise StateError("session_not_active", "session is not active")
        table = self.db.get(BilliardTable, session.table_id)
        pricing = calculate_session_price(self.db, table.category_id, session.start_time, now or datetime.now())
        total_penalties = self.total_penalties(session.id)
        return {
            "session": session,
            "pricing": pricing,
            "total_penalties": round_money(total_penalties),
            "estimated_cost": round_money(pricing["final_price"] + total_penalties),
        }

    # ─────────────────────────────────────────
    # MULTE
    # ─────────────────────────────────────────

    def add_penalty(self, session_id: int, amount, reason: str, applied_by: int | None) -> Penalty:
        amount = parse_decimal(amount, "amount")
        if amount <= 0:
            raise ValidationError("invalid_amount", "penalty amount must be greater than zero")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("missing_fields", "reason is required")
        if applied_by is None:
            raise ValidationError("missing_fields", "applied_by is required")

        with transaction(self.db):
            session = self.lock(session_id)
            if session.status == SessionStatus.CLOSED:
                raise StateError("session_closed", "penalties cannot be added to a closed session")
            if session.status != SessionStatus.ACTIVE:
                raise StateError("session_not_active", "session is not active")
            penalty = Penalty(session_id=session.id, amount=round_money(amount), reason=reason[:255], applied_by=applied_by)
            self.db.add(penalty)
            self.db.flush()
            log_action(self.db, table_name="penalties", record_id=penalty.id, user_id=applied_by,
                       action="penalty_add", note=f"session {session.id}: {penalty.amount}")
        return penalty
