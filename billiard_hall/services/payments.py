"""
💳 Incasso delle sessioni.

Un pagamento non modifica mai final_cost: se la sessione è ancora attiva
viene prima chiusa con il calcolo tariffario (SessionService.close_locked),
nella stessa transazione e con la riga della sessione bloccata.
Due richieste concorrenti sulla stessa sessione si serializzano sul lock:
la seconda vede la sessione già chiusa e il saldo aggiornato.
"""
import logging
from datetime import datetime
from decimal import Decimal
from sqlalchemy import func
from sqlalchemy.orm import Session
from billiard_hall.database import transaction
from billiard_hall.models.payments import Payment
from billiard_hall.models.enums import PaymentMethod, SessionStatus
from billiard_hall.services.activity_log import log_action
from billiard_hall.services.sessions import SessionService
from billiard_hall.services.settings_provider import SettingsProvider
from billiard_hall.utils.errors import ValidationError, NotFoundError, ConflictError, StateError
from billiard_hall.utils.helpers import round_money, parse_decimal, parse_enum

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class PaymentService:

    def __init__(self, db: Session, settings: SettingsProvider | None = None):
        self.db = db
        self.settings = settings or SettingsProvider(db)
        self.sessions = SessionService(db, self.settings)

    def get(self, payment_id: int) -> Payment:
        payment = self.db.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("payment_not_found", "payment not found")
        return payment

    def list_for_session(self, session_id: int) -> list:
        self.sessions.get(session_id)
        return self.db.query(Payment).filter(Payment.session_id == session_id).order_by(Payment.id).all()

    def amount_paid(self, session_id: int) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
            Payment.session_id == session_id
        ).scalar()
        return Decimal(str(total))

    def balance(self, session_id: int) -> Decimal:
        """Saldo residuo di una sessione chiusa (final_cost - pagato)."""
        session = self.sessions.get(session_id)
        return round_money(Decimal(session.final_cost or 0) - self.amount_paid(session_id))

    def record_payment(self, session_id: int, amount=None, method=None, user_id: int | None = None,
                       end_time: datetime | None = None) -> dict:
        """
        Registra un pagamento.

        Args:
            session_id: Sessione da incassare
            amount: Importo (default: tutto il saldo residuo)
            method: PaymentMethod, codice o nome (default: cash)
            user_id: Operatore che registra il pagamento
            end_time: Fine sessione se la chiusura avviene qui

        Returns:
            dict con payment, session, closure (None se la sessione era già
            chiusa), amount_paid e balance
        """
        method = parse_enum(PaymentMethod, method, "method", default=PaymentMethod.CASH)
        if amount not in (None, ""):
            amount = parse_decimal(amount, "amount")
            if amount <= 0:
                raise ValidationError("invalid_amount", "payment amount must be greater than zero")
        else:
            amount = None

        with transaction(self.db):
            session = self.sessions.lock(session_id)
            if session.status == SessionStatus.CANCELLED:
                raise StateError("session_cancelled", "cancelled sessions cannot take payments")

            closure = None
            if session.status == SessionStatus.ACTIVE:
                closure = self.sessions.close_locked(session, end_time, user_id)

            paid = self.amount_paid(session.id)
            balance = Decimal(session.final_cost) - paid
            # sessione appena chiusa a costo zero: si chiude senza pagamento
            if balance <= 0 and closure is None:
                raise ConflictError("already_settled", "the session is already fully paid")

            if amount is None:
                amount = balance
            elif amount > balance:
                raise ValidationError("amount_exceeds_balance", f"amount exceeds the outstanding balance of {round_money(balance)}")

            payment = None
            if amount > 0:
                payment = Payment(session_id=session.id, amount=round_money(amount), method=method)
                self.db.add(payment)
                self.db.flush()
                log_action(self.db, table_name="payments", record_id=payment.id, user_id=user_id,
                           action="payment_record", note=f"session {session.id}: {payment.amount} ({method.name.lower()})")
                paid += payment.amount

        if payment is not None:
            logger.info("Pagamento %s registrato sulla sessione %s: %s", payment.id, session.id, payment.amount)
        return {
            "payment": payment,
            "session": session,
            "closure": closure,
            "amount_paid": round_money(paid),
            "balance": round_money(Decimal(session.final_cost) - paid),
        }

    def finalize(self, session_id: int, method=None, user_id: int | None = None,
                 end_time: datetime | None = None) -> dict:
        """Chiude la sessione e incassa l'intero importo dovuto in un colpo solo."""
        return self.record_payment(session_id, amount=None, method=method, user_id=user_id, end_time=end_time)
