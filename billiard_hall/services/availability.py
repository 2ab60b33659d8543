"""
Disponibilità dei tavoli: conflitti con prenotazioni e sessioni attive,
e calcolo degli slot prenotabili di una giornata.

Intervalli semiaperti [inizio, fine): due intervalli si sovrappongono
sse s1 < e2 AND s2 < e1. Una sessione attiva senza fine è considerata
illimitata verso il futuro.
"""
from datetime import datetime, date, timedelta
from sqlalchemy import or_
from sqlalchemy.orm import Session
from billiard_hall.models.reservations import Reservation
from billiard_hall.models.game_sessions import GameSession
from billiard_hall.models.enums import BLOCKING_RESERVATION_STATUSES, SessionStatus


def find_reservation_conflicts(db: Session, table_id: int, start_time: datetime, end_time: datetime,
                               exclude_reservation_id: int | None = None) -> list:
    q = db.query(Reservation).filter(
        Reservation.table_id == table_id,
        Reservation.status.in_(BLOCKING_RESERVATION_STATUSES),
        Reservation.start_time < end_time,
        Reservation.end_time > start_time
    )
    if exclude_reservation_id is not None:
        q = q.filter(Reservation.id != exclude_reservation_id)
    return q.order_by(Reservation.start_time).all()


def find_session_conflicts(db: Session, table_id: int, start_time: datetime, end_time: datetime) -> list:
    return db.query(GameSession).filter(
        GameSession.table_id == table_id,
        GameSession.status == SessionStatus.ACTIVE,
        GameSession.start_time < end_time,
        or_(GameSession.end_time.is_(None), GameSession.end_time > start_time)
    ).all()


def check_table_availability(db: Session, table_id: int, start_time: datetime, end_time: datetime,
                             exclude_reservation_id: int | None = None) -> bool:
    """True se nessuna prenotazione pending/confirmed né sessione attiva interseca l'intervallo."""
    if find_reservation_conflicts(db, table_id, start_time, end_time, exclude_reservation_id):
        return False
    return not find_session_conflicts(db, table_id, start_time, end_time)


def _busy_intervals(db: Session, table_id: int, day_start: datetime, day_end: datetime) -> list:
    busy = [
        (r.start_time, r.end_time)
        for r in find_reservation_conflicts(db, table_id, day_start, day_end)
    ]
    for s in find_session_conflicts(db, table_id, day_start, day_end):
        # sessione aperta: occupa il tavolo fino a fine giornata
        busy.append((s.start_time, s.end_time or day_end))
    return sorted(busy)


class AvailableSlots:
    """
    Sequenza lazy e riavviabile degli slot liberi di un tavolo in una data.

    Gli impegni del tavolo vengono letti alla prima iterazione e tenuti in
    cache; ogni nuova iterazione riparte dall'apertura.
    """

    def __init__(self, db: Session, table_id: int, day: date, settings, now: datetime | None = None):
        self.db = db
        self.table_id = table_id
        self.day = day
        self.settings = settings
        self.now = now
        self._busy = None

    @property
    def window(self) -> tuple:
        opening = datetime.combine(self.day, self.settings.get("opening_time"))
        closing = datetime.combine(self.day, self.settings.get("closing_time"))
        return opening, closing

    def _load_busy(self) -> list:
        if self._busy is None:
            opening, closing = self.window
            self._busy = _busy_intervals(self.db, self.table_id, opening, closing)
        return self._busy

    def __iter__(self):
        if not self.settings.is_business_day(self.day):
            return
        opening, closing = self.window
        step = timedelta(minutes=int(self.settings.get("slot_minutes") or 60))
        busy = self._load_busy()
        now = self.now or datetime.now()

        current = opening
        while current + step <= closing:
            slot_end = current + step
            if current >= now and not any(b_start < slot_end and current < b_end for b_start, b_end in busy):
                yield {"start_time": current, "end_time": slot_end}
            current = slot_end


def get_available_slots(db: Session, table_id: int, day: date, settings, now: datetime | None = None) -> AvailableSlots:
    return AvailableSlots(db, table_id, day, settings, now=now)
