import os

# DB in memoria condiviso (StaticPool), da impostare prima di importare il pacchetto
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime
from decimal import Decimal

import pytest

from billiard_hall import create_app
from billiard_hall.database import engine, Base, SessionLocal
from billiard_hall.models.table_categories import TableCategory
from billiard_hall.models.billiard_tables import BilliardTable
from billiard_hall.models.reservations import Reservation
from billiard_hall.models.game_sessions import GameSession
from billiard_hall.models.dynamic_pricing import DynamicPricingRule
from billiard_hall.models.enums import (
    CategoryStatus, TableStatus, ReservationStatus, SessionStatus, SessionType, PricingType,
)
from billiard_hall.services.settings_provider import SettingsProvider

# 2030-01-05 è sabato, 2030-01-07 lunedì, 2030-01-08 martedì
SATURDAY = datetime(2030, 1, 5)
MONDAY = datetime(2030, 1, 7)
TUESDAY = datetime(2030, 1, 8)


def at(day: datetime, hour: int, minute: int = 0) -> datetime:
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app():
    return create_app({"TESTING": True, "RATELIMIT_ENABLED": False})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def settings(db):
    return SettingsProvider(db)


@pytest.fixture
def category(db):
    category = TableCategory(name="Pool", base_price=Decimal("10.00"), status=CategoryStatus.ACTIVE)
    db.add(category)
    db.commit()
    return category


@pytest.fixture
def table(db, category):
    table = BilliardTable(category_id=category.id, code="P01", status=TableStatus.AVAILABLE)
    db.add(table)
    db.commit()
    return table


@pytest.fixture
def make_rule(db, category):
    def _make(percentage, rule_type=PricingType.WEEKEND, **fields):
        rule = DynamicPricingRule(
            category_id=fields.pop("category_id", category.id),
            type=rule_type,
            percentage=Decimal(str(percentage)),
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db.add(rule)
        db.commit()
        return rule
    return _make


@pytest.fixture
def make_reservation(db, table):
    """Inserisce una prenotazione senza passare dalla validazione."""
    def _make(start, end, status=ReservationStatus.PENDING, user_id=1, table_id=None):
        reservation = Reservation(
            user_id=user_id,
            table_id=table_id or table.id,
            reservation_date=start.date(),
            start_time=start,
            end_time=end,
            status=status,
        )
        db.add(reservation)
        db.commit()
        return reservation
    return _make


@pytest.fixture
def make_session(db, table):
    """Sessione attiva già aperta, con il tavolo occupato."""
    def _make(start, table_id=None, user_id=None):
        session = GameSession(
            user_id=user_id,
            table_id=table_id or table.id,
            start_time=start,
            session_type=SessionType.WALK_IN,
            final_cost=Decimal("0"),
            status=SessionStatus.ACTIVE,
        )
        db.add(session)
        db.get(BilliardTable, session.table_id).status = TableStatus.OCCUPIED
        db.commit()
        return session
    return _make
