"""
Codici di stato/tipo del dominio.

Nel DB restano piccoli interi (SMALLINT); in Python sono IntEnum chiusi,
così un codice non previsto non arriva mai alla logica applicativa.
"""
from enum import IntEnum
from sqlalchemy import SmallInteger
from sqlalchemy.types import TypeDecorator


class CategoryStatus(IntEnum):
    INACTIVE = 0
    ACTIVE = 1


class TableStatus(IntEnum):
    AVAILABLE = 1
    OCCUPIED = 2
    MAINTENANCE = 3


class ReservationStatus(IntEnum):
    PENDING = 1
    CONFIRMED = 2
    CANCELLED = 3
    EXPIRED = 4

    @property
    def is_terminal(self) -> bool:
        return self in (ReservationStatus.CANCELLED, ReservationStatus.EXPIRED)


# Stati che impegnano il tavolo
BLOCKING_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


class SessionStatus(IntEnum):
    ACTIVE = 1
    CLOSED = 2
    CANCELLED = 3


class SessionType(IntEnum):
    FROM_RESERVATION = 1
    WALK_IN = 2


class PaymentMethod(IntEnum):
    CASH = 1
    CARD = 2
    QR = 3
    OTHER = 4


class PricingType(IntEnum):
    PEAK_HOUR = 1
    WEEKEND = 2
    HIGH_DEMAND = 3
    PROMOTION = 4
    EVENT = 5

    @property
    def description(self) -> str:
        return PRICING_TYPE_DESCRIPTIONS[self]


PRICING_TYPE_DESCRIPTIONS = {
    PricingType.PEAK_HOUR: "Peak Hour",
    PricingType.WEEKEND: "Weekend",
    PricingType.HIGH_DEMAND: "High Demand",
    PricingType.PROMOTION: "Promotion",
    PricingType.EVENT: "Event",
}


class IntEnumType(TypeDecorator):
    """Colonna SMALLINT letta/scritta come IntEnum."""

    impl = SmallInteger
    cache_ok = True

    def __init__(self, enum_class, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        # ValueError per codici fuori dominio
        return int(self.enum_class(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_class(value)
