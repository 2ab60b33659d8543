# Importa tutti i modelli: i relationship() per nome devono trovare le classi registrate
from billiard_hall.models.table_categories import TableCategory
from billiard_hall.models.billiard_tables import BilliardTable
from billiard_hall.models.reservations import Reservation
from billiard_hall.models.game_sessions import GameSession
from billiard_hall.models.penalties import Penalty
from billiard_hall.models.payments import Payment
from billiard_hall.models.dynamic_pricing import DynamicPricingRule
from billiard_hall.models.system_settings import SystemSetting
from billiard_hall.models.activity_log import ActivityLog

__all__ = [
    "TableCategory",
    "BilliardTable",
    "Reservation",
    "GameSession",
    "Penalty",
    "Payment",
    "DynamicPricingRule",
    "SystemSetting",
    "ActivityLog",
]
