#!/usr/bin/env python3
"""
Script per ricreare e popolare il database con dati dimostrativi:
categorie di tavoli, tavoli, impostazioni di default e regole di prezzo.
"""

from datetime import time
from decimal import Decimal

from billiard_hall.database import engine, Base, get_db
from billiard_hall.models.table_categories import TableCategory
from billiard_hall.models.billiard_tables import BilliardTable
from billiard_hall.models.dynamic_pricing import DynamicPricingRule
from billiard_hall.models.system_settings import SystemSetting
from billiard_hall.models.enums import CategoryStatus, TableStatus, PricingType
from billiard_hall.services.settings_provider import DEFAULT_SETTINGS

CATEGORIES_DATA = [
    {"name": "Pool", "description": "American pool, 8ft", "base_price": "10.00", "tables": 6},
    {"name": "Snooker", "description": "Full size snooker, 12ft", "base_price": "14.00", "tables": 2},
    {"name": "Carom", "description": "Carom / three-cushion", "base_price": "12.00", "tables": 2},
]

# (tipo, percentuale, time_start, time_end, weekday)
PRICING_RULES_DATA = [
    (PricingType.PEAK_HOUR, "15", time(19, 0), time(23, 0), None),
    (PricingType.WEEKEND, "20", None, None, 6),
    (PricingType.WEEKEND, "20", None, None, 7),
    (PricingType.PROMOTION, "-25", time(14, 0), time(17, 0), None),
]


def create_database():
    """Ricrea il database da zero"""
    print("🗑️  Eliminazione e ricreazione database...")
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    print("✅ Database ricreato con successo!")


def seed_settings(db):
    """Scrive tutte le impostazioni con il loro valore di default"""
    print("⚙️  Creazione impostazioni...")
    for key, (setting_type, raw, description) in DEFAULT_SETTINGS.items():
        db.add(SystemSetting(setting_key=key, setting_value=raw, setting_type=setting_type, description=description))
    db.commit()
    print(f"✅ Create {len(DEFAULT_SETTINGS)} impostazioni")


def seed_tables(db):
    """Crea categorie, tavoli e regole di prezzo dinamico"""
    print("🎱 Creazione categorie e tavoli...")
    tables_created = 0
    for cat_data in CATEGORIES_DATA:
        category = TableCategory(
            name=cat_data["name"],
            description=cat_data["description"],
            base_price=Decimal(cat_data["base_price"]),
            status=CategoryStatus.ACTIVE,
        )
        db.add(category)
        db.flush()

        prefix = cat_data["name"][0].upper()
        for n in range(1, cat_data["tables"] + 1):
            db.add(BilliardTable(
                category_id=category.id,
                code=f"{prefix}{n:02d}",
                description=f"{cat_data['name']} table {n}",
                status=TableStatus.AVAILABLE,
            ))
            tables_created += 1

        for rule_type, percentage, time_start, time_end, weekday in PRICING_RULES_DATA:
            db.add(DynamicPricingRule(
                category_id=category.id,
                type=rule_type,
                percentage=Decimal(percentage),
                time_start=time_start,
                time_end=time_end,
                weekday=weekday,
                is_active=True,
                description=rule_type.description,
            ))

    db.commit()
    print(f"✅ Creati {len(CATEGORIES_DATA)} categorie e {tables_created} tavoli")


def main():
    """Funzione principale"""
    print("=" * 60)
    print("🎱 POPOLAMENTO DATABASE BILLIARD HALL 🎱")
    print("=" * 60)

    create_database()
    with get_db() as db:
        try:
            seed_settings(db)
            seed_tables(db)
        except Exception:
            db.rollback()
            raise

    print("\n" + "=" * 60)
    print("✅ POPOLAMENTO COMPLETATO CON SUCCESSO!")
    print("=" * 60)


if __name__ == "__main__":
    main()
