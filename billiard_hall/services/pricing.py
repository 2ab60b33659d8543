"""
💰 Calcolo del costo di una sessione con prezzi dinamici.

costo = prezzo_orario * ore * (1 + Σ percentuali_regole / 100)

Le regole si valutano sull'istante di inizio sessione, non sull'intera
durata: una sessione che attraversa il confine di una fascia oraria paga
la tariffa della fascia in cui è iniziata.

Le percentuali negative (promozioni) possono portare il prezzo sotto la
tariffa base: nessun minimo viene applicato.
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Session
from billiard_hall.database import transaction
from billiard_hall.models.table_categories import TableCategory
from billiard_hall.models.dynamic_pricing import DynamicPricingRule
from billiard_hall.models.enums import PricingType
from billiard_hall.services.activity_log import log_action
from billiard_hall.utils.errors import NotFoundError, ValidationError
from billiard_hall.utils.helpers import (
    round_money, parse_decimal, parse_time, parse_date, parse_optional_int, parse_enum,
)

SECONDS_PER_HOUR = Decimal(3600)
ZERO = Decimal("0")


def get_category(db: Session, category_id: int) -> TableCategory:
    category = db.get(TableCategory, category_id)
    if not category:
        raise NotFoundError("category_not_found", "table category not found")
    return category


def get_active_rules(db: Session, category_id: int) -> list:
    return db.query(DynamicPricingRule).filter(
        DynamicPricingRule.category_id == category_id,
        DynamicPricingRule.is_active.is_(True)
    ).order_by(DynamicPricingRule.id).all()


def is_rule_applicable(rule: DynamicPricingRule, moment: datetime) -> bool:
    """
    True se tutti i vincoli presenti della regola sono soddisfatti in `moment`.
    Un vincolo assente (NULL) vale come jolly.
    """
    # Fascia oraria: servono entrambi gli estremi, inclusi
    if rule.time_start is not None and rule.time_end is not None:
        # confronto a secondi interi come su HH:MM:SS
        clock = moment.time().replace(microsecond=0)
        if clock < rule.time_start or clock > rule.time_end:
            return False

    # Giorno della settimana ISO (1=lun .. 7=dom)
    if rule.weekday is not None:
        if moment.isoweekday() != rule.weekday:
            return False

    # Intervallo di date, estremi inclusi
    if rule.date_start is not None and rule.date_end is not None:
        if not (rule.date_start <= moment.date() <= rule.date_end):
            return False

    return True


def _zero_result(base_price: Decimal) -> dict:
    return {
        "base_price": round_money(base_price),
        "duration_hours": round_money(ZERO),
        "base_cost": round_money(ZERO),
        "adjustments": [],
        "total_percentage_adjustment": round_money(ZERO),
        "final_price": round_money(ZERO),
    }


def calculate_session_price(db: Session, category_id: int, start_time: datetime, end_time: datetime | None = None) -> dict:
    """
    Calcola il costo di una sessione sulla categoria del tavolo.

    Args:
        db: Sessione database attiva
        category_id: ID della categoria tavolo
        start_time: Inizio sessione
        end_time: Fine sessione (default: adesso, per le stime in corso)

    Returns:
        dict con base_price, duration_hours, base_cost, adjustments,
        total_percentage_adjustment, final_price (Decimal a 2 decimali)
    """
    category = get_category(db, category_id)
    base_price = Decimal(category.base_price)
    end = end_time or datetime.now()

    seconds = Decimal(str((end - start_time).total_seconds()))
    duration_hours = seconds / SECONDS_PER_HOUR
    if duration_hours <= 0:
        return _zero_result(base_price)

    adjustments = []
    total_percentage = ZERO
    for rule in get_active_rules(db, category_id):
        if is_rule_applicable(rule, start_time):
            percentage = Decimal(rule.percentage)
            adjustments.append({
                "rule_id": rule.id,
                "type": int(rule.type),
                "percentage": percentage,
                "description": rule.type.description,
            })
            total_percentage += percentage

    # Precisione piena fino al return
    base_cost = base_price * duration_hours
    adjustment = base_cost * total_percentage / Decimal(100)
    final_price = base_cost + adjustment

    return {
        "base_price": round_money(base_price),
        "duration_hours": round_money(duration_hours),
        "base_cost": round_money(base_cost),
        "adjustments": adjustments,
        "total_percentage_adjustment": round_money(total_percentage),
        "final_price": round_money(final_price),
    }


def get_applicable_pricing(db: Session, category_id: int, moment: datetime | None = None) -> list:
    """Regole attive che si applicherebbero in `moment` (sola lettura)."""
    get_category(db, category_id)
    moment = moment or datetime.now()
    return [rule for rule in get_active_rules(db, category_id) if is_rule_applicable(rule, moment)]


# ─────────────────────────────────────────
# GESTIONE REGOLE
# ─────────────────────────────────────────

RULE_FIELDS = (
    "category_id", "type", "percentage", "time_start", "time_end",
    "weekday", "date_start", "date_end", "is_active", "description",
)


def _parse_flag(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, str)) and str(value).strip().lower() in ("1", "true", "yes", "0", "false", "no"):
        return str(value).strip().lower() in ("1", "true", "yes")
    raise ValidationError("invalid_field", f"{field} must be a boolean")


def _rule_values(db: Session, data: dict, rule: DynamicPricingRule | None = None) -> dict:
    """
    Valida i campi di una regola. In modifica i campi assenti mantengono il
    valore attuale; un campo opzionale passato come null viene azzerato.
    """
    merged = {field: getattr(rule, field) for field in RULE_FIELDS} if rule else {}
    merged.update({k: v for k, v in data.items() if k in RULE_FIELDS})

    category_id = parse_optional_int(merged.get("category_id"), "category_id")
    if category_id is None:
        raise ValidationError("missing_fields", "category_id is required")
    get_category(db, category_id)

    rule_type = parse_enum(PricingType, merged.get("type"), "type")
    percentage = parse_decimal(merged.get("percentage"), "percentage")
    if percentage < -100 or percentage > 1000:
        raise ValidationError("invalid_percentage", "percentage must be between -100 and 1000")

    time_start = parse_time(merged["time_start"], "time_start") if merged.get("time_start") else None
    time_end = parse_time(merged["time_end"], "time_end") if merged.get("time_end") else None
    if time_start and time_end and time_start >= time_end:
        raise ValidationError("invalid_time_range", "time_start must be before time_end")

    weekday = parse_optional_int(merged.get("weekday"), "weekday")
    if weekday is not None and not 1 <= weekday <= 7:
        raise ValidationError("invalid_weekday", "weekday must be between 1 (Monday) and 7 (Sunday)")

    date_start = parse_date(merged["date_start"], "date_start") if merged.get("date_start") else None
    date_end = parse_date(merged["date_end"], "date_end") if merged.get("date_end") else None
    if date_start and date_end and date_start > date_end:
        raise ValidationError("invalid_date_range", "date_start must not be after date_end")

    is_active = merged.get("is_active")
    return {
        "category_id": category_id,
        "type": rule_type,
        "percentage": percentage,
        "time_start": time_start,
        "time_end": time_end,
        "weekday": weekday,
        "date_start": date_start,
        "date_end": date_end,
        "is_active": True if is_active is None else _parse_flag(is_active, "is_active"),
        "description": (merged.get("description") or None),
    }


def list_pricing_rules(db: Session, category_id: int | None = None, active: bool | None = None) -> list:
    q = db.query(DynamicPricingRule)
    if category_id is not None:
        q = q.filter(DynamicPricingRule.category_id == category_id)
    if active is not None:
        q = q.filter(DynamicPricingRule.is_active.is_(active))
    return q.order_by(DynamicPricingRule.category_id, DynamicPricingRule.id).all()


def get_pricing_rule(db: Session, rule_id: int) -> DynamicPricingRule:
    rule = db.get(DynamicPricingRule, rule_id)
    if not rule:
        raise NotFoundError("pricing_rule_not_found", "pricing rule not found")
    return rule


def create_pricing_rule(db: Session, data: dict, user_id: int | None = None) -> DynamicPricingRule:
    """Crea una regola di prezzo dinamico validandone i vincoli."""
    rule = DynamicPricingRule(**_rule_values(db, data))
    with transaction(db):
        db.add(rule)
        db.flush()
        log_action(db, table_name="dynamic_pricing", record_id=rule.id, user_id=user_id,
                   action="insert", note=f"{rule.type.description} {rule.percentage}%")
    return rule


def update_pricing_rule(db: Session, rule_id: int, data: dict, user_id: int | None = None) -> DynamicPricingRule:
    """Modifica parziale (anche solo is_active) con le stesse verifiche della creazione."""
    rule = get_pricing_rule(db, rule_id)
    values = _rule_values(db, data, rule)
    with transaction(db):
        for field, value in values.items():
            setattr(rule, field, value)
        log_action(db, table_name="dynamic_pricing", record_id=rule.id, user_id=user_id,
                   action="update", note=f"{rule.type.description} {rule.percentage}% active={rule.is_active}")
    return rule


def delete_pricing_rule(db: Session, rule_id: int, user_id: int | None = None) -> None:
    rule = get_pricing_rule(db, rule_id)
    with transaction(db):
        log_action(db, table_name="dynamic_pricing", record_id=rule.id, user_id=user_id,
                   action="delete", note=f"{rule.type.description} {rule.percentage}%")
        db.delete(rule)
