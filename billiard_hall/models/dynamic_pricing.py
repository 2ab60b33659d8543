from sqlalchemy import Column, Integer, SmallInteger, DECIMAL, Time, Date, Boolean, String, ForeignKey
from sqlalchemy.orm import relationship
from billiard_hall.database import Base
from billiard_hall.models.enums import PricingType, IntEnumType


class DynamicPricingRule(Base):
    __tablename__ = "dynamic_pricing"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("table_categories.id", ondelete="CASCADE", onupdate="CASCADE"), nullable=False)
    type = Column(IntEnumType(PricingType), nullable=False)
    percentage = Column(DECIMAL(6, 2), nullable=False)  # +50 / -20

    # Vincoli opzionali: NULL = sempre valido
    time_start = Column(Time, nullable=True)
    time_end = Column(Time, nullable=True)
    weekday = Column(SmallInteger, nullable=True)  # 1=lun .. 7=dom
    date_start = Column(Date, nullable=True)
    date_end = Column(Date, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    description = Column(String(255))

    # 🔗 Relazioni ORM
    category = relationship("TableCategory", back_populates="pricing_rules")

    def __repr__(self):
        return f"<DynamicPricingRule(id={self.id}, type={self.type}, percentage={self.percentage})>"
