from sqlalchemy import Column, Integer, String, Text, DECIMAL
from sqlalchemy.orm import relationship
from billiard_hall.database import Base
from billiard_hall.models.enums import CategoryStatus, IntEnumType


class TableCategory(Base):
    __tablename__ = "table_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text)
    base_price = Column(DECIMAL(10, 2), nullable=False)  # prezzo orario
    status = Column(IntEnumType(CategoryStatus), nullable=False, default=CategoryStatus.ACTIVE)

    # 🔗 Relazioni ORM
    tables = relationship("BilliardTable", back_populates="category")
    pricing_rules = relationship("DynamicPricingRule", back_populates="category", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<TableCategory(id={self.id}, name='{self.name}', base_price={self.base_price})>"
