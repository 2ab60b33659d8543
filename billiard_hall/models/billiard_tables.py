from sqlalchemy import Column, Integer, String, Text, ForeignKey
from sqlalchemy.orm import relationship
from billiard_hall.database import Base
from billiard_hall.models.enums import TableStatus, IntEnumType


class BilliardTable(Base):
    __tablename__ = "billiard_tables"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("table_categories.id", onupdate="CASCADE"), nullable=False)
    code = Column(String(20), unique=True, nullable=False)
    description = Column(Text)
    # Occupied viene impostato solo da SessionService, mai a mano
    status = Column(IntEnumType(TableStatus), nullable=False, default=TableStatus.AVAILABLE)

    # 🔗 Relazioni ORM
    category = relationship("TableCategory", back_populates="tables")
    reservations = relationship("Reservation", back_populates="table")
    sessions = relationship("GameSession", back_populates="table")

    def __repr__(self):
        return f"<BilliardTable(id={self.id}, code='{self.code}', status={self.status})>"
