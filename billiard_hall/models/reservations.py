from sqlalchemy import Column, Integer, Date, DateTime, Text, String, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from billiard_hall.database import Base
from billiard_hall.models.enums import ReservationStatus, IntEnumType


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        Index("idx_reservations_table_time", "table_id", "start_time", "end_time", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("billiard_tables.id", onupdate="CASCADE"), nullable=False)
    reservation_date = Column(Date, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(IntEnumType(ReservationStatus), nullable=False, default=ReservationStatus.PENDING)
    notes = Column(Text)

    # Chi ha approvato/rifiutato e perché
    handled_by = Column(Integer, nullable=True)
    handled_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    # 🔗 Relazioni ORM
    table = relationship("BilliardTable", back_populates="reservations")
    session = relationship("GameSession", back_populates="reservation", uselist=False)

    def __repr__(self):
        return f"<Reservation(id={self.id}, table_id={self.table_id}, status={self.status})>"
