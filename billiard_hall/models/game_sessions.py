from sqlalchemy import Column, Integer, DateTime, DECIMAL, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from billiard_hall.database import Base
from billiard_hall.models.enums import SessionStatus, SessionType, IntEnumType


class GameSession(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        Index("idx_sessions_table_status", "table_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="SET NULL", onupdate="CASCADE"), nullable=True)
    table_id = Column(Integer, ForeignKey("billiard_tables.id", onupdate="CASCADE"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)  # NULL finché attiva
    session_type = Column(IntEnumType(SessionType), nullable=False, default=SessionType.WALK_IN)
    final_cost = Column(DECIMAL(10, 2), nullable=False, default=0)
    status = Column(IntEnumType(SessionStatus), nullable=False, default=SessionStatus.ACTIVE)
    created_at = Column(DateTime, server_default=func.now())

    # 🔗 Relazioni ORM
    table = relationship("BilliardTable", back_populates="sessions")
    reservation = relationship("Reservation", back_populates="session")
    penalties = relationship("Penalty", back_populates="session", order_by="Penalty.id")
    payments = relationship("Payment", back_populates="session", order_by="Payment.id")

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def __repr__(self):
        return f"<GameSession(id={self.id}, table_id={self.table_id}, status={self.status})>"
