from sqlalchemy import Column, Integer, DECIMAL, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from billiard_hall.database import Base
from billiard_hall.models.enums import PaymentMethod, IntEnumType


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", onupdate="CASCADE"), nullable=False, index=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    method = Column(IntEnumType(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    created_at = Column(DateTime, server_default=func.now())

    # 🔗 Relazioni ORM
    session = relationship("GameSession", back_populates="payments")

    def __repr__(self):
        return f"<Payment(id={self.id}, session_id={self.session_id}, amount={self.amount}, method={self.method})>"
