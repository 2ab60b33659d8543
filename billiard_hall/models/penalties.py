from sqlalchemy import Column, Integer, DECIMAL, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from billiard_hall.database import Base


class Penalty(Base):
    __tablename__ = "penalties"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE", onupdate="CASCADE"), nullable=False, index=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    reason = Column(String(255), nullable=False)
    applied_by = Column(Integer, nullable=False)  # staff che applica la multa
    created_at = Column(DateTime, server_default=func.now())

    # 🔗 Relazioni ORM
    session = relationship("GameSession", back_populates="penalties")

    def __repr__(self):
        return f"<Penalty(id={self.id}, session_id={self.session_id}, amount={self.amount})>"
