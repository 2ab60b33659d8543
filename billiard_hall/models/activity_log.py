from sqlalchemy import Column, Integer, String, Enum, DateTime
from sqlalchemy.sql import func
from billiard_hall.database import Base


class ActivityLog(Base):
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True, index=True)
    table_name = Column(String(50), nullable=False)
    record_id = Column(Integer, nullable=False)
    user_id = Column(Integer, nullable=True)  # NULL = azione automatica
    action = Column(Enum(
        "insert",
        "update",
        "delete",
        "reservation_approve",
        "reservation_reject",
        "reservation_cancel",
        "reservation_expire",
        "session_start",
        "session_close",
        "session_cancel",
        "penalty_add",
        "payment_record",
        "setting_update",
        name="action_enum"
    ), nullable=False)
    note = Column(String(255))
    timestamp = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<ActivityLog(id={self.id}, table='{self.table_name}', action='{self.action}')>"
