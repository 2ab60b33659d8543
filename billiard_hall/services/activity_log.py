from billiard_hall.models.activity_log import ActivityLog


# Utility importabile per registrare log ovunque
def log_action(db, *, table_name: str, record_id: int, user_id: int | None, action: str, note: str | None = None):
    entry = ActivityLog(table_name=table_name, record_id=record_id, user_id=user_id, action=action, note=note)
    db.add(entry)
    # commit delegato al chiamante per transazioni atomiche
