from billiard_hall.routes.reservations import reservations_bp
from billiard_hall.routes.sessions import sessions_bp
from billiard_hall.routes.payments import payments_bp
from billiard_hall.routes.settings import settings_bp
from billiard_hall.routes.pricing import pricing_bp
from billiard_hall.routes.activity_log import log_bp

# Esportiamo tutti i blueprint in una lista centralizzata
all_blueprints = [
    reservations_bp,
    sessions_bp,
    payments_bp,
    settings_bp,
    pricing_bp,
    log_bp,
]
