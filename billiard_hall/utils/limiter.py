"""
Rate Limiter centralizzato.

Questo modulo esporta il limiter che viene inizializzato in billiard_hall/__init__.py
e può essere usato nei blueprint per applicare rate limiting.
"""
import os
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Limiter globale, associato all'app in create_app()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per hour", "50 per minute"],
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),  # Redis in produzione
    strategy="fixed-window"
)


def init_limiter(app):
    """Inizializza il limiter con l'app Flask"""
    limiter.init_app(app)
    return limiter
