import logging
import os
from flask import Flask, jsonify
from dotenv import load_dotenv
from flask_limiter.errors import RateLimitExceeded
from werkzeug.exceptions import HTTPException
from billiard_hall.database import engine, Base
from billiard_hall.routes import all_blueprints  # ✅ import centralizzato
from billiard_hall.utils.errors import ApiError
from billiard_hall.utils.limiter import init_limiter
import billiard_hall.models  # noqa: F401  registra i modelli su Base.metadata


def create_app(test_config=None):
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")
    app.json.sort_keys = False
    if test_config:
        app.config.update(test_config)

    # ⚡ Configurazione Rate Limiting
    limiter = init_limiter(app)
    app.limiter = limiter

    # Inizializza database (le migrazioni restano fuori dall'app)
    Base.metadata.create_all(bind=engine)

    # Error handlers: stesso formato JSON {"ok": false, "reason": ...} ovunque
    @app.errorhandler(ApiError)
    def handle_api_error(e):
        if e.status_code >= 500:
            app.logger.error("Errore interno: %s (%s)", e.message, e.code)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limit(e):
        return jsonify({"ok": False, "reason": "rate_limited", "message": "too many requests, please retry later"}), 429

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        reason = (e.name or "error").lower().replace(" ", "_")
        return jsonify({"ok": False, "reason": reason, "message": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        app.logger.exception("Errore non gestito")
        return jsonify({"ok": False, "reason": "internal_error", "message": "internal server error"}), 500

    @app.route("/health")
    def health():
        return jsonify({"ok": True})

    # Registra automaticamente tutti i blueprint
    for bp in all_blueprints:
        app.register_blueprint(bp)

    return app
