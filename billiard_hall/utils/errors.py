"""
Errori applicativi del core.

Ogni errore porta con sé lo status HTTP e un codice macchina (`reason`),
così l'handler in billiard_hall/__init__.py li serializza senza if/else.
"""


class ApiError(Exception):
    status_code = 500

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict:
        return {"ok": False, "reason": self.code, "message": self.message}


class ValidationError(ApiError):
    """Input mancante/malformato o regola di business violata."""
    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    """Tavolo occupato, sovrapposizioni, lock non ottenuto."""
    status_code = 409


class StateError(ApiError):
    """Operazione non valida per lo stato attuale dell'entità."""
    status_code = 409


class InternalError(ApiError):
    status_code = 500
