from contextlib import contextmanager
import logging
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv
import os
from billiard_hall.utils.errors import ApiError, ConflictError, InternalError

logger = logging.getLogger(__name__)

# Carica le variabili dal file .env
load_dotenv()

DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_HOST = os.getenv("DB_HOST")
DB_NAME = os.getenv("DB_NAME")
DB_PORT = os.getenv("DB_PORT")
DATABASE_URL = os.getenv("DATABASE_URL")
USE_SQLITE = os.getenv("USE_SQLITE", "false").lower() == "true"

if DATABASE_URL:
    SQLALCHEMY_DATABASE_URL = DATABASE_URL
elif USE_SQLITE:
    # SQLite per lo sviluppo locale
    from pathlib import Path
    base_dir = Path(__file__).parent.parent
    db_path = base_dir / "billiard_hall.db"
    SQLALCHEMY_DATABASE_URL = f"sqlite:///{db_path}"
else:
    # MySQL di default (row lock reali con SELECT ... FOR UPDATE)
    SQLALCHEMY_DATABASE_URL = f"mysql+mysqlconnector://{DB_USER}:{DB_PASSWORD or ''}@{DB_HOST}:{DB_PORT or '3306'}/{DB_NAME}"

engine_options = {"echo": False}
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    engine_options["connect_args"] = {"check_same_thread": False}
    if SQLALCHEMY_DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # un solo DB in memoria condiviso da tutte le connessioni
        engine_options["poolclass"] = StaticPool
else:
    engine_options["pool_recycle"] = 300
    engine_options["pool_pre_ping"] = True

engine = create_engine(SQLALCHEMY_DATABASE_URL, **engine_options)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


@contextmanager
def get_db():
    """
    Context manager per sessioni database.

    Uso:
        with get_db() as db:
            table = db.get(BilliardTable, table_id)
            # La sessione viene chiusa automaticamente
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db):
    """
    Unità di lavoro: commit a fine blocco, rollback su qualsiasi errore.

    Gli errori del DB escono come ApiError: lock non ottenuto / vincolo
    violato -> ConflictError, il resto -> InternalError.
    """
    try:
        yield db
        db.commit()
    except ApiError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Vincolo violato: %s", exc.orig)
        raise ConflictError("constraint_violation", "the operation conflicts with existing data") from exc
    except OperationalError as exc:
        db.rollback()
        logger.warning("Lock/operazione DB fallita: %s", exc.orig)
        raise ConflictError("lock_conflict", "the record is busy, please retry") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Errore database")
        raise InternalError("database_error", "database error") from exc
    except Exception:
        db.rollback()
        raise
