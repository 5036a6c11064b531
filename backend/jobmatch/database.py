import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)


def _normalize_database_url(url: str) -> str:
    # Allow simpler `.env` values like `mysql://...` and upgrade to the driver form.
    return url.replace("mysql://", "mysql+pymysql://", 1) if url.startswith("mysql://") else url


def _set_sqlite_pragmas(dbapi_connection, connection_record):  # noqa: ANN001
    try:
        cursor = dbapi_connection.cursor()
        # Several pipeline workers may write at once; WAL keeps readers unblocked.
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout=30000;")
        cursor.close()
    except Exception as e:
        logger.warning("Failed to set SQLite pragmas: %s", e)


def make_engine(url: str) -> Engine:
    db_url = _normalize_database_url((url or "").strip())
    engine_kwargs = {"pool_pre_ping": True}
    if db_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}

    eng = create_engine(db_url, **engine_kwargs)
    if db_url.startswith("sqlite"):
        event.listen(eng, "connect", _set_sqlite_pragmas)
    return eng


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None):
    # Import models so they register with SQLAlchemy metadata before create_all.
    from .models import embedding, match_record  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
