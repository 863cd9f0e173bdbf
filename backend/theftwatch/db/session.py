"""
Database session and engine.
"""
import math

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from theftwatch.config import settings
from theftwatch.db.changefeed import install_change_feed


def _null_safe(fn):
    def wrapper(*args):
        if any(a is None for a in args):
            return None
        return fn(*args)

    return wrapper


def _asin(x: float) -> float:
    return math.asin(max(-1.0, min(1.0, x)))


# Math used by the haversine range query; PostgreSQL has these built in.
_SQLITE_FUNCTIONS = {
    "radians": (1, math.radians),
    "sin": (1, math.sin),
    "cos": (1, math.cos),
    "asin": (1, _asin),
    "sqrt": (1, math.sqrt),
    "floor": (1, math.floor),
}


def register_sqlite_functions(engine: Engine) -> None:
    """Register the haversine math functions on every new SQLite connection."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        for name, (n_args, fn) in _SQLITE_FUNCTIONS.items():
            dbapi_connection.create_function(name, n_args, _null_safe(fn), deterministic=True)


def _make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        eng = create_engine(url, connect_args={"check_same_thread": False})
        register_sqlite_functions(eng)
        return eng
    return create_engine(
        url,
        pool_size=8,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_timeout=30,
    )


engine = _make_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
install_change_feed(SessionLocal)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
