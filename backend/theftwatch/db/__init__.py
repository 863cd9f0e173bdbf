from theftwatch.db.base import Base
from theftwatch.db.session import get_db, engine, SessionLocal
from theftwatch.db.tables import ALL_TABLE_NAMES, RESETTABLE_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES", "RESETTABLE_TABLE_NAMES"]
