# control_plane/core/database.py
from databases import Database
from sqlalchemy import create_engine

from control_plane.core.config import settings
from control_plane.models.db import Base

database = Database(settings.DATABASE_URL)


def create_tables(url: str = settings.DATABASE_URL) -> None:
    """Create tables if they don't exist (synchronous)."""
    sync_url = url.replace("+aiosqlite", "").replace("+asyncpg", "")
    connect_args = {"check_same_thread": False} if sync_url.startswith("sqlite") else {}
    engine = create_engine(sync_url, connect_args=connect_args)
    Base.metadata.create_all(engine)
    engine.dispose()
