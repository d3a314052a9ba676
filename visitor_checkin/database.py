# =======================================================================================
# visitor_checkin/database.py - Database Management
# =======================================================================================
from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, MetaData, String, Table, Text,
    create_engine, text,
)
from sqlalchemy.dialects import mysql
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool
from contextlib import contextmanager
from typing import Optional
from .config import config

metadata = MetaData()

visitors = Table(
    "visitors", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("barcode", String(100), unique=True, nullable=False, index=True),
    Column("last_name", String(100), nullable=False),
    Column("first_name", String(100), nullable=False),
    Column("middle_name", String(100)),
    Column("comment", Text),
    Column("status", String(20), nullable=False, server_default="active"),
)

users = Table(
    "users", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), unique=True, nullable=False),
    Column("password_hash", String(255), nullable=False),
    Column("role", String(20), nullable=False, server_default="skd"),
    Column("full_name", String(200)),
    Column("is_active", Boolean, nullable=False, server_default="1"),
)

# Append-only: rows are never updated or deleted.
scans = Table(
    "scans", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("visitor_id", Integer, ForeignKey("visitors.id"), nullable=False),
    Column("scan_type", String(20), nullable=False),
    Column("scanned_at", DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql"), nullable=False),
    Column("scan_date", Date, nullable=False),
    Column("scanned_by", Integer, ForeignKey("users.id")),
    Column("ip_address", String(64)),
    Column("user_agent", Text),
)

user_sessions = Table(
    "user_sessions", metadata,
    Column("token", String(128), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("expires_at", DateTime, nullable=False),
)


class DatabaseManager:
    """Manages database connections and transactions."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or config.DB_URL
        if self.url.startswith("sqlite"):
            # SQLite has no READ COMMITTED and pins connections to threads by default
            self.engine: Engine = create_engine(
                self.url,
                poolclass=QueuePool,
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW,
                pool_timeout=config.DB_POOL_TIMEOUT,
                connect_args={"check_same_thread": False, "timeout": 30},
                future=True,
            )
        else:
            connect_args = {}
            if self.url.startswith("mysql"):
                # A stalled server surfaces as a driver error instead of a hung worker
                connect_args = {
                    "connect_timeout": config.DB_CONNECT_TIMEOUT,
                    "read_timeout": config.DB_READ_TIMEOUT,
                    "write_timeout": config.DB_WRITE_TIMEOUT,
                }
            self.engine = create_engine(
                self.url,
                poolclass=QueuePool,
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW,
                pool_timeout=config.DB_POOL_TIMEOUT,
                pool_pre_ping=True,
                isolation_level="READ COMMITTED",
                connect_args=connect_args,
                future=True,
            )

    @property
    def supports_row_locks(self) -> bool:
        return self.engine.dialect.name != "sqlite"

    @contextmanager
    def get_connection(self):
        """Get a database connection inside a transaction, committed on exit."""
        with self.engine.begin() as conn:
            yield conn

    def create_schema(self) -> None:
        """Create any missing tables."""
        metadata.create_all(self.engine)

    def fetch_one(self, query: str, params: dict = None):
        """Fetch a single result."""
        with self.get_connection() as conn:
            result = conn.execute(text(query), params or {})
            return result.mappings().first()

    def fetch_all(self, query: str, params: dict = None):
        """Fetch all results."""
        with self.get_connection() as conn:
            result = conn.execute(text(query), params or {})
            return result.mappings().all()

    def dispose(self) -> None:
        self.engine.dispose()


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Return the process-wide manager, creating the engine on first use."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


def set_db_manager(manager: Optional[DatabaseManager]) -> None:
    global _db_manager
    _db_manager = manager
