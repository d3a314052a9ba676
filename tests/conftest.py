import threading
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import insert

from visitor_checkin.api import dependencies
from visitor_checkin.config import config
from visitor_checkin.database import DatabaseManager, set_db_manager, visitors
from visitor_checkin.main import create_app
from visitor_checkin.models.enums import AdmissionStatus
from visitor_checkin.models.schemas import StaffUser, Visitor
from visitor_checkin.services.auth_service import AuthService
from visitor_checkin.services.directory import InMemoryVisitorDirectory, SqlVisitorDirectory
from visitor_checkin.services.ledger import InMemoryScanLedger, SqlScanLedger
from visitor_checkin.services.scan_engine import ScanEngine

UTC = timezone.utc


class FakeClock:
    """Settable clock; every call returns the current fake time."""

    def __init__(self, start: datetime):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def set(self, moment: datetime) -> None:
        with self._lock:
            self.now = moment

    def advance(self, **kwargs) -> datetime:
        with self._lock:
            self.now = self.now + timedelta(**kwargs)
            return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 14, 9, 0, tzinfo=UTC))


@pytest.fixture
def staff():
    return StaffUser(id=7, username="gate1", role="skd", full_name="Gate One")


@pytest.fixture
def directory():
    d = InMemoryVisitorDirectory()
    d.add(Visitor(id=1, barcode="VIS2025", last_name="Ivanov", first_name="Ivan",
                  middle_name="Petrovich", comment="Speaker"))
    d.add(Visitor(id=2, barcode="VIS9999", last_name="Sidorov", first_name="Oleg",
                  comment="Do not admit", status=AdmissionStatus.BLOCKED))
    d.add(Visitor(id=3, barcode="A", last_name="Alpha", first_name="Anna"))
    d.add(Visitor(id=4, barcode="C", last_name="Gamma", first_name="Carl"))
    return d


@pytest.fixture
def ledger(clock):
    return InMemoryScanLedger(tz=UTC, clock=clock)


@pytest.fixture
def engine(directory, ledger):
    return ScanEngine(directory, ledger, duplicate_window=timedelta(minutes=30),
                      max_batch_size=10, expose_errors=False)


# ----------------------------------------------------------------------
# SQL-backed fixtures
# ----------------------------------------------------------------------
def _seeded_db(path):
    manager = DatabaseManager(f"sqlite:///{path}")
    manager.create_schema()
    with manager.get_connection() as conn:
        conn.execute(insert(visitors), [
            {"id": 1, "barcode": "VIS2025", "last_name": "Ivanov", "first_name": "Ivan",
             "middle_name": "Petrovich", "comment": "Speaker", "status": "active"},
            {"id": 2, "barcode": "VIS9999", "last_name": "Sidorov", "first_name": "Oleg",
             "middle_name": None, "comment": "Do not admit", "status": "blocked"},
            {"id": 3, "barcode": "A", "last_name": "Alpha", "first_name": "Anna",
             "middle_name": None, "comment": None, "status": "active"},
        ])
    return manager


@pytest.fixture
def db(tmp_path):
    manager = _seeded_db(tmp_path / "checkin.db")
    yield manager
    manager.dispose()


@pytest.fixture
def single_connection_db(tmp_path, monkeypatch):
    """Database whose pool hands out exactly one connection."""
    monkeypatch.setattr(config, "DB_POOL_SIZE", 1)
    monkeypatch.setattr(config, "DB_MAX_OVERFLOW", 0)
    monkeypatch.setattr(config, "DB_POOL_TIMEOUT", 1)
    manager = _seeded_db(tmp_path / "small.db")
    auth = AuthService()
    with manager.get_connection() as conn:
        auth.create_user(conn, "admin", "admin-pass", role="admin")
        auth.create_user(conn, "gate1", "gate-pass", role="skd")
    yield manager
    manager.dispose()


@pytest.fixture
def sql_ledger(db, clock):
    return SqlScanLedger(db, tz=UTC, clock=clock)


@pytest.fixture
def sql_engine(db, sql_ledger):
    return ScanEngine(SqlVisitorDirectory(db), sql_ledger,
                      duplicate_window=timedelta(minutes=30), max_batch_size=10,
                      expose_errors=False)


@pytest.fixture
def staff_accounts(db):
    auth = AuthService()
    with db.get_connection() as conn:
        return {
            "admin": auth.create_user(conn, "admin", "admin-pass", role="admin", full_name="Admin"),
            "skd": auth.create_user(conn, "gate1", "gate-pass", role="skd"),
            "moderator": auth.create_user(conn, "mod", "mod-pass", role="moderator"),
        }


@pytest.fixture
def client(db, sql_engine, staff_accounts):
    set_db_manager(db)
    dependencies.reset_scan_engine()
    app = create_app(start_background=False)
    app.dependency_overrides[dependencies.get_scan_engine] = lambda: sql_engine
    with TestClient(app) as test_client:
        yield test_client
    set_db_manager(None)
    dependencies.reset_scan_engine()


def _login(client, username, password):
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def login():
    return _login


@pytest.fixture
def gate_headers(client):
    return _login(client, "gate1", "gate-pass")


@pytest.fixture
def admin_headers(client):
    return _login(client, "admin", "admin-pass")
