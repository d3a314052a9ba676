"""HTTP endpoints: authentication gate, scan and batch routes."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select, update

from visitor_checkin.api import dependencies
from visitor_checkin.database import scans, set_db_manager, users
from visitor_checkin.main import create_app
from visitor_checkin.services.auth_service import AuthService


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestAuthGate:
    def test_scan_requires_token(self, client):
        response = client.get("/api/scan/VIS2025")

        assert response.status_code == 401

    def test_bogus_token(self, client):
        response = client.get("/api/scan/VIS2025", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_wrong_password(self, client):
        response = client.post("/api/auth/login", json={"username": "gate1", "password": "bad"})

        assert response.status_code == 401

    def test_inactive_user_cannot_login(self, client, db):
        with db.get_connection() as conn:
            conn.execute(update(users).where(users.c.username == "gate1").values(is_active=False))

        response = client.post("/api/auth/login", json={"username": "gate1", "password": "gate-pass"})

        assert response.status_code == 401

    def test_deactivated_user_loses_access(self, client, db, gate_headers):
        with db.get_connection() as conn:
            conn.execute(update(users).where(users.c.username == "gate1").values(is_active=False))

        response = client.get("/api/scan/VIS2025", headers=gate_headers)

        assert response.status_code == 401

    def test_role_without_scan_rights(self, client, login):
        client.app.dependency_overrides[dependencies.get_auth_service] = (
            lambda: AuthService(scan_roles=("admin",))
        )
        headers = login(client, "mod", "mod-pass")

        response = client.get("/api/scan/VIS2025", headers=headers)

        assert response.status_code == 403

    def test_logout_ends_session(self, client, gate_headers):
        assert client.post("/api/auth/logout", headers=gate_headers).status_code == 200

        response = client.get("/api/scan/VIS2025", headers=gate_headers)

        assert response.status_code == 401


class TestRegister:
    def test_admin_creates_staff(self, client, admin_headers, login):
        response = client.post(
            "/api/auth/register",
            json={"username": "gate2", "password": "secret2", "role": "skd"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["user"]["role"] == "skd"
        login(client, "gate2", "secret2")

    def test_duplicate_username(self, client, admin_headers):
        response = client.post(
            "/api/auth/register",
            json={"username": "gate1", "password": "secret2"},
            headers=admin_headers,
        )

        assert response.status_code == 400

    def test_only_admin_registers(self, client, gate_headers):
        response = client.post(
            "/api/auth/register",
            json={"username": "gate3", "password": "secret3"},
            headers=gate_headers,
        )

        assert response.status_code == 403


class TestScanRoutes:
    def test_first_then_duplicate(self, client, gate_headers, clock):
        first = client.get("/api/scan/VIS2025", headers=gate_headers)
        clock.advance(minutes=5)
        second = client.get("/api/scan/VIS2025", headers=gate_headers)

        assert first.status_code == 200
        assert first.json()["classification"] == "first"
        assert first.json()["verdict"] == "allow"
        assert first.json()["title"] == "Ivanov Ivan Petrovich"
        assert second.json()["classification"] == "duplicate"
        assert second.json()["verdict"] == "allow-with-warning"
        assert second.json()["scan_count"] == 2

    def test_denials_are_still_200(self, client, gate_headers):
        blocked = client.get("/api/scan/VIS9999", headers=gate_headers).json()
        unknown = client.get("/api/scan/XYZ", headers=gate_headers).json()

        assert blocked["type"] == "blocked"
        assert blocked["verdict"] == "deny"
        assert blocked["visitor"]["comment"] == "Do not admit"
        assert unknown["type"] == "not_found"
        assert unknown["classification"] == "none"

    def test_manual_entry(self, client, gate_headers):
        response = client.post("/api/scan", json={"barcode": " VIS2025 "}, headers=gate_headers)

        assert response.json()["type"] == "first_scan"

    def test_manual_entry_invalid(self, client, gate_headers):
        response = client.post("/api/scan", json={"barcode": ""}, headers=gate_headers)

        assert response.status_code == 200
        assert response.json()["type"] == "invalid_input"

    def test_actor_and_client_recorded(self, client, gate_headers, db, staff_accounts):
        client.get("/api/scan/VIS2025", headers={**gate_headers, "User-Agent": "GateTablet/2"})

        with db.get_connection() as conn:
            row = conn.execute(select(scans)).mappings().one()
        assert row["scanned_by"] == staff_accounts["skd"]
        assert row["user_agent"] == "GateTablet/2"
        assert row["ip_address"] == "testclient"

    def test_batch(self, client, gate_headers):
        response = client.post(
            "/api/scan/batch", json={"barcodes": ["A", "B", "VIS9999"]}, headers=gate_headers,
        )

        body = response.json()
        assert response.status_code == 200
        assert body["summary"] == {"total": 3, "successful": 1, "blocked": 1, "errors": 1}
        assert [i["status"] for i in body["results"]] == ["recorded", "error", "blocked"]

    def test_oversized_batch(self, client, gate_headers, db):
        response = client.post(
            "/api/scan/batch", json={"barcodes": ["A"] * 11}, headers=gate_headers,
        )

        assert response.status_code == 200
        assert response.json()["type"] == "invalid_input"
        with db.get_connection() as conn:
            assert conn.execute(select(scans)).first() is None


class TestSingleConnectionPool:
    """A request never needs more than one pooled connection at a time."""

    @pytest.fixture
    def small_client(self, single_connection_db):
        set_db_manager(single_connection_db)
        dependencies.reset_scan_engine()
        with TestClient(create_app(start_background=False)) as test_client:
            yield test_client
        set_db_manager(None)
        dependencies.reset_scan_engine()

    def test_scan(self, small_client, login):
        headers = login(small_client, "gate1", "gate-pass")

        body = small_client.get("/api/scan/VIS2025", headers=headers).json()

        assert body["type"] == "first_scan"
        assert body["verdict"] == "allow"

    def test_batch(self, small_client, login):
        headers = login(small_client, "gate1", "gate-pass")

        body = small_client.post("/api/scan/batch", json={"barcodes": ["A", "VIS2025"]},
                                 headers=headers).json()

        assert body["summary"]["successful"] == 2

    def test_register(self, small_client, login):
        headers = login(small_client, "admin", "admin-pass")

        response = small_client.post(
            "/api/auth/register",
            json={"username": "gate2", "password": "secret2"},
            headers=headers,
        )

        assert response.status_code == 200
