# =======================================================================================
# visitor_checkin/services/auth_service.py - Staff authentication and scan access
# =======================================================================================
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from sqlalchemy import insert, select, text
from sqlalchemy.engine import Connection
from passlib.context import CryptContext

from ..config import config
from ..database import user_sessions, users
from ..models.schemas import StaffUser
from ..utils.exceptions import AuthenticationError, PermissionDeniedError

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _db_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AuthService:
    """Handles staff login, sessions and the role check in front of scanning."""

    def __init__(self, scan_roles: Optional[Tuple[str, ...]] = None,
                 session_ttl: Optional[timedelta] = None):
        self.scan_roles = scan_roles or config.SCAN_ROLES
        self.session_ttl = session_ttl or timedelta(hours=config.SESSION_TTL_HOURS)

    def hash_password(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return pwd_context.verify(plain_password, hashed_password)

    def username_exists(self, conn: Connection, username: str) -> bool:
        row = conn.execute(
            text("SELECT id FROM users WHERE username = :u"), {"u": username}
        ).first()
        return row is not None

    def create_user(self, conn: Connection, username: str, password: str,
                    role: str = "skd", full_name: Optional[str] = None) -> int:
        result = conn.execute(
            text(
                """
                INSERT INTO users (username, password_hash, role, full_name, is_active)
                VALUES (:username, :password_hash, :role, :full_name, :active)
                """
            ),
            {
                "username": username,
                "password_hash": self.hash_password(password),
                "role": role,
                "full_name": full_name,
                "active": True,
            },
        )
        return result.lastrowid

    def get_user(self, conn: Connection, user_id: int) -> Optional[StaffUser]:
        row = conn.execute(
            text(
                """
                SELECT id, username, role, full_name, is_active
                FROM users
                WHERE id = :uid
                """
            ),
            {"uid": user_id},
        ).mappings().first()
        return StaffUser(**row) if row else None

    def authenticate(self, conn: Connection, username: str, password: str) -> Optional[StaffUser]:
        row = conn.execute(
            text(
                """
                SELECT id, username, password_hash, role, full_name, is_active
                FROM users
                WHERE username = :username
                """
            ),
            {"username": username},
        ).mappings().first()

        if not row or not row["is_active"]:
            return None

        if not self.verify_password(password, row["password_hash"]):
            return None

        return StaffUser(
            id=row["id"], username=row["username"], role=row["role"],
            full_name=row["full_name"], is_active=bool(row["is_active"]),
        )

    # ----------------------------------------------------------------------
    # Sessions
    # ----------------------------------------------------------------------
    def create_session(self, conn: Connection, user_id: int) -> Tuple[str, datetime]:
        token = secrets.token_urlsafe(32)
        created = _db_now()
        expires = created + self.session_ttl
        conn.execute(
            insert(user_sessions).values(
                token=token, user_id=user_id, created_at=created, expires_at=expires
            )
        )
        return token, expires.replace(tzinfo=timezone.utc)

    def end_session(self, conn: Connection, token: str) -> None:
        conn.execute(text("DELETE FROM user_sessions WHERE token = :token"), {"token": token})

    def user_for_token(self, conn: Connection, token: Optional[str]) -> StaffUser:
        """Resolve a bearer token to an active staff member or raise AuthenticationError."""
        if not token:
            raise AuthenticationError("Authorization required")

        row = conn.execute(
            select(users.c.id, users.c.username, users.c.role, users.c.full_name, users.c.is_active)
            .select_from(user_sessions.join(users, users.c.id == user_sessions.c.user_id))
            .where(user_sessions.c.token == token, user_sessions.c.expires_at > _db_now())
        ).mappings().first()

        if not row:
            raise AuthenticationError("Session expired or invalid")

        if not row["is_active"]:
            raise AuthenticationError("User not found or blocked")

        return StaffUser(**row)

    def require_role(self, user: StaffUser, allowed: Tuple[str, ...]) -> StaffUser:
        if user.role not in allowed:
            raise PermissionDeniedError(f"Role {user.role!r} may not perform this action")
        return user

    def require_scanner(self, user: StaffUser) -> StaffUser:
        return self.require_role(user, self.scan_roles)
