# =======================================================================================
# visitor_checkin/api/dependencies.py - FastAPI Dependencies
# =======================================================================================
import logging
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from ..config import config
from ..database import get_db_manager
from ..models.schemas import ScanMetadata, StaffUser
from ..services.auth_service import AuthService
from ..services.directory import SqlVisitorDirectory
from ..services.ledger import SqlScanLedger
from ..services.scan_engine import ScanEngine
from ..utils.exceptions import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)
auth_service = AuthService()
_scan_engine: Optional[ScanEngine] = None


def get_db_connection() -> Connection:
    """Dependency to get database connection."""
    try:
        with get_db_manager().get_connection() as conn:
            yield conn
    except SQLAlchemyError as e:
        logger.error("Database error: %s", e)
        raise HTTPException(status_code=500, detail="Database error")


def get_auth_service() -> AuthService:
    return auth_service


def get_scan_engine() -> ScanEngine:
    """Engine over the configured database, built once per process."""
    global _scan_engine
    if _scan_engine is None:
        db = get_db_manager()
        _scan_engine = ScanEngine(
            SqlVisitorDirectory(db),
            SqlScanLedger(db, tz=config.timezone),
            duplicate_window=config.duplicate_window,
            max_batch_size=config.MAX_BATCH_SIZE,
        )
    return _scan_engine


def reset_scan_engine() -> None:
    global _scan_engine
    _scan_engine = None


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    return credentials.credentials if credentials else None


def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    auth: AuthService = Depends(get_auth_service),
) -> StaffUser:
    # Own short transaction: the scan engine checks out its own connections,
    # so nothing may stay pooled for the rest of the request
    try:
        with get_db_manager().get_connection() as conn:
            return auth.user_for_token(conn, token)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except SQLAlchemyError as e:
        logger.error("Database error: %s", e)
        raise HTTPException(status_code=500, detail="Database error")


def require_scan_auth(
    user: StaffUser = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> StaffUser:
    """Any active staff member with a scanning role."""
    try:
        return auth.require_scanner(user)
    except PermissionDeniedError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient rights to scan")


def require_admin(
    user: StaffUser = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> StaffUser:
    try:
        return auth.require_role(user, ("admin",))
    except PermissionDeniedError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient rights to manage users")


def get_scan_metadata(request: Request) -> ScanMetadata:
    return ScanMetadata(
        source_address=request.client.host if request.client else None,
        client_agent=request.headers.get("user-agent"),
    )
