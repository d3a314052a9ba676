# =======================================================================================
# visitor_checkin/api/routes/auth.py - Staff Authentication Endpoints
# =======================================================================================
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.engine import Connection
from ...models.schemas import AuthResponse, LoginRequest, RegisterRequest, StaffInfo, StaffUser
from ...services.auth_service import AuthService
from ..dependencies import get_auth_service, get_bearer_token, get_db_connection, require_admin

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/auth/register", response_model=AuthResponse)
def register_user(
    request: RegisterRequest,
    admin: StaffUser = Depends(require_admin),
    conn: Connection = Depends(get_db_connection),
    auth: AuthService = Depends(get_auth_service),
):
    if auth.username_exists(conn, request.username):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already exists",
        )

    user_id = auth.create_user(conn, request.username, request.password,
                               role=request.role, full_name=request.full_name)
    logger.info("User %s (%s) created by %s", request.username, request.role, admin.username)
    return AuthResponse(
        message="User created successfully",
        user=StaffInfo(id=user_id, username=request.username,
                       role=request.role, full_name=request.full_name),
    )


@router.post("/auth/login", response_model=AuthResponse)
def login(
    request: LoginRequest,
    conn: Connection = Depends(get_db_connection),
    auth: AuthService = Depends(get_auth_service),
):
    user = auth.authenticate(conn, request.username, request.password)
    if not user:
        logger.info("Failed login for %s", request.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    token, expires_at = auth.create_session(conn, user.id)
    return AuthResponse(
        token=token,
        expires_at=expires_at,
        message="Login successful",
        user=StaffInfo(id=user.id, username=user.username, role=user.role, full_name=user.full_name),
    )


@router.post("/auth/logout", response_model=AuthResponse)
def logout(
    token: Optional[str] = Depends(get_bearer_token),
    conn: Connection = Depends(get_db_connection),
    auth: AuthService = Depends(get_auth_service),
):
    if token:
        auth.end_session(conn, token)
    return AuthResponse(message="Logged out")
