"""
Authentication API router for Memory Trainer.

Provides signup/login/logout/verify endpoints and the identity
dependencies every other router uses.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from errors import AuthError, ForbiddenError
from logging_config import user_id_var
from models.user import Anonymous, Authenticated, Identity, User
from services.auth_service import AuthResult, AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# =============================================================================
# Request Models
# =============================================================================


class SignupRequest(BaseModel):
    """Signup request. Field rules are enforced by AuthService."""
    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    """Login request."""
    email: str
    password: str


# =============================================================================
# Dependencies
# =============================================================================

# Set by main.py during startup
_auth_service: Optional[AuthService] = None


def set_auth_service(service: Optional[AuthService]) -> None:
    """Set the auth service instance (called from main.py)."""
    global _auth_service
    _auth_service = service


def get_auth_service_dep() -> AuthService:
    """Dependency to get auth service."""
    if _auth_service is None:
        raise HTTPException(status_code=503, detail="Auth service not initialized")
    return _auth_service


def get_token_from_header(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Extract bearer token from Authorization header."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


async def get_identity(
    token: Optional[str] = Depends(get_token_from_header),
    auth_service: AuthService = Depends(get_auth_service_dep),
) -> Identity:
    """Resolve the caller. Never fails; bad credentials mean Anonymous."""
    identity = await auth_service.get_user_from_token(token)
    if isinstance(identity, Authenticated):
        user_id_var.set(identity.user_id)
    return identity


async def require_identity(identity: Identity = Depends(get_identity)) -> Authenticated:
    """Require an authenticated caller."""
    if isinstance(identity, Anonymous):
        raise AuthError("Authentication required")
    return identity


async def require_user(identity: Authenticated = Depends(require_identity)) -> User:
    """Require an authenticated caller, as a User."""
    return identity.user


def ensure_self_or_admin(user: User, target_user_id: str) -> None:
    """
    Raises:
        ForbiddenError: caller is neither the target nor an admin.
    """
    if user.id != target_user_id and not user.is_admin():
        raise ForbiddenError("Permission denied")


def user_to_response(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "lastLogin": user.last_login.isoformat() if user.last_login else None,
    }


def _auth_response(result: AuthResult) -> dict:
    return {
        "success": True,
        "token": result.token,
        "expiresAt": result.expires_at.isoformat(),
        "user": user_to_response(result.user),
    }


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/signup", status_code=201)
async def signup(
    request_body: SignupRequest,
    auth_service: AuthService = Depends(get_auth_service_dep),
):
    """Register a new account and log it in."""
    result = await auth_service.register(
        name=request_body.name,
        email=request_body.email,
        password=request_body.password,
    )
    return _auth_response(result)


@router.post("/login")
async def login(
    request_body: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service_dep),
):
    """Login with email and password."""
    result = await auth_service.login(request_body.email, request_body.password)
    return _auth_response(result)


@router.get("/verify")
async def verify(user: User = Depends(require_user)):
    """Check the bearer token and return its user."""
    return {"success": True, "user": user_to_response(user)}


@router.post("/logout")
async def logout(
    token: Optional[str] = Depends(get_token_from_header),
    auth_service: AuthService = Depends(get_auth_service_dep),
):
    """Logout current session."""
    if token:
        await auth_service.logout(token)
    return {"success": True}
