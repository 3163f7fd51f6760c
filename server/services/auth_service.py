"""
Authentication service for Memory Trainer.

Provides business logic for user registration, login, password management,
and session handling.
"""

import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional

import bcrypt

from config import config
from errors import AuthError, ConflictError, NotFoundError, ValidationError
from models.user import Anonymous, Authenticated, Identity, User, UserRole
from stores.base import ScoreStoreBase, UserStoreBase

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 6
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class AuthResult:
    """Result of a successful registration or login."""
    user: User
    token: str
    expires_at: datetime


def validate_name(name: str) -> list[dict]:
    name = (name or "").strip()
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        return [{"field": "name", "message": f"must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters"}]
    return []


def validate_email(email: str) -> list[dict]:
    if not EMAIL_PATTERN.match(email or ""):
        return [{"field": "email", "message": "must be a valid email address"}]
    return []


def validate_password(password: str, field: str = "password") -> list[dict]:
    if len(password or "") < PASSWORD_MIN_LENGTH:
        return [{"field": field, "message": f"must be at least {PASSWORD_MIN_LENGTH} characters"}]
    return []


class AuthService:
    """
    Authentication service.

    Handles all authentication business logic:
    - User registration (account and empty aggregate)
    - Login/logout with opaque session tokens
    - Profile and password changes
    - Account deletion (hard delete, scores included)
    """

    def __init__(
        self,
        user_store: UserStoreBase,
        score_store: ScoreStoreBase,
        secret_key: str = "",
        session_expiry_hours: int = 168,
        admin_emails: Optional[list[str]] = None,
    ):
        """
        Initialize auth service.

        Args:
            user_store: Accounts, sessions and aggregates.
            score_store: Score ledger (purged on account deletion).
            secret_key: Key mixed into stored session token hashes.
            session_expiry_hours: Session lifetime in hours.
            admin_emails: Emails that register with the admin role.
        """
        self.user_store = user_store
        self.score_store = score_store
        self.secret_key = secret_key
        self.session_expiry_hours = session_expiry_hours
        self.admin_emails = [e.lower() for e in (admin_emails or [])]

    @classmethod
    def create(cls, user_store: UserStoreBase, score_store: ScoreStoreBase) -> "AuthService":
        """Create AuthService from config."""
        return cls(
            user_store=user_store,
            score_store=score_store,
            secret_key=config.SECRET_KEY,
            session_expiry_hours=config.SESSION_EXPIRY_HOURS,
            admin_emails=config.ADMIN_EMAILS,
        )

    # -------------------------------------------------------------------------
    # Registration / login
    # -------------------------------------------------------------------------

    async def register(self, name: str, email: str, password: str) -> AuthResult:
        """
        Register a new user account and open a session for it.

        Raises:
            ValidationError: name, email or password malformed.
            ConflictError: email already registered.
        """
        details = validate_name(name) + validate_email(email) + validate_password(password)
        if details:
            raise ValidationError(details)

        email = email.strip().lower()
        role = UserRole.ADMIN if email in self.admin_emails else UserRole.USER
        user = await self.user_store.create_user(
            name=name.strip(),
            email=email,
            password_hash=self._hash_password(password),
            role=role,
        )
        if not user:
            raise ConflictError("Email already registered")

        logger.info(f"Registered user {user.id} ({role.value})")
        return await self._open_session(user)

    async def login(self, email: str, password: str) -> AuthResult:
        """
        Authenticate user and create session.

        Raises:
            AuthError: unknown email, wrong password or disabled account.
        """
        user = await self.user_store.get_user_by_email((email or "").strip())
        if not user or not self._verify_password(password or "", user.password_hash):
            raise AuthError("Invalid credentials")
        if not user.can_login():
            raise AuthError("Account is disabled")

        user = await self.user_store.update_user(user.id, last_login=datetime.now(timezone.utc)) or user
        return await self._open_session(user)

    async def logout(self, token: str) -> bool:
        """Invalidate a session. True if a live session was revoked."""
        return await self.user_store.revoke_session_by_token_hash(self.hash_token(token))

    async def get_user_from_token(self, token: Optional[str]) -> Identity:
        """
        Resolve a bearer token to an identity.

        Missing, unknown, expired or revoked tokens, and tokens of disabled
        or deleted accounts, all resolve to Anonymous.
        """
        if not token:
            return Anonymous()

        session = await self.user_store.get_session_by_token_hash(self.hash_token(token))
        if not session or not session.is_valid():
            return Anonymous()

        user = await self.user_store.get_user_by_id(session.user_id)
        if not user or not user.can_login():
            return Anonymous()

        return Authenticated(user)

    # -------------------------------------------------------------------------
    # Profile management
    # -------------------------------------------------------------------------

    async def update_profile(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User:
        """
        Change display name and/or email.

        Raises:
            ValidationError, ConflictError, NotFoundError
        """
        details = []
        if name is not None:
            details += validate_name(name)
        if email is not None:
            details += validate_email(email)
        if details:
            raise ValidationError(details)

        if not await self.user_store.get_user_by_id(user_id):
            raise NotFoundError("User not found")

        user = await self.user_store.update_user(
            user_id,
            name=name.strip() if name is not None else None,
            email=email.strip().lower() if email is not None else None,
        )
        if not user:
            raise ConflictError("Email already registered")
        return user

    async def change_password(self, user_id: str, current_password: str, new_password: str) -> User:
        """
        Change password after checking the current one.

        Every other session of the user is revoked.
        """
        details = validate_password(new_password, field="newPassword")
        if details:
            raise ValidationError(details)

        user = await self.user_store.get_user_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        if not self._verify_password(current_password or "", user.password_hash):
            raise AuthError("Current password is incorrect")

        user = await self.user_store.update_user(user_id, password_hash=self._hash_password(new_password))
        revoked = await self.user_store.revoke_all_sessions(user_id)
        logger.info(f"Password changed for user {user_id}, {revoked} sessions revoked")
        return user

    async def delete_account(self, user_id: str) -> bool:
        """
        Hard delete a user account with its sessions, aggregate and scores.

        Returns:
            True if account was deleted.
        """
        removed = await self.score_store.delete_user_scores(user_id)
        deleted = await self.user_store.delete_user(user_id)
        if deleted:
            logger.info(f"Deleted user {user_id} and {removed} scores")
        return deleted

    # -------------------------------------------------------------------------
    # Tokens and passwords
    # -------------------------------------------------------------------------

    async def _open_session(self, user: User) -> AuthResult:
        token = secrets.token_urlsafe(32)
        expires_at = datetime.now(timezone.utc) + timedelta(hours=self.session_expiry_hours)
        await self.user_store.create_session(user.id, self.hash_token(token), expires_at)
        return AuthResult(user=user, token=token, expires_at=expires_at)

    def hash_token(self, token: str) -> str:
        """Keyed hash under which a session token is stored."""
        return hmac.new(self.secret_key.encode(), token.encode(), hashlib.sha256).hexdigest()

    def _hash_password(self, password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt()
        hashed = bcrypt.hashpw(password.encode(), salt)
        return hashed.decode()

    def _verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash."""
        try:
            return bcrypt.checkpw(password.encode(), password_hash.encode())
        except ValueError:
            return False
