"""
User-related models for Memory Trainer authentication.

Defines user accounts, sessions, and the request identity variant.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


class UserRole(str, Enum):
    """User role levels."""
    USER = "user"
    ADMIN = "admin"


@dataclass
class User:
    """
    A registered user account.

    Attributes:
        id: Opaque unique identifier.
        name: Display name shown on leaderboards.
        email: Unique, stored lowercase.
        password_hash: bcrypt hash of password.
        role: User role (user, admin).
        created_at: When account was created.
        last_login: Last login timestamp.
        is_active: Whether account is active.
    """
    id: str
    name: str
    email: str
    password_hash: str
    role: UserRole = UserRole.USER
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_login: Optional[datetime] = None
    is_active: bool = True

    def is_admin(self) -> bool:
        """Check if user has admin role."""
        return self.role == UserRole.ADMIN

    def can_login(self) -> bool:
        """Check if user can log in."""
        return self.is_active


@dataclass
class UserSession:
    """
    An active user session.

    Session tokens are hashed before storage.
    """
    id: str
    user_id: str
    token_hash: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    revoked_at: Optional[datetime] = None

    def is_valid(self) -> bool:
        """Check if session is still valid."""
        return self.revoked_at is None and self.expires_at > datetime.now(timezone.utc)


@dataclass(frozen=True)
class Authenticated:
    """Identity resolved from a valid session token."""
    user: User

    @property
    def user_id(self) -> str:
        return self.user.id


@dataclass(frozen=True)
class Anonymous:
    """No (or no valid) credential. Guest play never reaches the score pipeline."""


Identity = Union[Authenticated, Anonymous]
