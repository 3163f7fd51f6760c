"""
Centralized configuration for the Memory Trainer score server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.cors_origins)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_list(key: str) -> list[str]:
    """Get comma-separated list environment variable."""
    return [item.strip() for item in get_env(key, "").split(",") if item.strip()]


@dataclass
class LeaderboardDefaults:
    """Leaderboard and history sizing."""
    recent_games_limit: int = 20
    default_limit: int = 10
    max_limit: int = 100


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Persistence (empty POSTGRES_URL selects the in-process store)
    POSTGRES_URL: str = ""
    REDIS_URL: str = ""

    # Security
    SECRET_KEY: str = ""
    SESSION_EXPIRY_HOURS: int = 168
    ADMIN_EMAILS: list[str] = field(default_factory=list)
    CORS_ORIGINS: list[str] = field(default_factory=list)

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True

    leaderboard: LeaderboardDefaults = field(default_factory=LeaderboardDefaults)

    @property
    def cors_origins(self) -> list[str]:
        """CORS allowlist, wide open in development when unset."""
        if self.CORS_ORIGINS:
            return self.CORS_ORIGINS
        return ["*"] if self.ENVIRONMENT != "production" else []

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 3001),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            POSTGRES_URL=get_env("POSTGRES_URL", ""),
            REDIS_URL=get_env("REDIS_URL", ""),
            SECRET_KEY=get_env("SECRET_KEY", ""),
            SESSION_EXPIRY_HOURS=get_env_int("SESSION_EXPIRY_HOURS", 168),
            ADMIN_EMAILS=[e.lower() for e in get_env_list("ADMIN_EMAILS")],
            CORS_ORIGINS=get_env_list("CORS_ORIGINS"),
            RATE_LIMIT_ENABLED=get_env_bool("RATE_LIMIT_ENABLED", True),
            leaderboard=LeaderboardDefaults(
                recent_games_limit=get_env_int("RECENT_GAMES_LIMIT", 20),
                default_limit=get_env_int("LEADERBOARD_DEFAULT_LIMIT", 10),
                max_limit=get_env_int("LEADERBOARD_MAX_LIMIT", 100),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
