"""
Runtime configuration for the menu admin server
Values come from environment variables, with production/development defaults
"""
import os
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class ConfigurationError(Exception):
    """Raised when configuration values are missing or invalid"""

    pass


# Cache lifetimes in seconds
PRODUCTION_CACHE_TTL = 10.0
DEVELOPMENT_CACHE_TTL = 5.0

DEFAULT_SESSION_SECRET = "menu-admin-secret-key-change-in-production"


def _env_float(name, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass
class AppConfig:
    environment: str = "development"
    data_file: str = "data.json"
    settings_file: str = "settings.json"
    cache_ttl: float = DEVELOPMENT_CACHE_TTL
    id_cache_ttl: float = DEVELOPMENT_CACHE_TTL
    lock_attempts: int = 5
    lock_base_delay: float = 0.05
    admin_password: Optional[str] = None
    session_secret: str = DEFAULT_SESSION_SECRET
    timezone: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8080

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build configuration from the process environment"""
        environment = os.getenv("APP_ENV", "development").strip().lower()
        default_ttl = PRODUCTION_CACHE_TTL if environment == "production" else DEVELOPMENT_CACHE_TTL
        cache_ttl = _env_float("MENU_CACHE_TTL", default_ttl)

        config = cls(
            environment=environment,
            data_file=os.getenv("MENU_DATA_FILE", "data.json"),
            settings_file=os.getenv("MENU_SETTINGS_FILE", "settings.json"),
            cache_ttl=cache_ttl,
            id_cache_ttl=_env_float("MENU_ID_CACHE_TTL", cache_ttl),
            lock_attempts=_env_int("MENU_LOCK_ATTEMPTS", 5),
            lock_base_delay=_env_float("MENU_LOCK_BASE_DELAY", 0.05),
            admin_password=os.getenv("ADMIN_PASSWORD") or None,
            session_secret=os.getenv("SESSION_SECRET", DEFAULT_SESSION_SECRET),
            timezone=os.getenv("MENU_TIMEZONE") or None,
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 8080),
        )
        config.validate()
        return config

    def validate(self) -> None:
        if self.cache_ttl < 0 or self.id_cache_ttl < 0:
            raise ConfigurationError("Cache TTLs must not be negative")
        if self.lock_attempts < 1:
            raise ConfigurationError("MENU_LOCK_ATTEMPTS must be at least 1")
        if self.lock_base_delay < 0:
            raise ConfigurationError("MENU_LOCK_BASE_DELAY must not be negative")
        if self.timezone:
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                raise ConfigurationError(f"MENU_TIMEZONE {self.timezone!r} is not a known time zone")
