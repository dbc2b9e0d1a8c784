"""
Server configuration for Lockpick.

Every setting is a field on ServerConfig. A field named FOO is read from the
FOO environment variable (a .env file next to the server directory is loaded
first) and falls back to the default below.

Usage:
    from config import config
    print(config.PORT)
    print(config.RESERVATION_TTL_SECONDS)
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off")


def parse_bool(raw: str, default: bool) -> bool:
    """Interpret a boolean env value; anything unrecognised keeps the default."""
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    return default


def parse_env_value(raw: str, default: Any) -> Any:
    """Coerce a raw env string to the type of ``default``."""
    if isinstance(default, bool):
        return parse_bool(raw, default)
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            return default
    return raw


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Snapshots
    SNAPSHOT_DIR: str = "saved-games"
    PERSISTENCE_ENABLED: bool = True

    # Rooms
    MAX_PLAYERS_PER_ROOM: int = 10
    ROOM_CODE_LENGTH: int = 6

    # Name reservations (REQUIRE_RESERVATION=false is the relaxed/test mode)
    RESERVATION_TTL_SECONDS: int = 60
    REQUIRE_RESERVATION: bool = True

    # Presence and cleanup windows
    EMPTY_ROOM_GRACE_SECONDS: int = 5
    DISCONNECT_LEAVE_DELAY_SECONDS: int = 10
    DISCONNECTED_PRUNE_SECONDS: int = 30
    EMPTY_ROOM_IDLE_MINUTES: int = 5
    ROOM_MAX_AGE_HOURS: int = 24
    CLEANUP_INTERVAL_SECONDS: int = 60

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Build a config from environment variables, keeping defaults for unset keys."""
        overrides = {}
        for f in fields(cls):
            raw = os.environ.get(f.name)
            if raw is not None:
                overrides[f.name] = parse_env_value(raw, f.default)
        return cls(**overrides)


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
