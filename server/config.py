"""
Centralized configuration for the Take 6 game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.game_defaults.score_limit)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

# Load .env file if it exists
try:
    from dotenv import load_dotenv
    env_path = Path(__file__).parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)
except ImportError:
    pass  # python-dotenv not installed, use env vars only


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


@dataclass
class GameDefaults:
    """Default rule settings for newly created games."""
    max_rounds: int = 6
    score_limit: int = 66
    hand_size: int = 10


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Persistence (empty POSTGRES_URL means in-memory store)
    POSTGRES_URL: str = ""
    REDIS_URL: str = ""

    # Game settings
    MAX_PLAYERS_PER_GAME: int = 10
    GAME_CODE_LENGTH: int = 6

    # Optimistic concurrency: attempts per read-modify-write cycle
    RESOLVE_MAX_RETRIES: int = 5

    # Game defaults
    game_defaults: GameDefaults = field(default_factory=GameDefaults)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            POSTGRES_URL=get_env("POSTGRES_URL", ""),
            REDIS_URL=get_env("REDIS_URL", ""),
            MAX_PLAYERS_PER_GAME=get_env_int("MAX_PLAYERS_PER_GAME", 10),
            GAME_CODE_LENGTH=get_env_int("GAME_CODE_LENGTH", 6),
            RESOLVE_MAX_RETRIES=get_env_int("RESOLVE_MAX_RETRIES", 5),
            game_defaults=GameDefaults(
                max_rounds=get_env_int("DEFAULT_MAX_ROUNDS", 6),
                score_limit=get_env_int("DEFAULT_SCORE_LIMIT", 66),
                hand_size=get_env_int("DEFAULT_HAND_SIZE", 10),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
