"""Environment-driven settings."""
import functools
import os
from dataclasses import dataclass
from pathlib import Path

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    db_path: str
    log_level: str = "INFO"
    log_json: bool = False

    def __post_init__(self):
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"SCHOOL_PORTAL_LOG_LEVEL must be one of {LOG_LEVELS}, got {self.log_level!r}")


def load_settings() -> Settings:
    return Settings(
        db_path=os.getenv("SCHOOL_PORTAL_DB") or str(Path.home() / ".school_portal" / "portal.db"),
        log_level=os.getenv("SCHOOL_PORTAL_LOG_LEVEL", "INFO").strip().upper(),
        log_json=_env_bool("SCHOOL_PORTAL_LOG_JSON"),
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for this process, read from the environment once."""
    return load_settings()
