"""
Settings for the stale entity subsystem.

Values come from the environment, optionally seeded from a .env file in the
working directory.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

DEFAULT_BATCH_SIZE = 20
DEFAULT_TIME_LIMIT = 60.0
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_env() -> None:
    """Load .env from project root if present. Existing variables win."""
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


@dataclass
class Settings:
    db_path: Path = Path("data/stale_entities.db")
    batch_size: int = DEFAULT_BATCH_SIZE
    time_limit: Optional[float] = DEFAULT_TIME_LIMIT  # seconds per tick; None = unbounded
    alert_after_attempts: Optional[int] = None
    max_batches_per_tick: Optional[int] = None
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_to_file: bool = True
    store_max_retries: int = 3
    store_retry_delay: float = 0.1


def _get_int(env: Mapping[str, str], name: str, default: Optional[int], minimum: int = 0) -> Optional[int]:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        env: Mapping to read instead of os.environ (mainly for tests)

    Returns:
        Settings instance

    Raises:
        ValueError: If a variable holds an invalid value
    """
    if env is None:
        load_env()
        env = os.environ

    defaults = Settings()

    time_limit = _get_float(env, "STALE_ENTITIES_TIME_LIMIT", defaults.time_limit)
    if time_limit == 0:
        time_limit = None

    log_level = env.get("STALE_ENTITIES_LOG_LEVEL", "").strip().upper() or defaults.log_level
    if log_level not in LOG_LEVELS:
        raise ValueError(f"STALE_ENTITIES_LOG_LEVEL must be a log level name, got {log_level!r}")

    db_path = env.get("STALE_ENTITIES_DB_PATH", "").strip()
    log_dir = env.get("STALE_ENTITIES_LOG_DIR", "").strip()

    return Settings(
        db_path=Path(db_path) if db_path else defaults.db_path,
        batch_size=_get_int(env, "STALE_ENTITIES_BATCH_SIZE", defaults.batch_size, minimum=1),
        time_limit=time_limit,
        alert_after_attempts=_get_int(env, "STALE_ENTITIES_ALERT_AFTER", None, minimum=1),
        max_batches_per_tick=_get_int(env, "STALE_ENTITIES_MAX_BATCHES", None, minimum=1),
        log_level=log_level,
        log_dir=Path(log_dir) if log_dir else defaults.log_dir,
        log_to_file=_get_bool(env, "STALE_ENTITIES_LOG_FILE", defaults.log_to_file),
        store_max_retries=_get_int(env, "STALE_ENTITIES_STORE_RETRIES", defaults.store_max_retries),
        store_retry_delay=_get_float(env, "STALE_ENTITIES_STORE_RETRY_DELAY", defaults.store_retry_delay),
    )


def load_log_settings(env: Optional[Mapping[str, str]] = None) -> Tuple[str, Path, bool]:
    """
    Read only the logging variables.

    Used when the global logger is created, which can happen at import
    time, so invalid values fall back to the defaults instead of raising.

    Returns:
        Tuple of (log_level, log_dir, log_to_file)
    """
    if env is None:
        load_env()
        env = os.environ

    defaults = Settings()

    log_level = env.get("STALE_ENTITIES_LOG_LEVEL", "").strip().upper()
    if log_level not in LOG_LEVELS:
        log_level = defaults.log_level

    log_dir = env.get("STALE_ENTITIES_LOG_DIR", "").strip()

    try:
        log_to_file = _get_bool(env, "STALE_ENTITIES_LOG_FILE", defaults.log_to_file)
    except ValueError:
        log_to_file = defaults.log_to_file

    return log_level, Path(log_dir) if log_dir else defaults.log_dir, log_to_file
