"""
Engine configuration parameters for Gavel.

Defines storage locations, auction defaults and operational limits.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from gavel.utils.logger import parse_level
from gavel.utils.validation import MAX_ITEMS

# One week, the duration the deployment tooling has always used
DEFAULT_DURATION = 7 * 24 * 60 * 60

ENV_PREFIX = "GAVEL_"


@dataclass
class EngineConfig:
    """Engine-wide configuration parameters"""

    # Auction parameters
    default_duration: int = DEFAULT_DURATION  # Seconds from init to deadline
    max_items: int = MAX_ITEMS  # Catalog size limit

    # Storage parameters
    data_dir: Path = Path("~/.gavel")
    db_name: str = "gavel.db"

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_to_file: bool = False

    def __post_init__(self):
        self.data_dir = Path(self.data_dir).expanduser()
        self.log_dir = Path(self.log_dir).expanduser()
        if self.default_duration <= 0:
            raise ValueError(f"default_duration must be positive, got {self.default_duration}")
        if self.max_items <= 0:
            raise ValueError(f"max_items must be positive, got {self.max_items}")
        parse_level(self.log_level)

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name

    def ensure_dirs(self) -> None:
        """Create necessary directories"""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        if self.log_to_file:
            self.log_dir.mkdir(exist_ok=True, parents=True)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Load configuration from a .env file and the environment.

    Variables already set in the environment win over the file.

    Args:
        config_path: Optional path to a .env file. If None, a .env in the
            working directory (or a parent) is used when present.

    Returns:
        EngineConfig instance
    """
    if config_path:
        if not Path(config_path).exists():
            raise ValueError(f"Config file not found: {config_path}")
        load_dotenv(config_path, override=False)
    else:
        load_dotenv(override=False)

    base = EngineConfig()
    return EngineConfig(
        default_duration=_env_int("DEFAULT_DURATION", base.default_duration),
        max_items=_env_int("MAX_ITEMS", base.max_items),
        data_dir=Path(os.environ.get(ENV_PREFIX + "DATA_DIR") or base.data_dir),
        db_name=os.environ.get(ENV_PREFIX + "DB_NAME") or base.db_name,
        log_level=os.environ.get(ENV_PREFIX + "LOG_LEVEL") or base.log_level,
        log_dir=Path(os.environ.get(ENV_PREFIX + "LOG_DIR") or base.log_dir),
        log_to_file=_env_bool("LOG_TO_FILE", base.log_to_file),
    )
