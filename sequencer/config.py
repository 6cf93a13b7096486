# sequencer/config.py
"""
Runtime settings, resolved once from the environment at startup.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from sequencer.clients.gateway import DEFAULT_GATEWAY_URL
from sequencer.clients.uploader import DEFAULT_UPLOAD_URL
from sequencer.core.errors import ConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS = ("json", "text")


def default_db_path() -> Path:
    return Path.home() / ".sequencer" / "sequencer.db"


@dataclass(frozen=True)
class Settings:
    wallet_path: Optional[Path]
    db_path: Path
    upload_url: str = DEFAULT_UPLOAD_URL
    gateway_url: str = DEFAULT_GATEWAY_URL
    timeout: float = 30.0
    upload_attempts: int = 5
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, db_path: Optional[Path] = None) -> "Settings":
        """
        Resolve settings. DB path order:
        1. explicit `db_path` (the --db flag)
        2. SEQUENCER_DB_PATH environment variable
        3. Default: ~/.sequencer/sequencer.db
        Relative paths resolve against the working directory.
        """
        env = os.environ if env is None else env

        if db_path is None:
            env_db = env.get("SEQUENCER_DB_PATH")
            db_path = Path(env_db) if env_db else default_db_path()
        db_path = db_path.expanduser().resolve()

        wallet = env.get("SU_WALLET_PATH")
        log_level = env.get("SEQUENCER_LOG_LEVEL", "INFO").upper()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"SEQUENCER_LOG_LEVEL must be one of {LOG_LEVELS}, got {log_level!r}")
        log_format = env.get("SEQUENCER_LOG_FORMAT", "json").lower()
        if log_format not in LOG_FORMATS:
            raise ConfigError(f"SEQUENCER_LOG_FORMAT must be one of {LOG_FORMATS}, got {log_format!r}")

        return cls(
            wallet_path=Path(wallet) if wallet else None,
            db_path=db_path,
            upload_url=env.get("SEQUENCER_UPLOAD_URL", DEFAULT_UPLOAD_URL),
            gateway_url=env.get("SEQUENCER_GATEWAY_URL", DEFAULT_GATEWAY_URL),
            timeout=_positive(env, "SEQUENCER_TIMEOUT", float, 30.0),
            upload_attempts=_positive(env, "SEQUENCER_UPLOAD_ATTEMPTS", int, 5),
            log_level=log_level,
            log_format=log_format,
        )


def _positive(env: Mapping[str, str], name: str, cast, default):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value
