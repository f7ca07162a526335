"""
config.py
Runtime settings, read from environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DB_FILE = Path(__file__).with_name("contributions.db")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    val = raw.strip().lower()
    if val in _TRUE:
        return True
    if val in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{name} must be >= 1")
    return value


@dataclass(frozen=True)
class Settings:
    db_file: Path = DEFAULT_DB_FILE
    default_access_code: str = "admin123"
    openai_api_key: str | None = None
    assistant_model: str = "gpt-4o-mini"
    import_chunk_size: int = 100
    rollback_on_failure: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_file=Path(os.environ.get("CONTRIB_DB_FILE") or DEFAULT_DB_FILE),
            default_access_code=os.environ.get("CONTRIB_DEFAULT_ACCESS_CODE") or "admin123",
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            assistant_model=os.environ.get("CONTRIB_ASSISTANT_MODEL") or "gpt-4o-mini",
            import_chunk_size=_env_int("CONTRIB_IMPORT_CHUNK_SIZE", 100),
            rollback_on_failure=_env_bool("CONTRIB_ROLLBACK_ON_FAILURE", True),
            log_level=(os.environ.get("CONTRIB_LOG_LEVEL") or "INFO").upper(),
        )
