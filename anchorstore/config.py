# anchorstore/config.py
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from anchorstore.core.errors import ConfigurationError

ENV_PREFIX = "ANCHORSTORE_"


@dataclass(frozen=True)
class Settings:
    """Runtime settings. Resolution order: explicit override > environment > default."""
    db_path: Path = Path.home() / ".anchorstore" / "anchorstore.db"
    node_private_key: Optional[str] = None
    admin_access_level: int = 1000
    anchor_timeout: float = 30.0
    anchor_retries: int = 2
    anchor_backoff: float = 1.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value and value.strip() else None

        def as_int(name: str, default: int) -> int:
            raw = get(name)
            if raw is None:
                return default
            try:
                value = int(raw)
            except ValueError:
                raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")
            if value < 0:
                raise ConfigurationError(f"{ENV_PREFIX}{name} must not be negative")
            return value

        def as_float(name: str, default: float) -> float:
            raw = get(name)
            if raw is None:
                return default
            try:
                value = float(raw)
            except ValueError:
                raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}")
            if value <= 0:
                raise ConfigurationError(f"{ENV_PREFIX}{name} must be positive")
            return value

        db_path = get("DB_PATH")
        log_level = (get("LOG_LEVEL") or defaults.log_level).upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"{ENV_PREFIX}LOG_LEVEL is not a logging level: {log_level!r}")

        return cls(
            db_path=Path(db_path).expanduser().resolve() if db_path else defaults.db_path,
            node_private_key=get("NODE_PRIVATE_KEY"),
            admin_access_level=as_int("ADMIN_ACCESS_LEVEL", defaults.admin_access_level),
            anchor_timeout=as_float("ANCHOR_TIMEOUT", defaults.anchor_timeout),
            anchor_retries=as_int("ANCHOR_RETRIES", defaults.anchor_retries),
            anchor_backoff=as_float("ANCHOR_BACKOFF", defaults.anchor_backoff),
            log_level=log_level,
        )

    def with_overrides(self, **overrides) -> "Settings":
        """Copy with every non-None override applied (CLI flags)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
