"""Configuration and shared settings."""

__version__ = "0.1.0"

import os
import sys
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

_stderr_print = lambda *a, **kw: print(*a, **kw, file=sys.stderr)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        _stderr_print(f"Invalid {name}={raw!r}, falling back to {default}")
        return default


MIN_KEY_LENGTH = _int_env("ACTION_MIN_KEY_LENGTH", 10)
if MIN_KEY_LENGTH < 1:
    _stderr_print(f"Unsupported ACTION_MIN_KEY_LENGTH={MIN_KEY_LENGTH}, falling back to 10")
    MIN_KEY_LENGTH = 10

CONFIG = {
    "port": _int_env("PORT", 3000),
    # Document store (HTTP)
    "store_api_url": os.getenv("DOCSTORE_API_URL", "").rstrip("/"),
    "store_dataset": os.getenv("DOCSTORE_DATASET", "production"),
    "store_token": os.getenv("DOCSTORE_TOKEN", ""),
    "store_timeout_seconds": _int_env("DOCSTORE_TIMEOUT", 30),
    # External design tool
    "design_api_url": os.getenv("DESIGN_API_URL", "https://api.figma.com/v1").rstrip("/"),
    "design_token": os.getenv("DESIGN_TOKEN", ""),
    # Engine limits
    "min_key_length": MIN_KEY_LENGTH,
    "content_batch_size": _int_env("ACTION_BATCH_SIZE", 5),
    "max_nesting_depth": _int_env("ACTION_MAX_NESTING_DEPTH", 12),
    "action_ttl_seconds": _int_env("ACTION_STORE_TTL", 3600),
    "query_max_length": _int_env("ACTION_QUERY_MAX_LENGTH", 5000),
    "result_max_bytes": _int_env("ACTION_RESULT_MAX_BYTES", 1_000_000),
}


# ── Typed config ──────────────────────────────────────────


@dataclass
class StoreConfig:
    api_url: str = ""
    dataset: str = "production"
    token: str = ""
    timeout_seconds: int = 30

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.token)


@dataclass
class DesignToolConfig:
    api_url: str = "https://api.figma.com/v1"
    token: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.token)


@dataclass
class EngineConfig:
    min_key_length: int = 10
    content_batch_size: int = 5
    max_nesting_depth: int = 12
    action_ttl_seconds: int = 3600
    query_max_length: int = 5000
    result_max_bytes: int = 1_000_000


@dataclass
class AppConfig:
    """Typed view over CONFIG, passed explicitly to engine components."""

    port: int = 3000
    store: StoreConfig = field(default_factory=StoreConfig)
    design: DesignToolConfig = field(default_factory=DesignToolConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create AppConfig from environment variables."""
        return cls(
            port=CONFIG["port"],
            store=StoreConfig(
                api_url=CONFIG["store_api_url"],
                dataset=CONFIG["store_dataset"],
                token=CONFIG["store_token"],
                timeout_seconds=CONFIG["store_timeout_seconds"],
            ),
            design=DesignToolConfig(
                api_url=CONFIG["design_api_url"],
                token=CONFIG["design_token"],
            ),
            engine=EngineConfig(
                min_key_length=CONFIG["min_key_length"],
                content_batch_size=CONFIG["content_batch_size"],
                max_nesting_depth=CONFIG["max_nesting_depth"],
                action_ttl_seconds=CONFIG["action_ttl_seconds"],
                query_max_length=CONFIG["query_max_length"],
                result_max_bytes=CONFIG["result_max_bytes"],
            ),
        )
