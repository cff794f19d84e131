"""
Bridge Tracker Configuration - Watched address, API settings and display limits.

API keys are loaded from environment variables (optionally via a .env file).
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)


DEFAULT_WATCHED_ADDRESS = "0x0ca3a2fbc3d770b578223fbb6b062fa875a2ee75"
DEFAULT_API_URL = "https://api.etherscan.io/v2/api"
DEFAULT_WINDOW_SECONDS = 86400  # 24h

# Etherscan rejects requests where page * offset exceeds this
MAX_RESULT_WINDOW = 10000

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed {name}={raw!r}, using {default}")
        return default


@dataclass
class TrackerConfig:
    """Main configuration for the bridge tracker."""

    # Watched contract
    watched_address: str = DEFAULT_WATCHED_ADDRESS

    # Etherscan V2
    api_key: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    chain_id: int = 1  # Ethereum mainnet
    page_size: int = MAX_RESULT_WINDOW
    max_pages: int = 1
    timeout_seconds: float = 30.0
    max_retries: int = 2
    retry_backoff_base: float = 1.5

    # Aggregation
    window_seconds: int = DEFAULT_WINDOW_SECONDS
    recent_limit: int = 12
    leaderboard_limit: int = 20

    # Refresh loop
    refresh_interval_seconds: float = 60.0
    auto_refresh: bool = True

    def __post_init__(self) -> None:
        """Normalize address."""
        self.watched_address = (self.watched_address or "").strip().lower()

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "TrackerConfig":
        """Build configuration from environment variables."""
        if dotenv:
            load_dotenv()

        return cls(
            watched_address=os.environ.get("BRIDGE_CA", DEFAULT_WATCHED_ADDRESS),
            api_key=os.environ.get("ETHERSCAN_API_KEY") or None,
            api_url=os.environ.get("ETHERSCAN_API_URL", DEFAULT_API_URL),
            chain_id=_env_int("ETHERSCAN_CHAIN_ID", 1),
            page_size=_env_int("ETHERSCAN_PAGE_SIZE", 10000),
            max_pages=_env_int("ETHERSCAN_MAX_PAGES", 1),
            timeout_seconds=_env_float("ETHERSCAN_TIMEOUT", 30.0),
            max_retries=_env_int("ETHERSCAN_MAX_RETRIES", 2),
            window_seconds=_env_int("BRIDGE_WINDOW_SECONDS", DEFAULT_WINDOW_SECONDS),
            recent_limit=_env_int("BRIDGE_RECENT_LIMIT", 12),
            leaderboard_limit=_env_int("BRIDGE_LEADERBOARD_LIMIT", 20),
            refresh_interval_seconds=_env_float("BRIDGE_REFRESH_SECONDS", 60.0),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if not _ADDRESS_RE.match(self.watched_address):
            raise ConfigurationError(
                f"Invalid watched address: {self.watched_address!r}",
                config_key="BRIDGE_CA",
            )
        if self.window_seconds < 0:
            raise ConfigurationError(
                "window_seconds must be >= 0",
                config_key="BRIDGE_WINDOW_SECONDS",
            )
        if self.refresh_interval_seconds <= 0:
            raise ConfigurationError(
                "refresh_interval_seconds must be positive",
                config_key="BRIDGE_REFRESH_SECONDS",
            )
        for key in ("page_size", "max_pages", "recent_limit", "leaderboard_limit"):
            if getattr(self, key) < 1:
                raise ConfigurationError(f"{key} must be >= 1", config_key=key)
        if self.page_size > MAX_RESULT_WINDOW:
            raise ConfigurationError(
                f"page_size must be <= {MAX_RESULT_WINDOW}",
                config_key="ETHERSCAN_PAGE_SIZE",
            )
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be >= 1", config_key="max_retries")

    def require_api_key(self) -> str:
        """Return the API key or fail the cycle."""
        if not self.api_key:
            raise ConfigurationError(
                "Missing ETHERSCAN_API_KEY",
                config_key="ETHERSCAN_API_KEY",
            )
        return self.api_key

    def to_dict(self) -> dict[str, Any]:
        # api_key deliberately omitted
        return {
            "watched_address": self.watched_address,
            "api_url": self.api_url,
            "chain_id": self.chain_id,
            "page_size": self.page_size,
            "max_pages": self.max_pages,
            "timeout_seconds": self.timeout_seconds,
            "max_retries": self.max_retries,
            "window_seconds": self.window_seconds,
            "recent_limit": self.recent_limit,
            "leaderboard_limit": self.leaderboard_limit,
            "refresh_interval_seconds": self.refresh_interval_seconds,
            "auto_refresh": self.auto_refresh,
            "has_api_key": bool(self.api_key),
        }


# Default configuration instance
_default_config: Optional[TrackerConfig] = None


def get_config() -> TrackerConfig:
    """Get the default configuration."""
    global _default_config
    if _default_config is None:
        _default_config = TrackerConfig.from_env()
    return _default_config


def set_config(config: Optional[TrackerConfig]) -> None:
    """Set the default configuration (None resets to environment)."""
    global _default_config
    _default_config = config
