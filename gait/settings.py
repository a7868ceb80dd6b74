"""Centralized environment configuration for the Gait feed client.

All environment variables are read through this module using the GAIT_
prefix for consistency.

Usage:
    from gait.settings import settings

    limit = settings.page_limit()
    if settings.use_ssr():
        ...
"""

from __future__ import annotations

import os
from pathlib import Path


def _get(name: str, default: str = "") -> str:
    """Get an environment variable value."""
    return os.environ.get(name, "").strip() or default


def _get_bool(name: str, default: bool = False) -> bool:
    """Get a boolean environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    return value.lower() in ("1", "true", "yes")


def _get_int(name: str, default: int = 0) -> int:
    """Get an integer environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(name: str, default: float = 0.0) -> float:
    """Get a float environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


class Settings:
    """Centralized settings for the Gait feed client.

    Environment variables use the GAIT_ prefix.
    """

    # -------------------------------------------------------------------------
    # Backend Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def base_url() -> str:
        """Base URL of the git backend (REST + WebSocket).

        Env: GAIT_BASE_URL (default: http://localhost:8080)
        """
        return _get("GAIT_BASE_URL", default="http://localhost:8080").rstrip("/")

    @staticmethod
    def token() -> str:
        """Bearer token sent to the backend. Empty disables the header.

        Env: GAIT_TOKEN
        """
        return _get("GAIT_TOKEN")

    @staticmethod
    def request_timeout_seconds() -> float:
        """Timeout for a single backend request.

        Env: GAIT_REQUEST_TIMEOUT_SECONDS (default: 30)
        """
        return _get_float("GAIT_REQUEST_TIMEOUT_SECONDS", default=30.0)

    @staticmethod
    def use_ssr() -> bool:
        """Prefer the server-rendered HTML page variant when paginating.

        Env: GAIT_USE_SSR (default: true)
        """
        return _get_bool("GAIT_USE_SSR", default=True)

    # -------------------------------------------------------------------------
    # Feed Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def page_limit() -> int:
        """Number of commits requested per page.

        Env: GAIT_PAGE_LIMIT (default: 50)
        """
        value = _get_int("GAIT_PAGE_LIMIT", default=50)
        return value if value > 0 else 50

    @staticmethod
    def gc_threshold() -> int:
        """Minimum loaded window size before expansion keys are evicted.

        Keys for commits that are not loaded yet are kept while the window is
        smaller than this, so incremental loading never collapses panels.

        Env: GAIT_GC_THRESHOLD (default: 20)
        """
        return _get_int("GAIT_GC_THRESHOLD", default=20)

    # -------------------------------------------------------------------------
    # Realtime Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def realtime_enabled() -> bool:
        """Subscribe to the backend push channel.

        Env: GAIT_REALTIME (default: true)
        """
        return _get_bool("GAIT_REALTIME", default=True)

    @staticmethod
    def ws_path() -> str:
        """Path of the push-notification WebSocket.

        Env: GAIT_WS_PATH (default: /ws/dashboard)
        """
        return _get("GAIT_WS_PATH", default="/ws/dashboard")

    @staticmethod
    def reconnect_delay_seconds() -> float:
        """Fixed delay between push-channel reconnect attempts.

        Env: GAIT_RECONNECT_DELAY_SECONDS (default: 5)
        """
        return _get_float("GAIT_RECONNECT_DELAY_SECONDS", default=5.0)

    # -------------------------------------------------------------------------
    # Storage Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def data_dir() -> str:
        """Directory for persisted UI state.

        Env: GAIT_DATA_DIR (default: $XDG_DATA_HOME/gait or ~/.local/share/gait)
        """
        value = _get("GAIT_DATA_DIR")
        if value:
            return os.path.abspath(value)
        xdg = _get("XDG_DATA_HOME")
        base = Path(xdg) if xdg else Path.home() / ".local" / "share"
        return str(base / "gait")

    @staticmethod
    def state_file() -> str:
        """Path of the JSON file backing the key-value store."""
        return os.path.join(Settings.data_dir(), "state.json")

    # -------------------------------------------------------------------------
    # Logging Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def log_level() -> str:
        """Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).

        Env: GAIT_LOG_LEVEL (default: INFO)
        """
        return _get("GAIT_LOG_LEVEL", default="INFO").upper()

    @staticmethod
    def log_format() -> str:
        """Log format: "console" for dev-friendly, "json" for structured.

        Env: GAIT_LOG_FORMAT (default: console)
        """
        return _get("GAIT_LOG_FORMAT", default="console").lower()


settings = Settings()
