"""
Configuration

Unified configuration for a carelog session, built explicitly or from
CARELOG_* environment variables.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import tzinfo
from typing import Mapping, Optional
import os

from .storage import TimelineStoreConfig
from .temporal.month_window import resolve_tz


DEFAULT_STORAGE_DIR = os.path.join("data", "carelog")


@dataclass
class CarelogConfig:
    """Unified configuration for the service and API."""
    store: TimelineStoreConfig = None
    owner_id: str = "local"
    operator_name: Optional[str] = None
    time_zone: str = "local"

    def __post_init__(self):
        self.store = self.store or TimelineStoreConfig()

    @property
    def tz(self) -> Optional[tzinfo]:
        """Resolved time zone; None means the process-local zone."""
        return resolve_tz(self.time_zone)

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> CarelogConfig:
        """
        Build configuration from the environment.

        CARELOG_BACKEND defaults to "local", storing under
        CARELOG_STORAGE_DIR (default ./data/carelog).
        """
        env = os.environ if environ is None else environ
        backend_type = env.get("CARELOG_BACKEND", "local").strip().lower()

        storage_dir = env.get("CARELOG_STORAGE_DIR")
        if not storage_dir and backend_type == "local":
            storage_dir = os.path.join(os.getcwd(), DEFAULT_STORAGE_DIR)

        timeout_raw = env.get("CARELOG_REMOTE_TIMEOUT")
        try:
            remote_timeout = float(timeout_raw) if timeout_raw else 15.0
        except ValueError:
            raise ValueError(f"CARELOG_REMOTE_TIMEOUT is not a number: {timeout_raw!r}") from None

        config = CarelogConfig(
            store=TimelineStoreConfig(
                backend_type=backend_type,
                storage_dir=storage_dir or None,
                remote_base_url=env.get("CARELOG_REMOTE_URL") or None,
                remote_timeout=remote_timeout,
                api_token=env.get("CARELOG_API_TOKEN") or None
            ),
            owner_id=env.get("CARELOG_OWNER_ID") or "local",
            operator_name=env.get("CARELOG_OPERATOR_NAME") or None,
            time_zone=env.get("CARELOG_TZ") or "local"
        )
        # Fail at startup, not on first query
        resolve_tz(config.time_zone)
        return config
