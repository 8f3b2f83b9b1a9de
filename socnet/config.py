"""Configuration for a social network instance."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class SocnetConfig:
    """Configuration for a SocialNetwork and its graph store."""
    db_path: str = ":memory:"        # SQLite file, or ":memory:" for a private in-memory graph
    busy_timeout_ms: int = 5000      # How long a writer waits on a locked database
    journal_mode: str = "WAL"
    default_max_depth: int = 4       # Path search depth when none is given
    default_max_results: int = 10    # Recommendation limit when none is given

    @classmethod
    def from_env(cls, prefix: str = "SOCNET_") -> SocnetConfig:
        """Build a config from environment variables, falling back to defaults.

        Reads {prefix}DB_PATH, {prefix}BUSY_TIMEOUT_MS, {prefix}JOURNAL_MODE,
        {prefix}DEFAULT_MAX_DEPTH and {prefix}DEFAULT_MAX_RESULTS.
        """
        defaults = cls()
        return cls(
            db_path=os.environ.get(f"{prefix}DB_PATH", defaults.db_path),
            busy_timeout_ms=_env_int(
                f"{prefix}BUSY_TIMEOUT_MS", defaults.busy_timeout_ms
            ),
            journal_mode=os.environ.get(
                f"{prefix}JOURNAL_MODE", defaults.journal_mode
            ),
            default_max_depth=_env_int(
                f"{prefix}DEFAULT_MAX_DEPTH", defaults.default_max_depth
            ),
            default_max_results=_env_int(
                f"{prefix}DEFAULT_MAX_RESULTS", defaults.default_max_results
            ),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
