"""Collector configuration from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DB_PATH = "./data/dex_collector.duckdb"


def resolve_db_path(db_path: str | None = None) -> str:
    """Resolve database path from argument, env var, or default.

    Priority: explicit arg > DEX_DB env var > default local file.
    """
    if db_path:
        return db_path
    return os.environ.get("DEX_DB", DEFAULT_DB_PATH)


@dataclass
class CollectorConfig:
    """Configuration for a collection run."""

    # DuckDB file holding machines and captures
    db_path: str = DEFAULT_DB_PATH
    # Exported feed directory (candidates.json + raw/)
    feed_dir: str = ""
    # Company to collect when none is given on the command line
    company_id: str = ""
    # New records fetched per batch
    batch_limit: int = 15
    # Seconds between batches and between companies
    batch_delay: float = 1.0
    company_delay: float = 2.0
    # Retention
    history_limit: int = 100
    captures_per_machine: int = 10
    # Window for the recent-capture count
    recent_hours: int = 4

    @classmethod
    def from_env(cls) -> CollectorConfig:
        """Load configuration from environment variables."""
        return cls(
            db_path=resolve_db_path(),
            feed_dir=os.environ.get("DEX_FEED_DIR", ""),
            company_id=os.environ.get("DEX_COMPANY_ID", ""),
            batch_limit=int(os.environ.get("DEX_BATCH_LIMIT", "15")),
            batch_delay=float(os.environ.get("DEX_BATCH_DELAY", "1.0")),
            company_delay=float(os.environ.get("DEX_COMPANY_DELAY", "2.0")),
            history_limit=int(os.environ.get("DEX_HISTORY_LIMIT", "100")),
            captures_per_machine=int(os.environ.get("DEX_CAPTURES_PER_MACHINE", "10")),
            recent_hours=int(os.environ.get("DEX_RECENT_HOURS", "4")),
        )

    def validate(self) -> list[str]:
        """Return list of validation errors, empty if config is valid."""
        errors = []
        if self.feed_dir and not Path(self.feed_dir).is_dir():
            errors.append(f"DEX_FEED_DIR does not exist: {self.feed_dir}")
        if self.batch_limit <= 0:
            errors.append("DEX_BATCH_LIMIT must be positive")
        if self.batch_delay < 0 or self.company_delay < 0:
            errors.append("DEX_BATCH_DELAY and DEX_COMPANY_DELAY must not be negative")
        if self.history_limit <= 0:
            errors.append("DEX_HISTORY_LIMIT must be positive")
        if self.captures_per_machine <= 0:
            errors.append("DEX_CAPTURES_PER_MACHINE must be positive")
        if self.recent_hours <= 0:
            errors.append("DEX_RECENT_HOURS must be positive")
        return errors
