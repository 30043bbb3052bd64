"""DEX collector entry point.

Usage: python -m dex_collector <command>

Configure via environment variables:
    DEX_DB                    - DuckDB file (default: ./data/dex_collector.duckdb)
    DEX_FEED_DIR              - Feed directory with candidates.json and raw/
    DEX_COMPANY_ID            - Company collected when none is given
    DEX_BATCH_LIMIT           - Records per batch (default: 15)
    DEX_BATCH_DELAY           - Seconds between batches (default: 1.0)
    DEX_COMPANY_DELAY         - Seconds between companies (default: 2.0)
    DEX_HISTORY_LIMIT         - History entries kept per machine (default: 100)
    DEX_CAPTURES_PER_MACHINE  - Stored captures kept per machine (default: 10)
    DEX_RECENT_HOURS          - Window for the recent-capture count (default: 4)
"""

from __future__ import annotations

import logging
import sys

from dex_collector.cli.app import app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

if __name__ == "__main__":
    app()
