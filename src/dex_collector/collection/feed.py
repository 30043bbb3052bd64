"""Local directory feed: candidate listing plus raw DEX files.

Layout::

    <feed_dir>/candidates.json     list of listing rows, or {"data": [...]}
    <feed_dir>/raw/<dex_id>.txt    raw DEX text for each record
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from dex_collector.ingestion.models import CandidateRecord

logger = logging.getLogger(__name__)

CANDIDATES_FILE = "candidates.json"
RAW_DIR = "raw"


class LocalFeed:
    """Reads a feed directory exported from the operator platform."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    @property
    def candidates_path(self) -> Path:
        return self.directory / CANDIDATES_FILE

    def raw_path(self, dex_id: str) -> Path:
        return self.directory / RAW_DIR / f"{dex_id}.txt"

    def rows(self) -> list[dict]:
        if not self.candidates_path.exists():
            logger.info("No %s in %s", CANDIDATES_FILE, self.directory)
            return []
        data = json.loads(self.candidates_path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = data.get("data") or []
        if not isinstance(data, list):
            raise ValueError(f"{self.candidates_path} must hold a list of rows")
        return [row for row in data if isinstance(row, dict)]

    def candidates(self, company_id: str = "") -> list[CandidateRecord]:
        """Listing rows as candidates; rows tagged with another company are skipped."""
        result = []
        for row in self.rows():
            row_company = row.get("company_id")
            if company_id and row_company and str(row_company) != company_id:
                continue
            result.append(CandidateRecord.from_feed_row(row))
        return result

    def fetch_raw(self, dex_id: str) -> str:
        """Raw DEX text for a record. Raises FileNotFoundError when missing."""
        path = self.raw_path(dex_id)
        if not path.is_file():
            raise FileNotFoundError(f"no raw DEX file for {dex_id}: {path}")
        # newline="" keeps CRLF line ends as delivered
        with open(path, encoding="utf-8", errors="replace", newline="") as f:
            return f.read()
