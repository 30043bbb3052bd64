"""DuckDB table definitions."""

SCHEMA_DDL = """
-- Tracked vending machines and their reconciled DEX state
CREATE TABLE IF NOT EXISTS machines (
    machine_id        TEXT PRIMARY KEY,
    company_id        TEXT NOT NULL,
    case_serial       TEXT NOT NULL,
    machine_model     TEXT,
    status            TEXT DEFAULT 'active',
    latest_dex_data   TIMESTAMP,
    latest_dex_parsed TEXT,            -- JSON: summary + key-value groups
    latest_errors     TEXT,            -- JSON: error ledger
    dex_history       TEXT,            -- JSON: [{dex_id, created}], newest first
    dex_last_capture  TIMESTAMP,
    created_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Raw and decoded DEX reports, most recent few per machine
CREATE TABLE IF NOT EXISTS dex_captures (
    dex_id        TEXT NOT NULL,
    company_id    TEXT NOT NULL,
    machine_id    TEXT,
    case_serial   TEXT,
    raw_content   TEXT,
    parsed_json   TEXT,              -- JSON: hybrid document
    has_errors    BOOLEAN DEFAULT FALSE,
    record_count  INTEGER,
    created_at    TIMESTAMP,
    captured_at   TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (dex_id, company_id)
);
"""

# Columns added after the first release of the machines table.
MIGRATION_COLUMNS = [
    ("machines", "dex_recent_count", "INTEGER DEFAULT 0"),
    ("machines", "dex_has_errors", "BOOLEAN DEFAULT FALSE"),
]
