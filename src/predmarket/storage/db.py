"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Off-chain market metadata (write-once per market_id)
CREATE TABLE IF NOT EXISTS market_metadata (
    market_id         BIGINT PRIMARY KEY,
    description       VARCHAR NOT NULL,
    image_url         VARCHAR NOT NULL,
    proposer_address  VARCHAR NOT NULL,
    tag               VARCHAR,
    created_at        VARCHAR NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_market_metadata_tag ON market_metadata (tag);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager."""
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and indexes if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
