"""market_metadata persistence."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = ["market_id", "description", "image_url", "proposer_address", "tag", "created_at"]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM market_metadata"


def utc_now_iso() -> str:
    """Fixed-width UTC timestamp so lexical order matches time order."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def insert_metadata(
    conn: DuckDBPyConnection,
    market_id: int,
    description: str,
    image_url: str,
    proposer_address: str,
    tag: str | None,
    created_at: str | None = None,
) -> dict[str, Any]:
    """Insert one metadata row and return it. Raises duckdb.ConstraintException if market_id exists."""
    created_at = created_at or utc_now_iso()
    conn.execute(
        """
        INSERT INTO market_metadata (market_id, description, image_url, proposer_address, tag, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [market_id, description, image_url, proposer_address, tag, created_at],
    )
    return dict(zip(_COLUMNS, [market_id, description, image_url, proposer_address, tag, created_at]))


def get_metadata(conn: DuckDBPyConnection, market_id: int) -> dict[str, Any] | None:
    """Return the metadata row for market_id, or None."""
    row = conn.execute(f"{_SELECT} WHERE market_id = ?", [market_id]).fetchone()
    if not row:
        return None
    return dict(zip(_COLUMNS, row))


def list_metadata(
    conn: DuckDBPyConnection,
    tag: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """Most-recent-first metadata rows, optionally filtered by tag."""
    if tag:
        rows = conn.execute(
            f"{_SELECT} WHERE tag = ? ORDER BY created_at DESC, market_id DESC LIMIT ? OFFSET ?",
            [tag, limit, offset],
        ).fetchall()
    else:
        rows = conn.execute(
            f"{_SELECT} ORDER BY created_at DESC, market_id DESC LIMIT ? OFFSET ?",
            [limit, offset],
        ).fetchall()
    return [dict(zip(_COLUMNS, r)) for r in rows]

