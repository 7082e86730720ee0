"""Shared fixtures: API settings pointed at a temporary database and image directory."""

import pytest

from predmarket.api import main
from predmarket.config import Settings
from predmarket.storage.db import get_connection, init_schema


@pytest.fixture
def settings(tmp_path, monkeypatch):
    s = Settings(
        storage={"db_path": str(tmp_path / "api.duckdb"), "images_dir": str(tmp_path / "images")},
        api={"page_size": 2, "verify_proposer": False},
    )
    monkeypatch.setattr(main, "get_settings", lambda profile=None, config_dir=None: s)
    conn = get_connection(s.db_path)
    try:
        init_schema(conn)
    finally:
        conn.close()
    (tmp_path / "images").mkdir()
    return s
