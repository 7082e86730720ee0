"""Metadata API: create, lookup, list, proposer verification and images."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from predmarket.api import main
from predmarket.errors import UpstreamReadError
from predmarket.storage.db import get_connection
from predmarket.storage.metadata import insert_metadata

PROPOSER = "0x00000000000000000000000000000000000000Aa"


@pytest.fixture
def client(settings):
    with TestClient(main.app) as c:
        yield c


def body(market_id=1, **kw):
    b = {
        "market_id": market_id,
        "description": "Resolves on the official result.",
        "image_url": "http://127.0.0.1:8000/images/a.png",
        "proposer_address": PROPOSER,
        "tag": "Sports",
    }
    b.update(kw)
    return b


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_create_then_get(client):
    r = client.post("/api/markets", json=body(3))
    assert r.status_code == 200
    created = r.json()
    assert created["market_id"] == 3
    assert created["tag"] == "Sports"
    assert created["created_at"]

    r = client.get("/api/markets", params={"market_id": 3})
    assert r.status_code == 200
    assert r.json() == created


def test_market_id_zero_and_string_ids_accepted(client):
    assert client.post("/api/markets", json=body(0)).status_code == 200
    r = client.post("/api/markets", json=body("5"))
    assert r.status_code == 200
    assert r.json()["market_id"] == 5
    assert client.get("/api/markets", params={"market_id": 0}).json()["market_id"] == 0


@pytest.mark.parametrize("field", ["market_id", "description", "image_url", "proposer_address", "tag"])
def test_missing_field_is_400(client, field):
    b = body()
    del b[field]
    r = client.post("/api/markets", json=b)
    assert r.status_code == 400
    assert r.json()["code"] == "missing_fields"


def test_blank_and_invalid_values_are_400(client):
    assert client.post("/api/markets", json=body(description="   ")).status_code == 400
    assert client.post("/api/markets", json=body(market_id="abc")).status_code == 400
    assert client.post("/api/markets", json=body(market_id=-1)).status_code == 400
    r = client.post("/api/markets", json=body(tag="Weather"))
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_tag"


def test_duplicate_is_409_and_first_record_kept(client):
    assert client.post("/api/markets", json=body(1)).status_code == 200
    r = client.post("/api/markets", json=body(1, description="Second try"))
    assert r.status_code == 409
    assert r.json()["code"] == "already_exists"
    assert client.get("/api/markets", params={"market_id": 1}).json()["description"] != "Second try"


def test_unknown_market_is_404(client):
    r = client.get("/api/markets", params={"market_id": 42})
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


def test_list_most_recent_first_with_tag_and_page_size(client, settings):
    conn = get_connection(settings.db_path)
    try:
        insert_metadata(conn, 1, "d1", "u1", PROPOSER, "Crypto", created_at="2026-01-01T00:00:00.000000Z")
        insert_metadata(conn, 2, "d2", "u2", PROPOSER, "Sports", created_at="2026-01-02T00:00:00.000000Z")
        insert_metadata(conn, 3, "d3", "u3", PROPOSER, "Crypto", created_at="2026-01-03T00:00:00.000000Z")
    finally:
        conn.close()

    r = client.get("/api/markets")
    assert r.status_code == 200
    assert [m["market_id"] for m in r.json()] == [3, 2]  # capped at page_size

    r = client.get("/api/markets", params={"offset": 2})
    assert [m["market_id"] for m in r.json()] == [1]

    r = client.get("/api/markets", params={"tag": "Crypto"})
    assert [m["market_id"] for m in r.json()] == [3, 1]

    assert client.get("/api/markets", params={"tag": "Gaming"}).json() == []


def test_proposer_verified_case_insensitively(client, monkeypatch):
    async def lookup(market_id):
        return PROPOSER.lower()

    monkeypatch.setattr(main, "_get_proposer_lookup", lambda: lookup)
    assert client.post("/api/markets", json=body(1)).status_code == 200


def test_proposer_mismatch_is_403_and_not_stored(client, monkeypatch):
    async def lookup(market_id):
        return "0x00000000000000000000000000000000000000bb"

    monkeypatch.setattr(main, "_get_proposer_lookup", lambda: lookup)
    r = client.post("/api/markets", json=body(1))
    assert r.status_code == 403
    assert r.json()["code"] == "proposer_mismatch"
    assert client.get("/api/markets", params={"market_id": 1}).status_code == 404


def test_proposer_read_failure_is_500(client, monkeypatch):
    async def lookup(market_id):
        raise UpstreamReadError("rpc down")

    monkeypatch.setattr(main, "_get_proposer_lookup", lambda: lookup)
    r = client.post("/api/markets", json=body(1))
    assert r.status_code == 500
    assert r.json()["code"] == "chain_error"


def test_images_served_from_store(client, settings):
    path = Path(settings.images_dir) / "cover.png"
    path.write_bytes(b"\x89PNG")
    r = client.get("/images/cover.png")
    assert r.status_code == 200
    assert r.content == b"\x89PNG"
    assert client.get("/images/missing.png").status_code == 404


def test_shutdown_closes_cached_contract(settings, monkeypatch):
    class FakeContract:
        closed = False

        async def close(self):
            self.closed = True

    contract = FakeContract()
    with TestClient(main.app):
        monkeypatch.setattr(main, "_contract", contract)
    assert contract.closed
    assert main._contract is None
