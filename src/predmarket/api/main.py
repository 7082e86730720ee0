"""FastAPI metadata service - /api/markets and uploaded images."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable

import duckdb
import structlog
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from predmarket.api.schemas import (
    ErrorResponse,
    HealthResponse,
    MarketMetadataCreate,
    MarketMetadataResponse,
)
from predmarket.config import get_settings
from predmarket.errors import UpstreamReadError
from predmarket.models import MarketTag
from predmarket.storage.db import get_connection, init_schema
from predmarket.storage.metadata import get_metadata, insert_metadata, list_metadata

log = structlog.get_logger(__name__)

# Set by run_api() before uvicorn imports the app.
_config_profile: str | None = None
_contract = None

ProposerLookup = Callable[[int], Awaitable[str | None]]


def _get_conn():
    settings = get_settings(_config_profile)
    return get_connection(settings.db_path)


def _get_proposer_lookup() -> ProposerLookup | None:
    """Return the on-chain proposer reader, or None when verification is disabled."""
    global _contract
    settings = get_settings(_config_profile)
    if not settings.verify_proposer:
        return None
    if _contract is None:
        from predmarket.chain.contract import MarketContract

        _contract = MarketContract.from_settings(settings)
    return _contract.market_proposer


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _contract
    settings = get_settings(_config_profile)
    conn = get_connection(settings.db_path)
    try:
        init_schema(conn)
    finally:
        conn.close()
    Path(settings.images_dir).mkdir(parents=True, exist_ok=True)
    log.info("api_started", db_path=settings.db_path, verify_proposer=settings.verify_proposer)
    yield
    if _contract is not None:
        await _contract.close()
        _contract = None
    log.info("api_stopped")


app = FastAPI(title="predmarket API", version="0.1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


def _parse_market_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        market_id = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return market_id if market_id >= 0 else None


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get(
    "/api/markets",
    responses={
        404: {"description": "No metadata for market_id", "model": ErrorResponse},
        500: {"description": "Storage failure", "model": ErrorResponse},
    },
)
def markets_get(
    market_id: int | None = Query(None, ge=0, description="Single record lookup"),
    tag: str | None = Query(None, description="Filter by category tag"),
    limit: int | None = Query(None, ge=1, description="Page size (capped at api.page_size)"),
    offset: int = Query(0, ge=0),
):
    """Single record by market_id, else most-recent-first list (optionally by tag)."""
    page_size = get_settings(_config_profile).api_page_size
    try:
        conn = _get_conn()
    except duckdb.Error as e:
        log.error("db_connect_failed", error=str(e))
        return _error_json("database_error", "Database error", 500)
    try:
        if market_id is not None:
            row = get_metadata(conn, market_id)
            if row is None:
                return _error_json("not_found", f"No metadata for market {market_id}")
            return MarketMetadataResponse(**row)
        rows = list_metadata(conn, tag=tag, limit=min(limit or page_size, page_size), offset=offset)
        return [MarketMetadataResponse(**r) for r in rows]
    except duckdb.Error as e:
        log.error("metadata_read_failed", market_id=market_id, tag=tag, error=str(e))
        return _error_json("database_error", "Database error", 500)
    finally:
        conn.close()


@app.post(
    "/api/markets",
    response_model=MarketMetadataResponse,
    responses={
        400: {"description": "Missing or invalid fields", "model": ErrorResponse},
        403: {"description": "Proposer does not match on-chain record", "model": ErrorResponse},
        409: {"description": "Metadata already saved for market_id", "model": ErrorResponse},
        500: {"description": "Storage or chain read failure", "model": ErrorResponse},
    },
)
async def markets_create(body: MarketMetadataCreate):
    """Save off-chain metadata for a market, verifying the proposer on-chain when enabled."""
    description = (body.description or "").strip()
    image_url = (body.image_url or "").strip()
    proposer = (body.proposer_address or "").strip()
    tag = (body.tag or "").strip()
    market_id = _parse_market_id(body.market_id) if body.market_id not in (None, "") else None
    if market_id is None or not description or not image_url or not proposer or not tag:
        log.warning("metadata_validation_failed", market_id=body.market_id)
        return _error_json(
            "missing_fields",
            "market_id, description, image_url, proposer_address, and tag are required",
            400,
        )
    if tag not in {t.value for t in MarketTag}:
        return _error_json("invalid_tag", f"Unknown tag: {tag}", 400)

    lookup = _get_proposer_lookup()
    if lookup is not None:
        try:
            onchain_proposer = await lookup(market_id)
        except UpstreamReadError as e:
            log.error("proposer_read_failed", market_id=market_id, error=str(e))
            return _error_json("chain_error", "Failed to verify proposer on-chain", 500)
        if not onchain_proposer:
            log.error("proposer_missing", market_id=market_id)
            return _error_json("chain_error", "Failed to verify proposer on-chain", 500)
        if onchain_proposer.lower() != proposer.lower():
            log.warning("proposer_mismatch", market_id=market_id, onchain=onchain_proposer, claimed=proposer)
            return _error_json("proposer_mismatch", "Proposer address verification failed", 403)

    try:
        conn = _get_conn()
    except duckdb.Error as e:
        log.error("db_connect_failed", error=str(e))
        return _error_json("database_error", "Failed to save market data", 500)
    try:
        if get_metadata(conn, market_id) is not None:
            return _error_json("already_exists", f"Metadata already saved for market {market_id}", 409)
        row = insert_metadata(conn, market_id, description, image_url, proposer, tag)
    except duckdb.ConstraintException:
        return _error_json("already_exists", f"Metadata already saved for market {market_id}", 409)
    except duckdb.Error as e:
        log.error("metadata_insert_failed", market_id=market_id, error=str(e))
        return _error_json("database_error", "Failed to save market data", 500)
    finally:
        conn.close()
    log.info("metadata_saved", market_id=market_id, tag=tag)
    return MarketMetadataResponse(**row)


@app.get("/images/{name}", responses={404: {"model": ErrorResponse}})
def image_get(name: str):
    """Serve an uploaded market image."""
    images_dir = Path(get_settings(_config_profile).images_dir).resolve()
    path = (images_dir / name).resolve()
    if path.parent != images_dir or not path.is_file():
        return _error_json("not_found", "Image not found")
    return FileResponse(path)


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    profile: str | None = None,
) -> None:
    global _config_profile
    _config_profile = profile
    import uvicorn

    uvicorn.run("predmarket.api.main:app", host=host, port=port, reload=False)
