"""httpx client for the /api/markets metadata service (the remote metadata source)."""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from predmarket.errors import AuthorizationError, UpstreamReadError, UpstreamWriteError, ValidationError
from predmarket.models import MarketMetadata

log = structlog.get_logger(__name__)


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


class MetadataClient:
    """Async client. Use as an async context manager or call aclose()."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    async def __aenter__(self) -> MetadataClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_metadata(self, market_id: int) -> MarketMetadata | None:
        """Metadata for one market; None when the service has no record."""
        try:
            resp = await self._client.get("/api/markets", params={"market_id": market_id})
        except httpx.HTTPError as e:
            log.warning("metadata_fetch_failed", market_id=market_id, error=str(e))
            raise UpstreamReadError(f"Metadata request failed: {e}") from e
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            log.warning("metadata_fetch_failed", market_id=market_id, status=resp.status_code)
            raise UpstreamReadError(f"Metadata service error: {_error_detail(resp)}")
        try:
            data = resp.json()
            return MarketMetadata(**data) if data else None
        except (ValueError, TypeError, PydanticValidationError) as e:
            log.warning("metadata_malformed", market_id=market_id, error=str(e))
            raise UpstreamReadError(f"Malformed metadata for market {market_id}") from e

    async def list_metadata(self, tag: str | None = None) -> list[MarketMetadata]:
        params = {"tag": tag} if tag else None
        try:
            resp = await self._client.get("/api/markets", params=params)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            log.warning("metadata_list_failed", tag=tag, error=str(e))
            raise UpstreamReadError(f"Metadata list failed: {e}") from e
        try:
            return [MarketMetadata(**row) for row in resp.json()]
        except (ValueError, TypeError, PydanticValidationError) as e:
            log.warning("metadata_list_malformed", tag=tag, error=str(e))
            raise UpstreamReadError("Malformed metadata list") from e

    async def save_metadata(
        self,
        market_id: int,
        description: str,
        image_url: str,
        proposer_address: str,
        tag: str,
    ) -> MarketMetadata:
        body = {
            "market_id": market_id,
            "description": description,
            "image_url": image_url,
            "proposer_address": proposer_address,
            "tag": tag,
        }
        try:
            resp = await self._client.post("/api/markets", json=body)
        except httpx.HTTPError as e:
            log.error("metadata_save_failed", market_id=market_id, error=str(e))
            raise UpstreamWriteError(f"Failed to save market details: {e}") from e
        if resp.status_code == 400:
            raise ValidationError(_error_detail(resp))
        if resp.status_code == 403:
            raise AuthorizationError(_error_detail(resp))
        if resp.status_code != 200:
            log.error("metadata_save_failed", market_id=market_id, status=resp.status_code)
            raise UpstreamWriteError(_error_detail(resp))
        return MarketMetadata(**resp.json())
