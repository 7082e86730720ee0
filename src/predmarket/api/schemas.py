"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from pydantic import BaseModel, Field


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. missing_fields, not_found")


# --- Market metadata ---
class MarketMetadataCreate(BaseModel):
    """POST body. Every field is optional here so missing fields become a 400, not a 422."""

    market_id: int | str | None = None
    description: str | None = None
    image_url: str | None = None
    proposer_address: str | None = None
    tag: str | None = None


class MarketMetadataResponse(BaseModel):
    market_id: int
    description: str
    image_url: str
    proposer_address: str
    tag: str | None = None
    created_at: str
