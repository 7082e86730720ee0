"""Canonical schema (Pydantic) - Market, MarketMetadata, UserPosition."""

from predmarket.models.market import (
    SHARE_SCALE,
    Market,
    MarketCreated,
    MarketMetadata,
    MarketTag,
    Outcome,
    UserPosition,
)

__all__ = [
    "SHARE_SCALE",
    "Market",
    "MarketCreated",
    "MarketMetadata",
    "MarketTag",
    "Outcome",
    "UserPosition",
]
