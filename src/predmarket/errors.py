"""Error taxonomy shared by the API, chain layer, reconciler and proposal flow."""

from __future__ import annotations


class PredMarketError(Exception):
    """Base class. str(err) is the user-facing message."""


class ValidationError(PredMarketError):
    """Local input rejected before any network call."""


class UpstreamReadError(PredMarketError):
    """Metadata service or chain read failed."""


class UpstreamWriteError(PredMarketError):
    """Metadata service rejected or failed a write for a non-auth reason."""


class AuthorizationError(PredMarketError):
    """Proposer or ownership check failed. Never retried."""


class TransactionError(PredMarketError):
    """Signing, submission or confirmation of a transaction failed."""

    def __init__(self, message: str, step: str | None = None) -> None:
        super().__init__(message)
        self.step = step
