"""Error taxonomy for wallet operations.

Every failure is local to a single operation and leaves the ledger untouched;
callers decide whether to retry with another amount or surface the error.
"""

from __future__ import annotations


class WalletError(Exception):
    """Base class for wallet engine failures."""


class InvalidAmount(WalletError, ValueError):
    """Raised when a grant, debit or XP delta carries a disallowed amount."""


class InsufficientPoints(WalletError):
    """Raised when a debit exceeds the owner's active balance."""

    def __init__(self, *, requested: int, available: int) -> None:
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient points: requested {requested}, available {available}"
        )


class MalformedResponse(WalletError):
    """Raised when a backend payload cannot be decoded into a typed record."""


class CouponUnavailable(WalletError):
    """Raised when a partner coupon is inactive, expired or out of stock."""


__all__ = [
    "CouponUnavailable",
    "InsufficientPoints",
    "InvalidAmount",
    "MalformedResponse",
    "WalletError",
]
