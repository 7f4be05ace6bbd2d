"""Wallet service exports."""

from .wallet_service import (  # noqa: F401
    MAX_HISTORY_LIMIT,
    MAX_LOG_LIMIT,
    ActivityAward,
    CheckoutQuote,
    WalletService,
)
