"""Background workers supporting async processing."""

from .wallet_expiry import WalletExpirySweepWorker

__all__ = ["WalletExpirySweepWorker"]
