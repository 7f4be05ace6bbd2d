"""Wallet job exports."""

from .expiry import run_wallet_expiry_sweep  # noqa: F401

__all__ = ["run_wallet_expiry_sweep"]
