"""Recurring job entrypoints for wallet maintenance."""

__all__ = ["wallet"]
