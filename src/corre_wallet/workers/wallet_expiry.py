"""Worker wiring for the periodic wallet expiry sweep."""

from __future__ import annotations

import asyncio
import datetime as dt
from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from corre_wallet.core.settings import settings
from corre_wallet.jobs.wallet import run_wallet_expiry_sweep

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]


class WalletExpirySweepWorker:
    """Runs the expiry sweep on a fixed interval until stopped."""

    # meta: worker: wallet-expiry

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.expiry_sweep_interval_seconds
        self._batch_size = batch_size or settings.expiry_sweep_batch_size
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False
        self.last_summary: Dict[str, Any] | None = None
        self.last_error: str | None = None

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info(
            "Wallet expiry worker started",
            interval_seconds=self.interval_seconds,
            batch_size=self._batch_size,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Wallet expiry worker stopped")

    async def run_once(self, *, reference_time: dt.datetime | None = None) -> Dict[str, Any]:
        summary = await run_wallet_expiry_sweep(
            session_factory=self._session_factory,
            reference_time=reference_time,
            batch_size=self._batch_size,
        )
        self.last_summary = summary
        self.last_error = None
        return summary

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover - logged and retried next interval
                self.last_error = str(exc)
                logger.exception("Wallet expiry iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
