"""Job that stamps lapsed point grants as expired."""

# meta: job: wallet-expiry

from __future__ import annotations

import datetime as dt
from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from corre_wallet.core.settings import settings
from corre_wallet.observability.wallet import get_wallet_store
from corre_wallet.services.wallet import WalletService

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def run_wallet_expiry_sweep(
    *,
    session_factory: SessionFactory,
    reference_time: dt.datetime | None = None,
    batch_size: int | None = None,
) -> Dict[str, Any]:
    """Mark grants past their expiry with unused points and report what was forfeited."""

    maybe_session = session_factory()
    session: AsyncSession
    if isinstance(maybe_session, AsyncSession):
        session = maybe_session
    else:
        session = await maybe_session

    async with session as managed_session:
        service = WalletService(managed_session)
        now = reference_time or dt.datetime.now(dt.timezone.utc)
        expired = await service.expire_lapsed_grants(
            reference_time=now,
            limit=batch_size or settings.expiry_sweep_batch_size,
        )
        await managed_session.commit()

        forfeited_by_owner: Dict[str, int] = {}
        for grant in expired:
            owner_key = str(grant.owner_id)
            forfeited_by_owner[owner_key] = forfeited_by_owner.get(owner_key, 0) + int(grant.remaining)

        summary = {
            "grants_expired": len(expired),
            "points_forfeited": sum(forfeited_by_owner.values()),
            "owners_affected": len(forfeited_by_owner),
        }
        get_wallet_store().record_expiry_sweep(summary["grants_expired"], summary["points_forfeited"])
        logger.bind(summary=summary).info("Wallet expiry sweep completed")
        return summary


__all__ = ["run_wallet_expiry_sweep"]
