"""In-memory wallet ledger.

Mutations and reads for one owner are serialized through a per-owner lock, so a
reader never sees a grant mid-decrement and two concurrent debits cannot both
spend the same points. Different owners never contend.
"""

from __future__ import annotations

import dataclasses
from collections import defaultdict
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, Dict, Hashable, Iterable, List, Mapping
from uuid import UUID, uuid4

from loguru import logger

from .consumption import apply_consumption, plan_consumption
from .earning import DEFAULT_TTL_DAYS, PointCause, expires_at_for
from .errors import InvalidAmount
from .grants import EXPIRING_SOON_WINDOW, PointGrant, WalletSnapshot, ensure_utc, summarize_grants
from .progression import XPProgress, accumulate_xp, progress


class WalletLedger:
    """Owns the point grants and XP counters of many wallet holders."""

    def __init__(
        self,
        *,
        ttl_days: Mapping[PointCause, int] | None = None,
        expiring_window: timedelta = EXPIRING_SOON_WINDOW,
        id_factory: Callable[[], UUID] = uuid4,
    ) -> None:
        self._ttl_days = dict(ttl_days or DEFAULT_TTL_DAYS)
        self._expiring_window = expiring_window
        self._id_factory = id_factory
        self._grants: Dict[Hashable, List[PointGrant]] = defaultdict(list)
        self._xp: Dict[Hashable, int] = defaultdict(int)
        self._locks: Dict[Hashable, Lock] = {}
        self._registry_lock = Lock()

    def _owner_lock(self, owner_id: Hashable) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = Lock()
                self._locks[owner_id] = lock
            return lock

    def grant(
        self,
        owner_id: Hashable,
        amount: int,
        cause: PointCause | str,
        now: datetime,
        *,
        source_id: str | None = None,
        description: str | None = None,
    ) -> PointGrant:
        if amount <= 0:
            raise InvalidAmount("Grant amount must be positive")

        resolved = PointCause(cause)
        granted_at = ensure_utc(now)
        record = PointGrant(
            id=self._id_factory(),
            owner_id=owner_id,
            amount=amount,
            remaining=amount,
            cause=resolved,
            granted_at=granted_at,
            expires_at=expires_at_for(resolved, granted_at, self._ttl_days),
            source_id=source_id,
            description=description,
        )
        with self._owner_lock(owner_id):
            self._grants[owner_id].append(record)
        logger.debug(
            "Granted wallet points",
            owner_id=str(owner_id),
            amount=amount,
            cause=resolved.value,
            expires_at=record.expires_at.isoformat(),
        )
        return dataclasses.replace(record)

    def snapshot(self, owner_id: Hashable, now: datetime) -> WalletSnapshot:
        with self._owner_lock(owner_id):
            return summarize_grants(
                self._grants.get(owner_id, ()),
                now,
                expiring_window=self._expiring_window,
            )

    def history(self, owner_id: Hashable, limit: int = 50) -> list[PointGrant]:
        """Every grant, newest first. For display only."""

        with self._owner_lock(owner_id):
            grants = [dataclasses.replace(grant) for grant in self._grants.get(owner_id, ())]
        grants.sort(key=lambda grant: (grant.granted_at, str(grant.id)), reverse=True)
        return grants[: max(0, limit)]

    def consume(self, owner_id: Hashable, points: int, now: datetime) -> bool:
        """Debit ``points`` oldest-expiring first; all or nothing."""

        with self._owner_lock(owner_id):
            grants = self._grants.get(owner_id, [])
            steps = plan_consumption(grants, points, now)
            apply_consumption(grants, steps)
        if steps:
            logger.debug(
                "Consumed wallet points",
                owner_id=str(owner_id),
                points=points,
                grants_touched=len(steps),
            )
        return True

    def add_xp(self, owner_id: Hashable, delta: int) -> XPProgress:
        with self._owner_lock(owner_id):
            self._xp[owner_id] = accumulate_xp(self._xp.get(owner_id, 0), delta)
            current = self._xp[owner_id]
        return progress(current)

    def xp_progress(self, owner_id: Hashable) -> XPProgress:
        with self._owner_lock(owner_id):
            current = self._xp.get(owner_id, 0)
        return progress(current)

    def restore(self, grants: Iterable[PointGrant]) -> int:
        """Load previously persisted grants (e.g. decoded backend rows)."""

        restored = 0
        for grant in grants:
            if not 0 <= grant.remaining <= grant.amount:
                raise InvalidAmount(f"Grant {grant.id} has remaining outside [0, amount]")
            with self._owner_lock(grant.owner_id):
                self._grants[grant.owner_id].append(dataclasses.replace(grant))
            restored += 1
        return restored


__all__ = ["WalletLedger"]
