"""Points wallet domain: grants, FIFO consumption, XP levels, redemption caps."""

from .consumption import (  # noqa: F401
    ConsumptionStep,
    apply_consumption,
    fifo_key,
    order_for_consumption,
    plan_consumption,
)
from .earning import (  # noqa: F401
    DEFAULT_TTL_DAYS,
    EVENT_POINTS,
    PointCause,
    expires_at_for,
    points_for_event,
    points_for_run,
    ttl_for,
    ttl_table_from_settings,
)
from .errors import (  # noqa: F401
    CouponUnavailable,
    InsufficientPoints,
    InvalidAmount,
    MalformedResponse,
    WalletError,
)
from .grants import (  # noqa: F401
    EXPIRING_SOON_WINDOW,
    PointGrant,
    WalletSnapshot,
    ensure_utc,
    is_active,
    summarize_grants,
)
from .ledger import WalletLedger  # noqa: F401
from .progression import LEVEL_TABLE, XPLevel, XPProgress, accumulate_xp, progress  # noqa: F401
from .redemption import MembershipTier, RedemptionPolicy, max_points_discount  # noqa: F401
