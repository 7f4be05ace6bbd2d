from fastapi import APIRouter

from .endpoints import health, observability, wallet

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(observability.router)
router.include_router(wallet.router)
