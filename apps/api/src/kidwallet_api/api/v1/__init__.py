from fastapi import APIRouter

from .endpoints import (
    health,
    observability,
    points,
    redemptions,
    usage,
    wallets,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(points.router)
router.include_router(wallets.router)
router.include_router(redemptions.router)
router.include_router(usage.router)
router.include_router(observability.router)
