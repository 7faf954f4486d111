"""API v1 router aggregator.

URL structure with /api/v1 prefix. Paths keep the names the mobile client
already calls (init-user, get-status, reserve, ...).

All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from credit_ledger.api.v1 import credits, purchases, users

router = APIRouter()

router.include_router(users.router, tags=["users"])
router.include_router(credits.router, tags=["credits"])
router.include_router(purchases.router, tags=["purchases"])
