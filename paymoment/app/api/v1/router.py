"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from paymoment.app.api.v1.endpoints import auth, wallet, admin_ops

router = APIRouter()

# Include authentication endpoints
router.include_router(auth.router)

# Wallet: balance, history, deposits, service payments
router.include_router(wallet.router)

# Ops endpoints
router.include_router(admin_ops.router)
