"""
API v1 routes - escrow API
"""

from fastapi import APIRouter, Response
from escrow_core.infrastructure.settings import get_settings
from escrow_core.api.v1.me import router as me_router
from escrow_core.api.v1.transactions import router as transactions_router
from escrow_core.api.v1.qr import router as qr_router
from escrow_core.api.v1.disputes import router as disputes_router
from escrow_core.api.v1.ledger import router as ledger_router
from escrow_core.api.v1.locked_funds import router as locked_funds_router
from escrow_core.api.v1.withdrawals import router as withdrawals_router
from escrow_core.api.v1.payouts import router as payouts_router
from escrow_core.api.v1.delivery_agent import router as delivery_agent_router

settings = get_settings()
router = APIRouter(prefix=settings.API_V1_PREFIX, tags=["api-v1"])


@router.options("/{path:path}")
async def options_handler(path: str):
    """Handle OPTIONS preflight requests CORSMiddleware did not intercept"""
    return Response(status_code=200)


router.include_router(me_router)
router.include_router(transactions_router)
router.include_router(qr_router)
router.include_router(disputes_router)
router.include_router(ledger_router)
router.include_router(locked_funds_router)
router.include_router(withdrawals_router)
router.include_router(payouts_router)
router.include_router(delivery_agent_router)
