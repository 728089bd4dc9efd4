"""API routes."""

from fastapi import APIRouter

from florist_ledger.api.routes import branches, orders, stats, stock, transfers

api_router = APIRouter()

api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(stock.router, prefix="/stock", tags=["stock"])
api_router.include_router(transfers.router, prefix="/transfers", tags=["transfers"])
api_router.include_router(stats.router, prefix="/stats", tags=["stats"])
api_router.include_router(branches.router, prefix="/branches", tags=["branches"])
