"""Top-level API router."""

from fastapi import APIRouter

from opsledger.api.routes.assets import router as assets_router
from opsledger.api.routes.health import router as health_router
from opsledger.api.routes.members import router as members_router
from opsledger.api.routes.subscriptions import router as subscriptions_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(assets_router)
api_router.include_router(subscriptions_router)
api_router.include_router(members_router)
