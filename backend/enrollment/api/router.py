"""
Central API router that aggregates all route modules.
Paths are served at the root so the processor webhook and the public
booking form keep their published URLs.
"""

from fastapi import APIRouter
from enrollment.api.routes import slots, holds, checkout, webhooks, admin, tuition

api_router = APIRouter()
api_router.include_router(slots.router)
api_router.include_router(holds.router)
api_router.include_router(checkout.router)
api_router.include_router(webhooks.router)
api_router.include_router(admin.router)
api_router.include_router(tuition.router)
