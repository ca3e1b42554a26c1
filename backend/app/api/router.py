"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from app.api.routes import bookings, instances, pricing, promotions

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(pricing.router)
api_router.include_router(bookings.router)
api_router.include_router(instances.router)
api_router.include_router(promotions.router)
