"""API routes package."""

from fastapi import APIRouter

from meterbook.api.routes import billing, flats, health, ocr, readings, settings

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(flats.router)
api_router.include_router(readings.router)
api_router.include_router(billing.router)
api_router.include_router(settings.router)
api_router.include_router(ocr.router)
