"""
API router: aggregates all route modules.
"""
from fastapi import APIRouter
from listing_ingest.api.health import router as health_router
from listing_ingest.api.previews import router as previews_router
from listing_ingest.api.queue import router as queue_router

api_router = APIRouter()
api_router.include_router(queue_router)
api_router.include_router(previews_router)
api_router.include_router(health_router)
