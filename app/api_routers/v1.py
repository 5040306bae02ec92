from fastapi import APIRouter

from app.features.accessibility.routes.issue_summary import router as issue_summary_router
from app.features.accessibility.routes.scans import router as scans_router
from app.features.health.routes.health import router as health_router

api_router = APIRouter()

# Register all feature routes
api_router.include_router(health_router)
api_router.include_router(scans_router)
api_router.include_router(issue_summary_router)
