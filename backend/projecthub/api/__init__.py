"""API router package."""

from fastapi import APIRouter

from projecthub.api.v1 import (
    activities,
    auth,
    dependencies,
    health,
    tasks,
    websocket,
)

router = APIRouter()

# Include all API routers
router.include_router(health.router, tags=["Health"])
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(dependencies.router, prefix="/dependencies", tags=["Dependencies"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(activities.router, tags=["Activities"])
router.include_router(websocket.router, tags=["WebSocket"])
