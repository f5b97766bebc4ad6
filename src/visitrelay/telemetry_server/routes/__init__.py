"""API routes for the visitrelay Telemetry Server."""

from fastapi import APIRouter

from visitrelay.telemetry_server.routes.events import router as events_router
from visitrelay.telemetry_server.routes.identity import router as identity_router

router = APIRouter(prefix="/telemetry")
router.include_router(identity_router)
router.include_router(events_router)
