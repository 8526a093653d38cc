"""FastAPI API endpoints under /api.

Endpoint groups: health + settings + connection check, and the per-session
decision pipeline (detect, generate, abort, record, history, narrative
extraction, combat state) nested under /api/sessions/{slug}/.
"""

from fastapi import APIRouter

from .decisions import router as decisions_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(decisions_router)
