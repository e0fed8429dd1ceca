"""FastAPI API endpoints under /api.

Endpoint groups: session (new game, action, undo, cancel, transcript),
saves (list, save, load, delete), settings (settings, themes, models,
achievements, health). Every endpoint works on the single engine stored
on ``app.state.engine``; overlapping turns are rejected with 409.
"""

from fastapi import APIRouter

from .saves import router as saves_router
from .session import router as session_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(session_router)
router.include_router(saves_router)
