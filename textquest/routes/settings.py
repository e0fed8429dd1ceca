"""Health check, settings, themes, models and achievements endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from textquest.engine import SessionEngine
from textquest.models import THEMES

from .deps import get_engine
from .models import UpdateSettings

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(engine: SessionEngine = Depends(get_engine)):
    """Current user settings."""
    return engine.settings.model_dump(mode="json")


@router.patch("/settings")
async def update_settings(body: UpdateSettings, engine: SessionEngine = Depends(get_engine)):
    """Update settings (partial merge). Persisted immediately."""
    try:
        updated = engine.settings_manager.update(**body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return updated.model_dump(mode="json")


@router.get("/themes")
async def list_themes():
    """Built-in color themes."""
    return [t.model_dump() for t in THEMES]


@router.get("/models")
async def list_models(engine: SessionEngine = Depends(get_engine)):
    """Models offered by the backend, plus the one selected."""
    models = await engine.refresh_models()
    return {"models": models, "selected": engine.settings.selected_model}


@router.get("/achievements")
async def list_achievements(engine: SessionEngine = Depends(get_engine)):
    """Achievement catalog with unlock state."""
    return [a.model_dump(mode="json") for a in engine.achievements]
