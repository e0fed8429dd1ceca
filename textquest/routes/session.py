"""Turn-taking, undo and transcript endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from textquest.engine import SessionEngine

from .deps import get_engine
from .models import ActionBody

router = APIRouter()


def session_view(engine: SessionEngine) -> dict[str, Any]:
    return {
        "state": engine.state.value,
        "display_log": [e.model_dump(mode="json") for e in engine.display_log],
        "current_actions": engine.current_actions,
        "action_history": engine.action_history,
        "tracked": {
            "locations": engine.recent("locations"),
            "npcs": engine.recent("npcs"),
            "items": engine.recent("items"),
        },
        "can_undo": engine.can_undo,
        "last_error": str(engine.last_error) if engine.last_error else None,
    }


@router.get("/session")
async def get_session(engine: SessionEngine = Depends(get_engine)):
    """Current session state."""
    return session_view(engine)


@router.post("/session/new")
async def new_game(engine: SessionEngine = Depends(get_engine)):
    """Start a new game and wait for the opening scene."""
    if not await engine.start_new_game():
        raise HTTPException(409, "A turn is already in progress")
    return session_view(engine)


@router.post("/session/action")
async def perform_action(body: ActionBody, engine: SessionEngine = Depends(get_engine)):
    """Play one action and wait for the model's reply."""
    if not body.action.strip():
        raise HTTPException(400, "Action must not be empty")
    if not await engine.perform_action(body.action):
        raise HTTPException(409, "A turn is already in progress")
    return session_view(engine)


@router.post("/session/undo")
async def undo(engine: SessionEngine = Depends(get_engine)):
    """Rewind the last action."""
    if not engine.undo_last_action():
        raise HTTPException(409, "Nothing to undo")
    return session_view(engine)


@router.post("/session/cancel")
async def cancel(engine: SessionEngine = Depends(get_engine)):
    """Abandon the turn in flight."""
    if not engine.cancel_turn():
        raise HTTPException(409, "No turn in progress")
    return session_view(engine)


@router.get("/transcript", response_class=PlainTextResponse)
async def transcript(engine: SessionEngine = Depends(get_engine)):
    """Plain-text transcript of the display log."""
    return engine.export_transcript()
