"""Save slot endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from textquest.engine import SessionEngine

from .deps import get_engine
from .models import SaveBody
from .session import session_view

router = APIRouter()


@router.get("/saves")
async def list_saves(engine: SessionEngine = Depends(get_engine)):
    """All save slots, newest first."""
    return [s.model_dump(mode="json") for s in engine.list_save_slots()]


@router.post("/saves")
async def save_game(body: SaveBody, engine: SessionEngine = Depends(get_engine)):
    """Save the current session into a slot (overwrites a slot with the same id)."""
    if not body.slot_id.strip():
        raise HTTPException(400, "Slot id must not be empty")
    slot = engine.save_game(body.slot_id.strip(), body.name)
    return slot.model_dump(mode="json")


@router.post("/saves/{slot_id}/load")
async def load_game(slot_id: str, engine: SessionEngine = Depends(get_engine)):
    """Replace the current session with a saved one."""
    if engine.is_busy:
        raise HTTPException(409, "A turn is already in progress")
    if not engine.load_game(slot_id):
        raise HTTPException(404, "Save not found")
    return session_view(engine)


@router.delete("/saves/{slot_id}")
async def delete_save(slot_id: str, engine: SessionEngine = Depends(get_engine)):
    """Delete one save slot."""
    if not engine.delete_save_slot(slot_id):
        raise HTTPException(404, "Save not found")
    return {"ok": True}


@router.delete("/saves")
async def delete_all_saves(engine: SessionEngine = Depends(get_engine)):
    """Delete every save slot, autosave included."""
    return {"deleted": engine.delete_all_saves()}
