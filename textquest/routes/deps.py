from fastapi import Request

from textquest.engine import SessionEngine


def get_engine(request: Request) -> SessionEngine:
    """The engine owned by this app instance."""
    return request.app.state.engine
