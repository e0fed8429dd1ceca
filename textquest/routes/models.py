"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel


class ActionBody(BaseModel):
    action: str


class SaveBody(BaseModel):
    slot_id: str
    name: str | None = None


class UpdateSettings(BaseModel):
    font_size: int | None = None
    streaming_enabled: bool | None = None
    temperature: float | None = None
    detail_level: str | None = None
    tone: str | None = None
    auto_save_enabled: bool | None = None
    selected_model: str | None = None
    theme_id: str | None = None
    max_context_messages: int | None = None
