"""Request and response schemas for the manager API."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from common.schemas import TriggerStatus


class TranslateRequest(BaseModel):
    """Request to translate a translation set. Fields are checked by the handler."""

    set_id: Optional[int] = Field(None, description="Translation set id")
    target_language: Optional[str] = Field(None, description="Target locale, e.g. 'de_DE'")

    class Config:
        json_schema_extra = {"example": {"set_id": 12, "target_language": "de_DE"}}


class TriggerResponse(BaseModel):
    """Outcome of a translate request."""

    status: TriggerStatus
    message: str
    job_id: Optional[UUID] = None


class RunningStatusResponse(BaseModel):
    running: bool
    job_id: Optional[str] = None


class TokenResponse(BaseModel):
    action: str
    token: str


class SettingsUpdate(BaseModel):
    open_ai_key: Optional[str] = None
    open_ai_model: Optional[str] = None


class ClearLogsResponse(BaseModel):
    deleted: int


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "1.0.0"
    redis: bool = False
    rabbitmq: bool = False
