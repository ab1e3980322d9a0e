from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusResponse(_CamelModel):
    db_connected: bool
    server_time: str = Field(..., description="ISO 8601 timestamp")
    port: int = Field(..., description="Configured PORT")
    node_env: str
    listening_port: int | None = Field(None, description="Port the listener is actually bound to")
    generation: int = Field(0, description="Number of successful reloads")


class ReloadResponse(_CamelModel):
    success: bool
    message: str
    port: int
    node_env: str
    db_connected: bool
    database_url_changed: bool = False
    server_restarting: bool = False
    generation: int


class EventResponse(BaseModel):
    ts: str
    level: str
    message: str


class ErrorResponse(BaseModel):
    message: str
    error: str | None = None
