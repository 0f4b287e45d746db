"""
Status API protocol (Pydantic models).

Read-only views of the bridge plus the three operator intents.
"""

from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class Coordinates(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class DiscordInfo(BaseModel):
    connected: bool = False
    username: Optional[str] = None
    guilds: int = 0


class ApiInfoResponse(BaseModel):
    name: str
    version: str
    endpoints: Dict[str, str] = Field(default_factory=dict)
    minecraft_server: str
    minecraft_version: str
    connected: bool


class HealthMinecraft(BaseModel):
    connected: bool
    username: Optional[str] = None
    world: str
    coordinates: Coordinates


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str
    minecraft: HealthMinecraft
    discord: DiscordInfo


class MinecraftStatus(BaseModel):
    connected: bool
    should_join: bool
    username: Optional[str] = None
    server: str
    version: str
    world: str
    coordinates: Coordinates
    reconnect_attempts: int
    max_reconnect_attempts: int
    reconnect_pending: bool = False
    auth_required: bool = False
    verification_url: Optional[str] = None
    user_code: Optional[str] = None
    status_text: str


class StatusResponse(BaseModel):
    minecraft: MinecraftStatus
    discord: DiscordInfo
    uptime: float = Field(..., description="Seconds since the bridge started")


class ChatRequest(BaseModel):
    # Type checks happen in the gate so the error matches the Discord path.
    message: Any = None


class ActionResponse(BaseModel):
    success: bool
    message: str


class NotFoundResponse(BaseModel):
    success: bool = False
    message: str = "Endpoint not found"
    available_endpoints: List[str] = Field(default_factory=list)
