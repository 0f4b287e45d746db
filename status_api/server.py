"""
Status API HTTP server (FastAPI).

Runs inside the bot process on the same event loop (see app/bot.py), so the
intent endpoints go through the same IntentGate as Discord reactions.
"""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from errors import BridgeError
from logger import setup_logger

from .protocol import (
    ActionResponse,
    ApiInfoResponse,
    ChatRequest,
    Coordinates,
    DiscordInfo,
    HealthMinecraft,
    HealthResponse,
    MinecraftStatus,
    NotFoundResponse,
    StatusResponse,
)

if TYPE_CHECKING:
    from app.controller import BridgeController


logger = setup_logger(__name__, config.LOG_FILE, config.LOG_LEVEL)

ENDPOINTS = {
    "GET /": "This endpoint",
    "GET /health": "Health check",
    "GET /status": "Detailed bot status",
    "POST /connect": "Connect to Minecraft server",
    "POST /disconnect": "Disconnect from Minecraft server",
    "POST /chat": 'Send chat message (requires {"message": "text"})',
}
AVAILABLE_PATHS = ["/", "/health", "/status", "/connect", "/disconnect", "/chat"]


def create_app(
    controller: "BridgeController",
    discord_info: Optional[Callable[[], DiscordInfo]] = None,
) -> FastAPI:
    app = FastAPI(title=config.API_NAME, version=config.API_VERSION)

    def _discord() -> DiscordInfo:
        if discord_info is None:
            return DiscordInfo()
        return discord_info()

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            body = NotFoundResponse(available_endpoints=AVAILABLE_PATHS)
            return JSONResponse(status_code=404, content=body.model_dump())
        return JSONResponse(
            status_code=exc.status_code,
            content=ActionResponse(success=False, message=str(exc.detail)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"[WEB] Web server error: {exc}")
        return JSONResponse(
            status_code=500,
            content=ActionResponse(success=False, message="Internal server error").model_dump(),
        )

    @app.get("/", response_model=ApiInfoResponse)
    async def root() -> ApiInfoResponse:
        snap = controller.snapshot()
        return ApiInfoResponse(
            name=config.API_NAME,
            version=config.API_VERSION,
            endpoints=ENDPOINTS,
            minecraft_server=controller.options.server_label,
            minecraft_version=controller.options.version,
            connected=snap.connected,
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        snap = controller.snapshot()
        return HealthResponse(
            timestamp=datetime.datetime.now(datetime.timezone.utc).isoformat(),
            minecraft=HealthMinecraft(
                connected=snap.connected,
                username=snap.username,
                world=snap.world_label,
                coordinates=Coordinates(**snap.coordinates()),
            ),
            discord=_discord(),
        )

    @app.get("/status", response_model=StatusResponse)
    async def status() -> StatusResponse:
        st = controller.get_status()
        return StatusResponse(
            minecraft=MinecraftStatus(
                connected=st["connected"],
                should_join=st["should_join"],
                username=st["username"],
                server=st["server"],
                version=st["version"],
                world=st["world"],
                coordinates=Coordinates(**st["coordinates"]),
                reconnect_attempts=st["reconnect_attempts"],
                max_reconnect_attempts=st["max_reconnect_attempts"],
                reconnect_pending=st["reconnect_pending"],
                auth_required=st["auth_required"],
                verification_url=st["verification_url"],
                user_code=st["user_code"],
                status_text=st["text"],
            ),
            discord=_discord(),
            uptime=controller.uptime_seconds,
        )

    @app.post("/connect", response_model=ActionResponse)
    async def connect() -> ActionResponse:
        try:
            started = await controller.join("http")
        except BridgeError as e:
            return ActionResponse(success=False, message=str(e))
        if not started:
            return ActionResponse(success=False, message="Bot already connected")
        logger.info("[WEB] Connection requested over HTTP")
        return ActionResponse(success=True, message="Connection initiated")

    @app.post("/disconnect", response_model=ActionResponse)
    async def disconnect() -> ActionResponse:
        try:
            await controller.leave()
        except BridgeError as e:
            return ActionResponse(success=False, message=str(e))
        logger.info("[WEB] Disconnect requested over HTTP")
        return ActionResponse(success=True, message="Bot disconnected")

    @app.post("/chat", response_model=ActionResponse)
    async def chat(body: ChatRequest) -> ActionResponse:
        message = body.message
        if not isinstance(message, str):
            return ActionResponse(success=False, message="Invalid message")
        try:
            await controller.send(message)
        except BridgeError as e:
            return ActionResponse(success=False, message=str(e))
        return ActionResponse(success=True, message="Message sent")

    return app
