import asyncio
import time
from typing import Any, Optional

import config
from logger import setup_logger

from auth_detector import AuthChallengeDetector
from game_client import ConnectOptions, GameSessionClient, WorkerProcessClient
from intent_gate import IntentGate, Join, Leave, Send
from session_supervisor import PositionRefresh, PublishStatus, SessionSupervisor
from status_projector import StatusProjector, StatusSnapshot, StatusSurface


logger = setup_logger(__name__, config.LOG_FILE, config.LOG_LEVEL)


class BridgeController:
    """
    Bridge orchestration (application layer).

    - IntentGate worker: applies operator intents and session events in order
    - refresh worker: pushes coalesced position updates to the status surface

    Discord reactions, slash commands and the HTTP API all call join / leave /
    send here; none of them touch the supervisor directly.
    """

    def __init__(
        self,
        surface: Optional[StatusSurface] = None,
        client: Optional[GameSessionClient] = None,
        options: Optional[ConnectOptions] = None,
        max_reconnect_attempts: Optional[int] = None,
        reconnect_delay: Optional[float] = None,
        refresh_seconds: Optional[float] = None,
    ):
        self.options = options or ConnectOptions.from_config()
        self.detector = AuthChallengeDetector()
        self.projector = StatusProjector(surface)
        self.supervisor = SessionSupervisor(
            client=client or WorkerProcessClient(),
            projector=self.projector,
            detector=self.detector,
            options=self.options,
            max_reconnect_attempts=max_reconnect_attempts,
            reconnect_delay=reconnect_delay,
        )
        self.gate = IntentGate(self.supervisor)

        if refresh_seconds is None:
            refresh_seconds = float(getattr(config, "STATUS_REFRESH_SECONDS", 30.0))
        self.refresh_seconds = float(refresh_seconds)
        self._refresh_task: Optional[asyncio.Task] = None
        self.started_at = time.time()

    # ---------------------------
    # Lifecycle
    # ---------------------------
    @property
    def running(self) -> bool:
        return self.gate.running

    async def start(self) -> None:
        if self.running:
            return
        self.started_at = time.time()
        await self.gate.start()
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_loop())
        # First publish creates the control post.
        self.gate.post_event(PublishStatus(force=True))

    async def stop(self) -> None:
        logger.info("Shutting down bridge...")
        if self._refresh_task:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

        if self.running:
            state = self.supervisor.state
            if state.should_join or state.active:
                try:
                    await self.gate.submit(Leave())
                except Exception as e:
                    logger.error(f"Failed to leave during shutdown: {e}")
            await self.gate.stop()

        await self.supervisor.shutdown()

    async def _refresh_loop(self) -> None:
        logger.info(f"Status refresh loop started (interval={self.refresh_seconds:.1f}s)")
        while True:
            await asyncio.sleep(self.refresh_seconds)
            if self.gate.running:
                self.gate.post_event(PositionRefresh())

    # ---------------------------
    # Operator intents
    # ---------------------------
    async def join(self, operator: Optional[str] = None) -> bool:
        return await self.gate.submit(Join(operator))

    async def leave(self) -> None:
        await self.gate.submit(Leave())

    async def send(self, text: str) -> None:
        await self.gate.submit(Send(text))

    # ---------------------------
    # Read-only views
    # ---------------------------
    def snapshot(self) -> StatusSnapshot:
        return self.supervisor.snapshot()

    @property
    def control_post(self) -> Any:
        return self.projector.control_post

    @property
    def uptime_seconds(self) -> float:
        return max(0.0, time.time() - self.started_at)

    def get_status(self) -> dict:
        snap = self.snapshot()
        status = snap.to_dict()
        status.update(
            {
                "server": self.options.server_label,
                "version": self.options.version,
                "reconnect_pending": self.supervisor.reconnect_pending,
            }
        )
        return status
