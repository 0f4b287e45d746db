"""
SessionSupervisor: owner of the single game-world session

State machine:
    IDLE -> CONNECTING -> CONNECTED -> DISCONNECTED -> CONNECTING ...
    CONNECTING -> DISCONNECTED (connect failed)
    any -> IDLE on leave

All methods here run inside IntentGate's worker, one at a time. Anything that
happens "later" (connect completion, game events, side-channel text, the
reconnect timer) is posted back to the gate as a message instead of touching
state from a callback.

Every connection attempt gets an id. Events, side-channel text and connect
results carry the id of the attempt that produced them; once that attempt is
over (leave, termination, a newer attempt) they are ignored.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional, Set, Tuple

import config
from auth_detector import AuthChallengeDetector
from errors import NotConnectedError
from game_client import (
    ConnectOptions,
    EventKind,
    GameClientError,
    GameEvent,
    GameSessionClient,
    GameSessionHandle,
)
from logger import setup_logger
from session_state import ACTIVE_PHASES, SessionPhase, SessionState

if TYPE_CHECKING:
    from status_projector import StatusProjector, StatusSnapshot


logger = setup_logger(__name__, config.LOG_FILE, config.LOG_LEVEL)


# ---------------------------
# Messages posted back to the gate
# ---------------------------
@dataclass(frozen=True)
class ConnectFinished:
    attempt_id: int
    handle: Any = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class SessionEventReceived:
    attempt_id: int
    event: GameEvent


@dataclass(frozen=True)
class SideChannelText:
    attempt_id: int
    text: str


@dataclass(frozen=True)
class ReconnectDue:
    token: int


@dataclass(frozen=True)
class PositionRefresh:
    pass


@dataclass(frozen=True)
class PublishStatus:
    force: bool = False


@dataclass(frozen=True)
class ConnectUnwound:
    pass


class SessionSupervisor:
    def __init__(
        self,
        client: GameSessionClient,
        projector: "StatusProjector",
        detector: Optional[AuthChallengeDetector] = None,
        options: Optional[ConnectOptions] = None,
        max_reconnect_attempts: Optional[int] = None,
        reconnect_delay: Optional[float] = None,
    ) -> None:
        self.client = client
        self.projector = projector
        self.detector = detector or AuthChallengeDetector()
        self.options = options or ConnectOptions.from_config()

        if max_reconnect_attempts is None:
            max_reconnect_attempts = int(getattr(config, "MAX_RECONNECT_ATTEMPTS", 10))
        if reconnect_delay is None:
            reconnect_delay = float(getattr(config, "RECONNECT_DELAY_SECONDS", 15.0))
        self.reconnect_delay = float(reconnect_delay)
        self.state = SessionState(max_reconnect_attempts=int(max_reconnect_attempts))

        self._dispatch: Optional[Callable[[object], None]] = None
        self._handle: Optional[GameSessionHandle] = None
        self._attempt_id = 0
        self._connect_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_token = 0
        self._position_dirty = False
        self._quit_tasks: Set[asyncio.Task] = set()
        self.connect_cancel_timeout = float(
            getattr(config, "GAME_WORKER_CONNECT_CANCEL_TIMEOUT_SECONDS", 5.0)
        )

    # ---------------------------
    # Wiring / observation
    # ---------------------------
    def attach(self, dispatch: Callable[[object], None]) -> None:
        """Route deferred work through `dispatch` (IntentGate.post_event)."""
        self._dispatch = dispatch

    def _post(self, message: object) -> None:
        if self._dispatch is None:
            logger.warning(f"[SESSION] No dispatcher attached, dropping {type(message).__name__}")
            return
        self._dispatch(message)

    @property
    def connect_in_flight(self) -> bool:
        return self._connect_task is not None and not self._connect_task.done()

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def snapshot(self) -> "StatusSnapshot":
        return self.projector.project(self.state, self.detector.current)

    async def _publish(self) -> None:
        await self.projector.publish(self.snapshot())

    # ---------------------------
    # Operator intents
    # ---------------------------
    async def request_join(self, operator: Optional[str] = None) -> bool:
        """Returns False when a session is already connecting or connected."""
        if self.state.active:
            logger.info(f"[SESSION] Join ignored, already {self.state.phase.value}")
            return False

        self.state.should_join = True
        self.state.reconnect_attempts = 0
        self.state.operator = operator
        # Joining now supersedes any scheduled retry.
        self._cancel_reconnect()
        await self.begin_connect()
        return True

    async def request_leave(self) -> None:
        self.state.should_join = False
        self.state.reconnect_attempts = 0
        self.state.operator = None
        self._cancel_reconnect()

        # Orphan whatever attempt is in flight; its late results get dropped.
        self._attempt_id += 1
        await self._abandon_connect()

        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                await handle.quit()
            except Exception as e:
                logger.error(f"[SESSION] Error while quitting session: {e}")

        self.detector.clear()
        self.state.phase = SessionPhase.IDLE
        self.state.username = None
        self.state.reset_location()
        self._position_dirty = False
        logger.info("[SESSION] Left the Minecraft server")
        await self._publish()

    async def send_chat(self, text: str) -> None:
        if self.state.phase != SessionPhase.CONNECTED or self._handle is None:
            raise NotConnectedError()
        try:
            await self._handle.chat(text)
        except GameClientError as e:
            logger.warning(f"[SESSION] Chat failed, worker is gone: {e}")
            raise NotConnectedError() from e
        logger.info(f"[SESSION] Message sent to Minecraft: {text}")

    # ---------------------------
    # Transitions
    # ---------------------------
    async def begin_connect(self) -> bool:
        if self.state.phase == SessionPhase.CONNECTING:
            logger.info("[SESSION] Connection already in progress, skipping")
            return False
        if self.state.phase == SessionPhase.CONNECTED:
            logger.info("[SESSION] Already connected, skipping")
            return False
        if self.connect_in_flight:
            # An abandoned connect() that would not cancel; ConnectUnwound resumes the join.
            logger.warning("[SESSION] Previous connect still unwinding, deferring new attempt")
            return False

        self._attempt_id += 1
        attempt_id = self._attempt_id
        self.state.phase = SessionPhase.CONNECTING
        logger.info(f"[SESSION] Connecting to {self.options.server_label} (attempt id {attempt_id})")
        await self._publish()

        self._connect_task = asyncio.create_task(self._run_connect(attempt_id))
        return True

    async def _run_connect(self, attempt_id: int) -> None:
        def on_event(event: GameEvent) -> None:
            self._post(SessionEventReceived(attempt_id, event))

        def on_side_channel(text: str) -> None:
            self._post(SideChannelText(attempt_id, text))

        try:
            handle = await self.client.connect(self.options, on_event, on_side_channel)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._post(ConnectFinished(attempt_id, error=e))
            return
        self._post(ConnectFinished(attempt_id, handle=handle))

    async def on_connected(self, username: Optional[str] = None) -> None:
        if self.state.phase != SessionPhase.CONNECTING:
            logger.debug(f"[SESSION] Ignoring login in phase {self.state.phase.value}")
            return

        self.state.phase = SessionPhase.CONNECTED
        self.state.reconnect_attempts = 0
        if username:
            self.state.username = username
        self.detector.clear()
        self._position_dirty = False
        logger.info(f"[SESSION] Connected to Minecraft as {self.state.username or 'Unknown'}")
        await self._publish()

    async def on_world_event(
        self,
        world_label: Optional[str],
        position: Optional[Tuple[float, float, float]],
    ) -> None:
        """World changes publish right away; movement waits for refresh_position()."""
        if self.state.phase != SessionPhase.CONNECTED:
            return

        if position is not None and tuple(position) != self.state.position:
            self.state.position = tuple(float(v) for v in position)
            self._position_dirty = True

        if world_label and world_label != self.state.world_label:
            self.state.world_label = world_label
            logger.info(f"[SESSION] World is now {world_label}")
            self._position_dirty = False
            await self._publish()

    async def on_terminated(self, cause: str) -> None:
        if self.state.phase not in ACTIVE_PHASES:
            logger.debug(f"[SESSION] Ignoring termination in phase {self.state.phase.value}: {cause}")
            return

        logger.warning(f"[SESSION] Minecraft connection ended: {cause}")
        await self._abandon_connect()
        handle, self._handle = self._handle, None
        if handle is not None:
            self._quit_in_background(handle)

        self.state.phase = SessionPhase.DISCONNECTED
        self.state.username = None
        self.state.reset_location()
        self._position_dirty = False
        await self._publish()

        if self.state.should_join:
            await self._schedule_reconnect()

    async def refresh_position(self) -> None:
        if self.state.phase == SessionPhase.CONNECTED and self._position_dirty:
            self._position_dirty = False
            await self._publish()

    # ---------------------------
    # Reconnect policy
    # ---------------------------
    async def _schedule_reconnect(self) -> None:
        if self.state.budget_exhausted:
            logger.warning(
                f"[RECONNECT] Max reconnection attempts reached ({self.state.max_reconnect_attempts})"
            )
            self.state.should_join = False
            self.detector.clear()
            await self._publish()
            return

        self.state.reconnect_attempts += 1
        attempt = self.state.reconnect_attempts
        delay = self.reconnect_delay * attempt
        logger.info(
            f"[RECONNECT] Attempt {attempt}/{self.state.max_reconnect_attempts} in {delay:.1f}s"
        )
        await self._publish()

        self._cancel_reconnect()
        token = self._reconnect_token
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay, token))

    async def _reconnect_after(self, delay: float, token: int) -> None:
        await asyncio.sleep(delay)
        self._post(ReconnectDue(token))

    def _cancel_reconnect(self) -> None:
        # Bumping the token also voids a ReconnectDue already sitting in the queue.
        self._reconnect_token += 1
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

    async def _on_reconnect_due(self, message: ReconnectDue) -> None:
        if message.token != self._reconnect_token:
            logger.debug("[RECONNECT] Stale reconnect timer ignored")
            return
        self._reconnect_task = None

        if not self.state.should_join:
            logger.info("[RECONNECT] Reconnection cancelled - no longer joining")
            return
        if self.state.active:
            logger.info("[RECONNECT] Session already active, skipping")
            return
        await self.begin_connect()

    # ---------------------------
    # Deferred message dispatch
    # ---------------------------
    async def handle(self, message: object) -> None:
        if isinstance(message, SessionEventReceived):
            await self._on_session_event(message)
        elif isinstance(message, SideChannelText):
            await self._on_side_channel(message)
        elif isinstance(message, ConnectFinished):
            await self._on_connect_finished(message)
        elif isinstance(message, ReconnectDue):
            await self._on_reconnect_due(message)
        elif isinstance(message, PositionRefresh):
            await self.refresh_position()
        elif isinstance(message, PublishStatus):
            await self.projector.publish(self.snapshot(), force=message.force)
        elif isinstance(message, ConnectUnwound):
            await self._resume_join()
        else:
            logger.warning(f"[SESSION] Unknown message {message!r}")

    async def _on_connect_finished(self, message: ConnectFinished) -> None:
        if message.attempt_id != self._attempt_id or self.state.phase not in ACTIVE_PHASES:
            if message.handle is not None:
                logger.info("[SESSION] Connect finished for an abandoned attempt, quitting it")
                self._quit_in_background(message.handle)
            return

        self._connect_task = None
        if message.error is not None:
            logger.error(f"[SESSION] Failed to connect to Minecraft: {message.error}")
            await self.on_terminated(f"connect failed: {message.error}")
            return
        self._handle = message.handle

    async def _on_session_event(self, message: SessionEventReceived) -> None:
        if message.attempt_id != self._attempt_id:
            logger.debug(f"[SESSION] Stale {message.event.kind.value} event ignored")
            return

        event = message.event
        if event.kind == EventKind.LOGIN:
            await self.on_connected(event.username)
        elif event.kind in (EventKind.SPAWN, EventKind.RESPAWN):
            await self.on_world_event(event.world, event.position)
        elif event.kind == EventKind.MOVE:
            await self.on_world_event(None, event.position)
        elif event.terminal:
            cause = f"{event.kind.value}: {event.reason}" if event.reason else event.kind.value
            await self.on_terminated(cause)
        elif event.kind == EventKind.AUTH_PENDING:
            challenge = self.detector.report(event.url, event.code, self.state.operator)
            if challenge is not None:
                logger.info(f"[AUTH] Microsoft auth pending, code {challenge.user_code}")
                await self._publish()
        elif event.kind == EventKind.MESSAGE:
            logger.debug(f"[SESSION] Chat: {event.text}")

    async def _on_side_channel(self, message: SideChannelText) -> None:
        if message.attempt_id != self._attempt_id or self.state.phase != SessionPhase.CONNECTING:
            return
        challenge = self.detector.observe(message.text, self.state.operator)
        if challenge is not None:
            logger.info(f"[AUTH] Found auth code {challenge.user_code}")
            await self._publish()

    # ---------------------------
    # Cleanup
    # ---------------------------
    async def _abandon_connect(self) -> None:
        """Cancel the running connect() and wait for it, so it never overlaps the next one."""
        task, self._connect_task = self._connect_task, None
        if task is None or task.done():
            return

        task.cancel()
        done, _ = await asyncio.wait({task}, timeout=self.connect_cancel_timeout)
        if not done:
            logger.warning(
                f"[SESSION] connect() ignored cancellation for {self.connect_cancel_timeout:.1f}s, "
                "holding new attempts until it returns"
            )
            self._connect_task = task
            task.add_done_callback(lambda _: self._post(ConnectUnwound()))

    async def _resume_join(self) -> None:
        if self._connect_task is not None and self._connect_task.done():
            self._connect_task = None
        if not self.state.should_join or self.state.active or self.reconnect_pending:
            return
        logger.info("[SESSION] Abandoned connect finished, resuming join")
        await self.begin_connect()

    def _quit_in_background(self, handle: GameSessionHandle) -> None:
        task = asyncio.create_task(self._quit_quietly(handle))
        self._quit_tasks.add(task)
        task.add_done_callback(self._quit_tasks.discard)

    async def _quit_quietly(self, handle: GameSessionHandle) -> None:
        try:
            await handle.quit()
        except Exception as e:
            logger.error(f"[SESSION] Error while quitting session: {e}")

    async def shutdown(self) -> None:
        if self.state.should_join or self._handle is not None or self.state.active:
            await self.request_leave()
        self._cancel_reconnect()
        if self._quit_tasks:
            await asyncio.gather(*list(self._quit_tasks), return_exceptions=True)
