"""
Game session client (Minecraft side).

The bridge core only needs connect / quit / chat and a stream of lifecycle
events, so the protocol client is hidden behind two small Protocols.

WorkerProcessClient runs the actual protocol client as a separate process:
- stdout: one JSON object per line, {"event": "<kind>", ...}
- stdin:  {"op": "chat", "text": "..."} / {"op": "quit"}
- stderr and non-JSON stdout: raw diagnostic text (the side channel)

Running it isolated keeps packet handling off the Discord event loop.
"""
from __future__ import annotations

import asyncio
import json
import os
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import config
from logger import setup_logger


logger = setup_logger(__name__, config.LOG_FILE, config.LOG_LEVEL)


class GameClientError(RuntimeError):
    pass


class EventKind(str, Enum):
    LOGIN = "login"
    SPAWN = "spawn"
    MOVE = "move"
    RESPAWN = "respawn"
    END = "end"
    ERROR = "error"
    KICKED = "kicked"
    AUTH_PENDING = "auth_pending"
    MESSAGE = "message"


TERMINAL_EVENTS = frozenset({EventKind.END, EventKind.ERROR, EventKind.KICKED})


@dataclass(frozen=True)
class GameEvent:
    kind: EventKind
    username: Optional[str] = None
    world: Optional[str] = None
    position: Optional[Tuple[float, float, float]] = None
    reason: Optional[str] = None
    url: Optional[str] = None
    code: Optional[str] = None
    text: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.kind in TERMINAL_EVENTS


@dataclass(frozen=True)
class ConnectOptions:
    host: str
    port: int
    version: str
    auth: str
    username: str = ""

    @classmethod
    def from_config(cls) -> "ConnectOptions":
        return cls(
            host=config.MC_HOST,
            port=int(config.MC_PORT),
            version=config.MC_VERSION,
            auth=config.MC_AUTH,
            username=getattr(config, "MC_USERNAME", ""),
        )

    @property
    def server_label(self) -> str:
        return f"{self.host}:{self.port}"


EventCallback = Callable[[GameEvent], None]
TextCallback = Callable[[str], None]


class GameSessionHandle(Protocol):
    async def quit(self) -> None:
        ...

    async def chat(self, text: str) -> None:
        ...


class GameSessionClient(Protocol):
    """
    connect() returns as soon as a session exists; login/termination arrive
    later through on_event. It raises GameClientError when no session could
    be started at all.
    """

    async def connect(
        self,
        options: ConnectOptions,
        on_event: EventCallback,
        on_side_channel: TextCallback,
    ) -> GameSessionHandle:
        ...


def _parse_position(raw) -> Optional[Tuple[float, float, float]]:
    if isinstance(raw, dict):
        raw = [raw.get("x"), raw.get("y"), raw.get("z")]
    if not isinstance(raw, (list, tuple)) or len(raw) != 3:
        return None
    try:
        x, y, z = (float(v) for v in raw)
    except (TypeError, ValueError):
        return None
    return (x, y, z)


def parse_worker_line(line: str) -> Optional[GameEvent]:
    """
    Parse one worker stdout line. Returns None if the line is not a known
    event (the caller then treats it as side-channel text).
    """
    line = (line or "").strip()
    if not line.startswith("{"):
        return None
    try:
        data = json.loads(line)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    try:
        kind = EventKind(str(data.get("event") or "").strip().lower())
    except ValueError:
        return None

    def _opt_str(key: str) -> Optional[str]:
        v = data.get(key)
        return None if v is None else str(v)

    return GameEvent(
        kind=kind,
        username=_opt_str("username"),
        world=_opt_str("world") or _opt_str("dimension"),
        position=_parse_position(data.get("position")),
        reason=_opt_str("reason") or _opt_str("error"),
        url=_opt_str("verification_uri") or _opt_str("url"),
        code=_opt_str("user_code") or _opt_str("code"),
        text=_opt_str("text"),
    )


class WorkerSessionHandle:
    """
    One running worker process. Emits at most one terminal event, even when
    the worker reports an error and then exits.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        on_event: EventCallback,
        on_side_channel: TextCallback,
        quit_timeout: float = 5.0,
        read_chunk_bytes: int = 4096,
        suppress_patterns: Sequence[str] = (),
    ) -> None:
        self.process = process
        self._on_event = on_event
        self._on_side_channel = on_side_channel
        self.quit_timeout = float(quit_timeout)
        self.read_chunk_bytes = int(read_chunk_bytes)
        self.suppress_patterns = list(suppress_patterns)

        self._ended = False
        self._quitting = False
        self._tasks: List[asyncio.Task] = []

    @property
    def alive(self) -> bool:
        return self.process.returncode is None

    def start(self) -> None:
        self._tasks = [
            asyncio.create_task(self._stdout_loop()),
            asyncio.create_task(self._stderr_loop()),
        ]

    def _emit(self, event: GameEvent) -> None:
        if self._ended:
            return
        if event.terminal:
            self._ended = True
        self._on_event(event)

    def _side_channel(self, text: str) -> None:
        if not text:
            return
        if any(p in text for p in self.suppress_patterns):
            return
        logger.debug(f"[WORKER] {text.rstrip()}")
        self._on_side_channel(text)

    async def _stdout_loop(self) -> None:
        assert self.process.stdout is not None
        while True:
            raw = await self.process.stdout.readline()
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace")
            event = parse_worker_line(line)
            if event is None:
                self._side_channel(line)
                continue
            self._emit(event)

        rc = await self.process.wait()
        reason = "quit" if self._quitting else f"worker exited with code {rc}"
        self._emit(GameEvent(kind=EventKind.END, reason=reason))

    async def _stderr_loop(self) -> None:
        assert self.process.stderr is not None
        while True:
            chunk = await self.process.stderr.read(self.read_chunk_bytes)
            if not chunk:
                break
            self._side_channel(chunk.decode("utf-8", errors="replace"))

    async def _write(self, payload: dict) -> None:
        if not self.alive or self.process.stdin is None:
            raise GameClientError("Game worker is not running")
        try:
            self.process.stdin.write((json.dumps(payload) + "\n").encode("utf-8"))
            await self.process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise GameClientError(f"Game worker pipe closed: {e}") from e

    async def chat(self, text: str) -> None:
        await self._write({"op": "chat", "text": text})

    async def quit(self) -> None:
        """Ask the worker to leave, then terminate / kill if it lingers."""
        self._quitting = True
        if self.alive:
            try:
                await self._write({"op": "quit"})
            except GameClientError:
                pass

            try:
                await asyncio.wait_for(self.process.wait(), timeout=self.quit_timeout)
            except asyncio.TimeoutError:
                logger.warning("[WORKER] Did not exit in time. Terminating...")
                self.process.terminate()
                try:
                    await asyncio.wait_for(self.process.wait(), timeout=self.quit_timeout)
                except asyncio.TimeoutError:
                    logger.warning("[WORKER] Still running. Killing...")
                    self.process.kill()
                    await self.process.wait()

        for task in self._tasks:
            if not task.done():
                try:
                    await asyncio.wait_for(asyncio.shield(task), timeout=1.0)
                except asyncio.TimeoutError:
                    task.cancel()


class WorkerProcessClient:
    def __init__(
        self,
        command: Optional[Sequence[str]] = None,
        quit_timeout: Optional[float] = None,
    ) -> None:
        self.command = list(command or getattr(config, "GAME_WORKER_COMMAND", []))
        self.quit_timeout = float(
            quit_timeout if quit_timeout is not None else getattr(config, "GAME_WORKER_QUIT_TIMEOUT_SECONDS", 5.0)
        )

    async def connect(
        self,
        options: ConnectOptions,
        on_event: EventCallback,
        on_side_channel: TextCallback,
    ) -> WorkerSessionHandle:
        if not self.command:
            raise GameClientError("GAME_WORKER_COMMAND is empty")

        env = dict(os.environ)
        env["GAME_CONNECT_OPTIONS"] = json.dumps(asdict(options))

        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise GameClientError(f"Failed to start game worker {self.command[0]!r}: {e}") from e

        logger.info(f"[WORKER] Started (PID {process.pid}) for {options.server_label}")
        handle = WorkerSessionHandle(
            process,
            on_event=on_event,
            on_side_channel=on_side_channel,
            quit_timeout=self.quit_timeout,
            read_chunk_bytes=int(getattr(config, "GAME_WORKER_READ_CHUNK_BYTES", 4096)),
            suppress_patterns=getattr(config, "SIDE_CHANNEL_SUPPRESS_PATTERNS", []),
        )
        handle.start()
        return handle
