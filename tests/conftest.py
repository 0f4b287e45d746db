import asyncio
import itertools
from typing import List, Optional

import pytest_asyncio

from app.controller import BridgeController
from game_client import ConnectOptions, EventKind, GameClientError, GameEvent
from status_projector import PostKind


class FakeHandle:
    def __init__(self, on_event, on_side_channel):
        self.on_event = on_event
        self.on_side_channel = on_side_channel
        self.sent: List[str] = []
        self.quit_calls = 0

    def emit(self, kind: EventKind, **fields) -> None:
        self.on_event(GameEvent(kind=kind, **fields))

    def side(self, text: str) -> None:
        self.on_side_channel(text)

    async def chat(self, text: str) -> None:
        if self.quit_calls:
            raise GameClientError("Game worker is not running")
        self.sent.append(text)

    async def quit(self) -> None:
        first = self.quit_calls == 0
        self.quit_calls += 1
        if first:
            self.emit(EventKind.END, reason="quit")


class FakeGameClient:
    """
    In-memory GameSessionClient.
    fail_with: raise this from every connect().
    block: connect() waits until release() is called.
    outstanding / max_outstanding count connect() calls running at once.
    """

    def __init__(self, fail_with: Optional[BaseException] = None, block: bool = False):
        self.fail_with = fail_with
        self.block = block
        self.connects: List[ConnectOptions] = []
        self.handles: List[FakeHandle] = []
        self.cancelled = 0
        self.outstanding = 0
        self.max_outstanding = 0
        # callbacks of the most recent connect(), usable before it returns
        self.pending: Optional[FakeHandle] = None
        self._gate: Optional[asyncio.Event] = None

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    async def connect(self, options, on_event, on_side_channel):
        self.connects.append(options)
        handle = self.pending = FakeHandle(on_event, on_side_channel)
        self.outstanding += 1
        self.max_outstanding = max(self.max_outstanding, self.outstanding)
        try:
            if self.block:
                if self._gate is None:
                    self._gate = asyncio.Event()
                await self._gate.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.outstanding -= 1
        if self.fail_with is not None:
            raise self.fail_with
        self.handles.append(handle)
        return handle

    @property
    def handle(self) -> FakeHandle:
        return self.handles[-1]


class FakePost:
    _ids = itertools.count(1)

    def __init__(self, kind: PostKind, snapshot):
        self.id = next(self._ids)
        self.kind = kind
        self.snapshot = snapshot
        self.deleted = False


class RecordingSurface:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []
        self.posts: List[FakePost] = []

    async def create_status_post(self, snapshot, kind):
        self.calls.append(("create", kind, snapshot))
        if self.fail:
            raise RuntimeError("channel unavailable")
        post = FakePost(kind, snapshot)
        self.posts.append(post)
        return post

    async def update_status_post(self, post, snapshot, kind):
        self.calls.append(("update", kind, snapshot))
        if self.fail:
            raise RuntimeError("channel unavailable")
        post.snapshot = snapshot

    async def delete_status_post(self, post):
        self.calls.append(("delete", post.kind, None))
        if self.fail:
            raise RuntimeError("channel unavailable")
        post.deleted = True

    def texts(self, kind: PostKind = PostKind.CONTROL) -> List[str]:
        return [snap.text for op, k, snap in self.calls if k == kind and snap is not None]

    def live(self, kind: PostKind) -> List[FakePost]:
        return [p for p in self.posts if p.kind == kind and not p.deleted]


async def settle(gate, rounds: int = 50) -> None:
    """Let background tasks run and wait until the gate queue is empty."""
    for _ in range(rounds):
        await gate.drain()
        await asyncio.sleep(0)
    await gate.drain()


@pytest_asyncio.fixture
async def make_bridge():
    created = []

    async def _make(client=None, surface=None, max_reconnect_attempts=3, reconnect_delay=0.0):
        controller = BridgeController(
            surface=surface if surface is not None else RecordingSurface(),
            client=client if client is not None else FakeGameClient(),
            options=ConnectOptions(host="mc.test", port=25565, version="1.21.4", auth="offline"),
            max_reconnect_attempts=max_reconnect_attempts,
            reconnect_delay=reconnect_delay,
            refresh_seconds=3600.0,
        )
        await controller.start()
        await settle(controller.gate)
        created.append(controller)
        return controller

    yield _make

    for controller in created:
        await controller.stop()
