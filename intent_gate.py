"""
IntentGate: single entry point into the session

Operator intents (reaction, slash command, HTTP) and deferred session work
(game events, connect results, reconnect timer, position refresh) all go
through one queue, drained by one worker task. A handler never starts
before the previous one has finished, so SessionSupervisor has exactly one
writer and status updates reach the surface in transition order.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

import config
from errors import GateClosedError, InvalidIntentError
from logger import setup_logger
from session_supervisor import SessionSupervisor


logger = setup_logger(__name__, config.LOG_FILE, config.LOG_LEVEL)


@dataclass(frozen=True)
class Join:
    operator: Optional[str] = None


@dataclass(frozen=True)
class Leave:
    pass


@dataclass(frozen=True)
class Send:
    text: str


Intent = Union[Join, Leave, Send]

_STOP = object()


class IntentGate:
    def __init__(self, supervisor: SessionSupervisor) -> None:
        self.supervisor = supervisor
        self._queue: asyncio.Queue[Tuple[Any, Optional[asyncio.Future]]] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        supervisor.attach(self.post_event)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run())
        logger.info("Intent gate started")

    async def stop(self) -> None:
        """Finish queued work, then stop the worker."""
        if not self.running:
            return
        self._queue.put_nowait((_STOP, None))
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    @staticmethod
    def validate(intent: Any) -> None:
        """Checks that need no session state. Raises InvalidIntentError."""
        if isinstance(intent, Send):
            if not isinstance(intent.text, str) or not intent.text.strip():
                raise InvalidIntentError("Invalid message")
        elif not isinstance(intent, (Join, Leave)):
            raise InvalidIntentError(f"Unknown intent: {intent!r}")

    async def submit(self, intent: Intent) -> Any:
        """
        Queue an operator intent and wait until it has been applied.
        Rejections (InvalidIntentError / NotConnectedError) are raised here.
        """
        self.validate(intent)
        if not self.running:
            raise GateClosedError("Intent gate is not running")

        fut = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((intent, fut))
        return await fut

    def post_event(self, message: object) -> None:
        """Fire-and-forget entry for session callbacks and timers."""
        self._queue.put_nowait((message, None))

    async def drain(self) -> None:
        """Wait until everything queued so far has been handled."""
        await self._queue.join()

    async def _apply(self, item: Any) -> Any:
        if isinstance(item, Join):
            return await self.supervisor.request_join(item.operator)
        if isinstance(item, Leave):
            return await self.supervisor.request_leave()
        if isinstance(item, Send):
            return await self.supervisor.send_chat(item.text)
        return await self.supervisor.handle(item)

    async def _run(self) -> None:
        while True:
            item, fut = await self._queue.get()
            try:
                if item is _STOP:
                    return
                if fut is not None and fut.done():
                    # caller gave up (cancelled) before we got here
                    continue
                try:
                    result = await self._apply(item)
                except Exception as e:
                    if fut is not None and not fut.done():
                        fut.set_exception(e)
                    elif not isinstance(e, InvalidIntentError):
                        logger.exception(f"Error handling {type(item).__name__}: {e}")
                else:
                    if fut is not None and not fut.done():
                        fut.set_result(result)
            finally:
                self._queue.task_done()
