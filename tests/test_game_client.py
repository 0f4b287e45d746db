import asyncio
import json
import sys
import textwrap

import pytest

from game_client import (
    ConnectOptions,
    EventKind,
    GameClientError,
    WorkerProcessClient,
    parse_worker_line,
)


OPTIONS = ConnectOptions(host="mc.test", port=25565, version="1.21.4", auth="offline", username="Steve")


def test_parse_move_event():
    ev = parse_worker_line('{"event": "move", "position": [1.5, 64, -3]}\n')
    assert ev.kind == EventKind.MOVE
    assert ev.position == (1.5, 64.0, -3.0)
    assert not ev.terminal


def test_parse_position_dict_and_dimension():
    ev = parse_worker_line(json.dumps({"event": "spawn", "dimension": "minecraft:overworld",
                                       "position": {"x": 1, "y": 2, "z": 3}}))
    assert ev.kind == EventKind.SPAWN
    assert ev.world == "minecraft:overworld"
    assert ev.position == (1.0, 2.0, 3.0)


def test_parse_terminal_and_auth_events():
    kicked = parse_worker_line('{"event": "kicked", "reason": "banned"}')
    assert kicked.terminal
    assert kicked.reason == "banned"

    auth = parse_worker_line(
        '{"event": "auth_pending", "verification_uri": "https://www.microsoft.com/link", "user_code": "AB12CD34"}'
    )
    assert auth.kind == EventKind.AUTH_PENDING
    assert auth.url == "https://www.microsoft.com/link"
    assert auth.code == "AB12CD34"


@pytest.mark.parametrize(
    "line",
    [
        "",
        "plain diagnostic text",
        "{not json",
        "[1, 2, 3]",
        '{"event": "teleport"}',
        '{"no_event": true}',
    ],
)
def test_parse_non_events(line):
    assert parse_worker_line(line) is None


def test_parse_bad_position_is_dropped():
    ev = parse_worker_line('{"event": "move", "position": ["a", 1]}')
    assert ev.kind == EventKind.MOVE
    assert ev.position is None


# ---------------------------
# Real worker process
# ---------------------------
WORKER = textwrap.dedent(
    """
    import json, os, sys
    opts = json.loads(os.environ["GAME_CONNECT_OPTIONS"])
    sys.stderr.write("Please open https://www.microsoft.com/link and use the code AB12CD34 to sign in\\n")
    sys.stderr.flush()
    print("not an event", flush=True)
    print(json.dumps({"event": "login", "username": opts["username"]}), flush=True)
    for line in sys.stdin:
        msg = json.loads(line)
        if msg["op"] == "chat":
            print(json.dumps({"event": "message", "text": msg["text"]}), flush=True)
        elif msg["op"] == "quit":
            break
    """
)


class Recorder:
    def __init__(self):
        self.events = []
        self.side = []
        self._changed = asyncio.Event()

    def on_event(self, event):
        self.events.append(event)
        self._changed.set()

    def on_side_channel(self, text):
        self.side.append(text)
        self._changed.set()

    async def wait_for(self, predicate, timeout=10.0):
        async def _wait():
            while not predicate():
                self._changed.clear()
                await self._changed.wait()
        await asyncio.wait_for(_wait(), timeout=timeout)

    def kinds(self):
        return [e.kind for e in self.events]


@pytest.mark.asyncio
async def test_worker_session_roundtrip():
    rec = Recorder()
    client = WorkerProcessClient(command=[sys.executable, "-c", WORKER], quit_timeout=5.0)
    handle = await client.connect(OPTIONS, rec.on_event, rec.on_side_channel)

    await rec.wait_for(lambda: EventKind.LOGIN in rec.kinds())
    assert rec.events[0].username == "Steve"

    await handle.chat("hello")
    await rec.wait_for(lambda: EventKind.MESSAGE in rec.kinds())
    assert [e.text for e in rec.events if e.kind == EventKind.MESSAGE] == ["hello"]

    await handle.quit()
    await rec.wait_for(lambda: EventKind.END in rec.kinds())

    ends = [e for e in rec.events if e.terminal]
    assert len(ends) == 1
    assert ends[0].reason == "quit"
    assert not handle.alive

    side = "".join(rec.side)
    assert "microsoft.com/link" in side
    assert "not an event" in side

    with pytest.raises(GameClientError):
        await handle.chat("too late")


@pytest.mark.asyncio
async def test_worker_exit_reports_single_end():
    script = 'import json; print(json.dumps({"event": "error", "reason": "ECONNREFUSED"}), flush=True); raise SystemExit(3)'
    rec = Recorder()
    client = WorkerProcessClient(command=[sys.executable, "-c", script])
    handle = await client.connect(OPTIONS, rec.on_event, rec.on_side_channel)

    await rec.wait_for(lambda: any(e.terminal for e in rec.events))
    await asyncio.wait_for(handle.process.wait(), timeout=10.0)
    await handle.quit()

    terminal = [e for e in rec.events if e.terminal]
    assert len(terminal) == 1
    assert terminal[0].kind == EventKind.ERROR
    assert terminal[0].reason == "ECONNREFUSED"


@pytest.mark.asyncio
async def test_worker_crash_is_reported_as_end():
    rec = Recorder()
    client = WorkerProcessClient(command=[sys.executable, "-c", "raise SystemExit(3)"])
    await client.connect(OPTIONS, rec.on_event, rec.on_side_channel)

    await rec.wait_for(lambda: EventKind.END in rec.kinds())
    assert rec.events[-1].reason == "worker exited with code 3"


@pytest.mark.asyncio
async def test_suppressed_side_channel_noise():
    script = (
        "import sys; sys.stderr.write('Chunk size is 12 but only 3 was read\\n'); sys.stderr.flush(); "
        "print('useful line', flush=True)"
    )
    rec = Recorder()
    client = WorkerProcessClient(command=[sys.executable, "-c", script])
    await client.connect(OPTIONS, rec.on_event, rec.on_side_channel)

    await rec.wait_for(lambda: EventKind.END in rec.kinds())
    joined = "".join(rec.side)
    assert "useful line" in joined
    assert "Chunk size" not in joined


@pytest.mark.asyncio
async def test_missing_worker_executable():
    client = WorkerProcessClient(command=["definitely-not-a-real-worker-binary"])
    with pytest.raises(GameClientError):
        await client.connect(OPTIONS, lambda e: None, lambda t: None)
