"""Shared pytest configuration and fixtures for the depth2rosbridge test suite."""

import asyncio
import json
import sys
import threading
import time
from pathlib import Path

import bson
import numpy as np
import pytest
import websockets

# Ensure the src layout is importable without an install
SRC_ROOT = Path(__file__).parent.parent / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from depth2rosbridge.frame import Frame  # noqa: E402


def wait_until(predicate, timeout=3.0, interval=0.01):
    """Polls ``predicate`` until it is truthy or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


def decode(message):
    if isinstance(message, bytes):
        return bson.decode(message)
    return json.loads(message)


class StubBroker:
    """
    A minimal rosbridge stand-in that records every message it receives.

    With ``reading=False`` it accepts connections but never reads from them,
    like a server that has stalled.
    """

    def __init__(self, reading=True):
        self.reading = reading
        self.raw = []
        self.connections = 0
        self.port = None
        self.loop = None
        self._clients = set()
        self._lock = threading.Lock()
        self._thread = None
        self._stop = None

    @property
    def url(self):
        return f"ws://127.0.0.1:{self.port}"

    @property
    def received(self):
        with self._lock:
            return [decode(message) for message in self.raw]

    def start(self):
        ready = threading.Event()

        def run():
            self.loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self.loop)
            self.loop.run_until_complete(self._serve(ready))
            self.loop.close()

        self._thread = threading.Thread(target=run, name="stub-broker", daemon=True)
        self._thread.start()
        assert ready.wait(5.0), "stub broker did not start"

    async def _serve(self, ready):
        self._stop = asyncio.Event()
        max_queue = 16 if self.reading else 1
        async with websockets.serve(self._handle, "127.0.0.1", 0, max_size=None, max_queue=max_queue) as server:
            self.port = list(server.sockets)[0].getsockname()[1]
            ready.set()
            await self._stop.wait()

    async def _handle(self, websocket):
        self.connections += 1
        self._clients.add(websocket)
        try:
            if not self.reading:
                await websocket.wait_closed()
                return
            async for message in websocket:
                with self._lock:
                    self.raw.append(message)
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self._clients.discard(websocket)

    def drop_clients(self):
        """Closes every client connection from the server side."""
        async def close_all():
            for websocket in list(self._clients):
                await websocket.close()

        asyncio.run_coroutine_threadsafe(close_all(), self.loop).result(5.0)

    def stop(self):
        if self.loop is not None and self._stop is not None:
            self.loop.call_soon_threadsafe(self._stop.set)
        if self._thread is not None:
            self._thread.join(5.0)


@pytest.fixture()
def broker():
    stub = StubBroker()
    stub.start()
    yield stub
    stub.stop()


@pytest.fixture()
def stalled_broker():
    stub = StubBroker(reading=False)
    stub.start()
    yield stub
    stub.stop()


class RecordingTransport:
    """Transport double with the RosbridgeClient surface the bridge uses."""

    def __init__(self, connected=True):
        self.url = "ws://recording:9090"
        self.is_connected = connected
        self.on_connect = None
        self.on_disconnect = None
        self.sent = []
        self.advertised = []
        self.dropped = 0
        self.closed = False

    def connect(self):
        self.is_connected = True
        if self.on_connect is not None:
            self.on_connect()

    def wait_until_connected(self, timeout=None):
        return self.is_connected

    def send(self, payload):
        if not self.is_connected:
            self.dropped += 1
            return False
        self.sent.append(payload)
        return True

    def advertise(self, topic, msg_type):
        self.advertised.append((topic, msg_type))
        return self.send(json.dumps({"op": "advertise", "topic": topic, "type": msg_type}))

    def close(self):
        self.closed = True
        self.is_connected = False

    @property
    def published(self):
        return [decode(payload) for payload in self.sent if decode(payload).get("op") == "publish"]


@pytest.fixture()
def transport():
    return RecordingTransport()


def make_frame(t, depth_size=(256, 192), color_size=(64, 48), confidence=True, pose=None,
               resolution=(1920, 1440)):
    """Builds a frame with deterministic buffers."""
    depth_width, depth_height = depth_size
    color_width, color_height = color_size

    depth = np.arange(depth_width * depth_height, dtype="<f4").reshape(depth_height, depth_width) / 1000.0
    color = np.zeros((color_height, color_width, 4), dtype=np.uint8)
    color[..., 0] = 10
    color[..., 1] = 20
    color[..., 2] = 30
    color[..., 3] = 255

    frame = Frame(
        timestamp=t,
        depth=depth.tobytes(),
        depth_width=depth_width,
        depth_height=depth_height,
        color=color.tobytes(),
        color_width=color_width,
        color_height=color_height,
        color_layout="rgba8",
        pose=np.eye(4) if pose is None else pose,
        intrinsics=np.array([[1500.0, 0.0, 960.0], [0.0, 1500.0, 720.0], [0.0, 0.0, 1.0]]),
        resolution=resolution,
    )
    if confidence:
        frame.confidence = bytes(range(256)) * (depth_width * depth_height // 256)
        frame.confidence_width = depth_width
        frame.confidence_height = depth_height
        frame.confidence_row_bytes = depth_width
    return frame
