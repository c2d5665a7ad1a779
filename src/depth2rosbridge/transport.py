#!/usr/bin/env python

import asyncio
import concurrent.futures
import json
import re
import threading
from enum import Enum
from urllib.parse import urlsplit

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from .payloads import advertise_message

DEFAULT_PORT = 9090
DEFAULT_MAX_QUEUED = 32
SCHEMES_SUPPORTED = ["ws", "wss"]

_HOST_PATTERN = re.compile(r"^[A-Za-z0-9.\-:]+$")


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def broker_url(address, port=DEFAULT_PORT):
    """
    Normalizes a broker address into a WebSocket URL.

    Args:
        address (str): A host (``192.168.1.20``), ``host:port``, or a ``ws://``/``wss://`` URL.
        port (int, optional): Port used when the address names none. Defaults to 9090.

    Raises:
        ValueError: If the address cannot be turned into a usable URL.
    """
    address = (address or "").strip()
    if not address:
        raise ValueError("Broker address is empty")

    if "://" not in address:
        address = f"ws://{address}"

    parts = urlsplit(address)
    if parts.scheme not in SCHEMES_SUPPORTED:
        raise ValueError(f"Unsupported scheme '{parts.scheme}' in broker address; expected one of {SCHEMES_SUPPORTED}")

    host = parts.hostname
    if not host or not _HOST_PATTERN.match(host):
        raise ValueError(f"Malformed host in broker address '{address}'")

    try:
        explicit_port = parts.port
    except ValueError as e:
        raise ValueError(f"Malformed port in broker address '{address}'") from e

    port = explicit_port or int(port)
    if not 0 < port < 65536:
        raise ValueError(f"Port {port} out of range")

    netloc = f"[{host}]" if ":" in host else host
    return f"{parts.scheme}://{netloc}:{port}{parts.path}"


class RosbridgeClient:
    """
    WebSocket client for a rosbridge server.

    The socket lives on an asyncio loop running in its own thread, so connect
    and disconnect events never run on the caller's thread. ``send`` only
    queues: messages go out in FIFO order through a single writer task. There
    is no automatic reconnection.
    """

    def __init__(self, address, port=DEFAULT_PORT, open_timeout=5.0, close_timeout=2.0, max_queued=DEFAULT_MAX_QUEUED,
                 verbosity=1):
        """
        Initializes the client. Nothing is opened until ``connect`` is called.

        Args:
            address (str): Host, ``host:port`` or WebSocket URL of the rosbridge server.
            port (int, optional): Port used when the address names none. Defaults to 9090.
            open_timeout (float, optional): Handshake timeout in seconds. Defaults to 5.0.
            close_timeout (float, optional): Time in seconds to wait for a clean close. Defaults to 2.0.
            max_queued (int, optional): Messages allowed to wait for the socket before new ones are
                dropped. Defaults to 32.
            verbosity (int, optional): The verbosity level. Defaults to 1 (basic connection message).

        Raises:
            ValueError: If the address is malformed.

        Notes:
            The verbosity level controls the amount of logging output:
                - Level 0: Errors only
                - Level 1: Connection events and dropped messages
                - Level 2: Detailed per-message information
        """
        self.url = broker_url(address, port)
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self.max_queued = max(1, int(max_queued))
        self.verbosity = verbosity

        # Callbacks, invoked on the transport thread
        self.on_connect = None
        self.on_disconnect = None

        # Connection state
        self.state = ConnectionState.DISCONNECTED
        self.websocket = None
        self.connection_count = 0
        self._state_lock = threading.Lock()
        self._connected = threading.Event()
        self._connect_future = None

        # Transport loop
        self.loop = None
        self._thread = None
        self._thread_id = None
        self._outbox = None
        self._writer = None
        self._pending = 0
        self._pending_lock = threading.Lock()

        # Statistics
        self.messages_sent = 0
        self.bytes_sent = 0
        self.messages_dropped = 0

    @property
    def is_connected(self):
        return self.state == ConnectionState.CONNECTED

    def _set_state(self, state):
        with self._state_lock:
            self.state = state
        if state == ConnectionState.CONNECTED:
            self._connected.set()
        else:
            self._connected.clear()

    def _ensure_loop(self):
        """Starts the transport thread and its event loop if they are not running."""
        if self._thread is not None and self._thread.is_alive():
            return

        self.loop = asyncio.new_event_loop()
        ready = threading.Event()

        def run():
            asyncio.set_event_loop(self.loop)
            self._thread_id = threading.get_ident()
            ready.set()
            try:
                self.loop.run_forever()
            finally:
                pending = asyncio.all_tasks(self.loop)
                for task in pending:
                    task.cancel()
                if pending:
                    self.loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
                self.loop.close()

        self._thread = threading.Thread(target=run, name="rosbridge-transport", daemon=True)
        self._thread.start()
        ready.wait()

    def connect(self):
        """Starts the handshake and returns immediately. ``on_connect`` fires once it succeeds."""
        with self._state_lock:
            if self.state != ConnectionState.DISCONNECTED:
                if self.verbosity >= 1:
                    print(f"⚠️ Socket already {self.state.value}, ignoring connect().")
                return
            self.state = ConnectionState.CONNECTING

        self._ensure_loop()
        self._connect_future = asyncio.run_coroutine_threadsafe(self._connect(), self.loop)

    async def _connect(self):
        if self.verbosity >= 1:
            print(f"📶 Connecting to rosbridge at {self.url}...")

        try:
            websocket = await websockets.connect(
                self.url, max_size=None, open_timeout=self.open_timeout, close_timeout=self.close_timeout
            )
        except asyncio.CancelledError:
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as e:
            print(f"❌ Connection to rosbridge at {self.url} failed: {e}")
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self.websocket = websocket
        with self._pending_lock:
            self._pending = 0
        self._outbox = asyncio.Queue(maxsize=self.max_queued)
        self.connection_count += 1
        self._set_state(ConnectionState.CONNECTED)
        if self.verbosity >= 1:
            print(f"✅ Connected to rosbridge at {self.url}")

        self._writer = asyncio.ensure_future(self._write_outbox(websocket, self._outbox))
        asyncio.ensure_future(self._process_messages(websocket))

        # Runs before any queued callback from another thread, so whatever the
        # handler sends goes out ahead of messages queued elsewhere.
        if self.on_connect is not None:
            try:
                self.on_connect()
            except Exception as e:
                print(f"❌ on_connect handler failed: {e}")

    async def _write_outbox(self, websocket, outbox):
        """Drains the outbox onto the socket, one message at a time."""
        try:
            while True:
                payload = await outbox.get()
                try:
                    await websocket.send(payload)
                finally:
                    if outbox is self._outbox:
                        with self._pending_lock:
                            self._pending = max(0, self._pending - 1)
                self.messages_sent += 1
                self.bytes_sent += len(payload.encode("utf-8")) if isinstance(payload, str) else len(payload)
        except ConnectionClosed as e:
            self._mark_disconnected(websocket, e)

    async def _process_messages(self, websocket):
        """Reads status and error messages the server sends back."""
        reason = "connection closed"
        try:
            async for message in websocket:
                self._process_incoming(message)
        except ConnectionClosed as e:
            reason = e
        self._mark_disconnected(websocket, reason)

    def _process_incoming(self, message):
        if isinstance(message, bytes):
            if self.verbosity >= 2:
                print(f"📥 Received binary data: {len(message)} bytes")
            return

        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            if self.verbosity >= 2:
                print(f"📥 Received non-JSON text: {message[:100]}...")
            return

        if isinstance(data, dict) and data.get("op") == "status":
            level = data.get("level", "info")
            if level in ("error", "warning") and self.verbosity >= 1:
                print(f"⚠️ rosbridge {level}: {data.get('msg', '')}")
            elif self.verbosity >= 2:
                print(f"📥 rosbridge {level}: {data.get('msg', '')}")
        elif self.verbosity >= 2:
            print(f"📥 Received text: {message[:100]}...")

    def _mark_disconnected(self, websocket, reason):
        """Moves to DISCONNECTED once per connection; the writer and its queued messages are dropped."""
        if self.websocket is not websocket:
            return

        self.websocket = None
        self._outbox = None
        writer, self._writer = self._writer, None
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()

        self._set_state(ConnectionState.DISCONNECTED)
        if self.verbosity >= 1:
            print(f"🔌 Disconnected from rosbridge: {reason}")

        if self.on_disconnect is not None:
            try:
                self.on_disconnect()
            except Exception as e:
                print(f"❌ on_disconnect handler failed: {e}")

    @property
    def pending(self):
        """Messages accepted by ``send`` that have not been written to the socket yet."""
        return self._pending

    def _drop(self, reason):
        self.messages_dropped += 1
        if self.verbosity >= 1:
            print(f"⚠️ {reason}, dropping message.")
        return False

    def send(self, payload):
        """
        Queues a message for sending without blocking.

        At most ``max_queued`` messages wait for the socket. While that many are
        pending, new messages are dropped instead of queued.

        Args:
            payload (str | bytes): JSON text goes out as a text frame, bytes as a binary frame.

        Returns:
            bool: True if the message was queued, False if it was dropped.
        """
        outbox = self._outbox
        if self.state != ConnectionState.CONNECTED or outbox is None:
            return self._drop("Cannot send data: socket not connected")

        with self._pending_lock:
            if self._pending >= self.max_queued:
                full = True
            else:
                full = False
                self._pending += 1
        if full:
            return self._drop(f"Outbox full ({self.max_queued} messages waiting for {self.url})")

        if threading.get_ident() == self._thread_id:
            outbox.put_nowait(payload)
            return True

        try:
            self.loop.call_soon_threadsafe(outbox.put_nowait, payload)
        except RuntimeError:
            with self._pending_lock:
                self._pending = max(0, self._pending - 1)
            return self._drop("Transport loop is closed")
        return True

    def advertise(self, topic, msg_type):
        """Sends a JSON ``advertise`` operation for a topic."""
        if self.verbosity >= 1:
            print(f"📢 Advertising: {topic} ({msg_type})")
        return self.send(json.dumps(advertise_message(topic, msg_type)))

    def wait_until_connected(self, timeout=None):
        """Blocks until the client is connected. Returns False on timeout."""
        return self._connected.wait(timeout)

    def disconnect(self):
        """Closes the current connection, or abandons a handshake in progress."""
        if self.state == ConnectionState.DISCONNECTED or self.loop is None:
            if self.verbosity >= 1:
                print("⚠️ Socket not connected.")
            return

        if self.state == ConnectionState.CONNECTING and self._connect_future is not None:
            self._connect_future.cancel()
            return

        future = asyncio.run_coroutine_threadsafe(self._disconnect(), self.loop)
        try:
            future.result(timeout=self.close_timeout)
        except concurrent.futures.TimeoutError:
            print(f"❌ Closing the connection to {self.url} timed out.")

    async def _disconnect(self):
        websocket = self.websocket
        if websocket is None:
            return
        await websocket.close()
        self._mark_disconnected(websocket, "closed by client")

    def close(self):
        """Disconnects and stops the transport thread."""
        if self.state != ConnectionState.DISCONNECTED:
            self.disconnect()

        if self._thread is not None and self._thread.is_alive():
            if self.verbosity >= 1:
                print("🧹 Stopping transport loop.")
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._thread.join(timeout=self.close_timeout)
        self._thread = None
