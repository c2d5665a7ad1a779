#!/usr/bin/env python

import asyncio
import json

import bson
import websockets

# --- Configuration ---
# Address this stand-in rosbridge server listens on
LISTEN_HOST = "0.0.0.0"
LISTEN_PORT = 9090


async def handle(websocket):
    print("✅ Client connected.")
    try:
        async for message in websocket:
            if isinstance(message, bytes):
                op = bson.decode(message)
                kind = "BSON"
            else:
                op = json.loads(message)
                kind = "JSON"

            if op.get("op") == "advertise":
                print(f"📢 advertise {op.get('topic')} ({op.get('type')})")
            elif op.get("op") == "publish":
                msg = op.get("msg", {})
                stamp = msg.get("header", {}).get("stamp", {})
                print(f"--- {kind} publish on {op.get('topic')} @ {stamp.get('sec')}.{stamp.get('nanosec', 0):09d} "
                      f"({len(message)} bytes)")
            else:
                print(f"--- {kind} {op.get('op')}")
    except websockets.exceptions.ConnectionClosed:
        pass
    print("🔌 Client disconnected.")


async def main():
    async with websockets.serve(handle, LISTEN_HOST, LISTEN_PORT, max_size=None):
        print(f"✅ Listening for rosbridge clients on ws://{LISTEN_HOST}:{LISTEN_PORT}")
        await asyncio.Future()


if __name__ == "__main__":
    """
    Stands in for a rosbridge server and prints the operations it receives.

    Useful for checking what the bridge sends without a ROS installation. It
    accepts both JSON text frames and BSON binary frames.
    """

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n🛑 Interrupted by user. Shutting down.")
