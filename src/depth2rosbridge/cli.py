#!/usr/bin/env python

import argparse
import sys

from .bridge import DepthBridge
from .config import TOPIC_KEYS, BridgeConfig, load_config
from .serializer import BSON
from .sources import NpzFrameSource, synthetic_frames


def _parse_scale(text):
    key, _, value = text.partition("=")
    if key not in ("depth", "color") or not value:
        raise argparse.ArgumentTypeError(f"expected depth=S or color=S, got '{text}'")
    try:
        return key, float(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid scale in '{text}'") from e


def build_parser():
    parser = argparse.ArgumentParser(
        prog="depth2rosbridge",
        description="Publish depth, color and pose frames to a rosbridge server.",
    )
    parser.add_argument("--config", help="JSON configuration file; flags below override it.")
    parser.add_argument("--host", help="rosbridge host, host:port or ws:// URL.")
    parser.add_argument("--port", type=int, help="rosbridge port (default 9090).")
    parser.add_argument("--fps", type=float, help="Target publish frequency in Hz (min 1).")
    parser.add_argument("--disable", action="append", default=[], choices=TOPIC_KEYS, metavar="KEY",
                        help=f"Disable a topic. One of: {', '.join(TOPIC_KEYS)}.")
    parser.add_argument("--bson", action="append", default=[], choices=TOPIC_KEYS, metavar="KEY",
                        help="Send a topic BSON-encoded instead of JSON.")
    parser.add_argument("--scale", action="append", default=[], type=_parse_scale, metavar="KEY=S",
                        help="Downsample factor for 'depth' or 'color', e.g. color=0.25.")
    parser.add_argument("--wait", type=float, default=5.0, help="Seconds to wait for the connection.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More output (repeatable).")
    parser.add_argument("-q", "--quiet", action="store_true", help="Errors only.")

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--replay", metavar="DIR", help="Replay recorded .npz frames from DIR.")
    source.add_argument("--synthetic", type=int, metavar="N", help="Publish N generated frames.")
    parser.add_argument("--loop", action="store_true", help="Loop the replay.")
    return parser


def config_from_args(args):
    config = load_config(args.config) if args.config else BridgeConfig()

    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.fps is not None:
        config.target_fps = max(1.0, args.fps)
    if args.quiet:
        config.verbosity = 0
    elif args.verbose:
        config.verbosity = 1 + args.verbose

    for key in args.disable:
        config.topic(key).enabled = False
    for key in args.bson:
        config.topic(key).encoding = BSON
    for key, scale in args.scale:
        if not 0.0 < scale <= 1.0:
            raise ValueError(f"Scale for '{key}' must be in (0, 1], got {scale}")
        config.topic(key).scale = scale
    return config


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
        bridge = DepthBridge(config)
    except (OSError, ValueError) as e:
        print(f"❌ {e}")
        return 2

    if args.replay:
        try:
            source = NpzFrameSource(args.replay, loop=args.loop, verbosity=config.verbosity)
        except FileNotFoundError as e:
            print(f"❌ {e}")
            return 2
    else:
        source = synthetic_frames(args.synthetic, realtime=True)

    print("🚀 Starting depth2rosbridge...")
    bridge.start(wait=args.wait)

    try:
        for frame, rate in source:
            if rate is not None:
                bridge.on_angular_rate(rate)
            bridge.on_frame(frame)
    except KeyboardInterrupt:
        print("\n🛑 Interrupted by user. Shutting down.")
    finally:
        bridge.stop()

    if config.verbosity >= 1:
        print(f"✅ {bridge.frames_published}/{bridge.frames_received} frames published, "
              f"{bridge.transport.messages_sent} messages sent ({bridge.transport.bytes_sent} bytes).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
