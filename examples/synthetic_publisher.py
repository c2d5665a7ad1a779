from depth2rosbridge import BridgeConfig, DepthBridge, TopicConfig
from depth2rosbridge.sources import synthetic_frames

if __name__ == "__main__":
    """
    Example script publishing generated frames to a rosbridge server.

    This script demonstrates how to configure the bridge, connect it, and feed
    it frames and angular-rate samples the way a sensing pipeline would.
    """

    print("🚀 Starting depth2rosbridge with synthetic frames...")

    # --- Configuration ---
    config = BridgeConfig(
        host="localhost",
        target_fps=10,
        verbosity=1,
        topics={
            "depth": TopicConfig(scale=0.5),
            "confidence": TopicConfig(enabled=False),
            "color": TopicConfig(scale=0.25),
            # "color": TopicConfig(scale=0.25, encoding="bson"),  # only if the server accepts BSON
        },
    )

    bridge = DepthBridge(config)
    bridge.start(wait=5.0)

    try:
        for frame, angular_rate in synthetic_frames(300, fps=30.0, realtime=True):
            bridge.on_angular_rate(angular_rate)
            bridge.on_frame(frame)
    except KeyboardInterrupt:
        print("\n🛑 Interrupted by user. Shutting down.")
    finally:
        bridge.stop()
