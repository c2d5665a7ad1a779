import time

from .extractors import extract_camera_info, extract_color, extract_confidence, extract_depth
from .payloads import CameraInfoPayload, ImagePayload, OdometryPayload, TransformPayload, publish_message
from .serializer import SerializationError, encode
from .throttle import FrameThrottler
from .topics import build_topics
from .transforms import MotionSampler, VelocityState, compute_twist, transform_pose
from .transport import RosbridgeClient

# Outbox depth per enabled topic: a few ticks may wait on a slow link before
# new messages are dropped.
OUTBOX_TICKS = 4


class DepthBridge:
    """
    Drives one publish tick per accepted frame: throttle, extract, transform,
    update builders, then serialize and send every enabled topic in declared
    order.

    ``on_frame`` runs synchronously on the caller's thread; the transport only
    queues, so a tick never waits on the network.
    """

    def __init__(self, config, transport=None, clock=time.time):
        """
        Args:
            config (BridgeConfig): Bridge settings.
            transport (RosbridgeClient, optional): Client to send through. Built from the config when omitted.
            clock (callable, optional): Wall-clock source in epoch seconds. Defaults to time.time.

        Raises:
            ValueError: If the configured broker address is malformed.
        """
        self.config = config
        self.verbosity = config.verbosity

        self.throttler = FrameThrottler(config.target_fps, clock=clock, verbosity=config.verbosity)
        self.topics = build_topics(config)

        if transport is None:
            transport = RosbridgeClient(config.host, port=config.port, verbosity=config.verbosity,
                                        max_queued=OUTBOX_TICKS * max(1, len(self.enabled_topics)))
        self.transport = transport
        self.transport.on_connect = self.advertise_topics

        self.velocity = VelocityState()
        self.motion = MotionSampler()

        self.frames_received = 0
        self.frames_published = 0
        self.messages_dropped = 0

    @property
    def enabled_topics(self):
        return [topic for topic in self.topics if topic.enabled]

    def start(self, wait=None):
        """
        Connects the transport. Topics are advertised from the connect notification.

        Args:
            wait (float, optional): Seconds to block until connected. Defaults to None (don't wait).

        Returns:
            bool: Whether the transport is connected on return.
        """
        self.transport.connect()
        if wait is None:
            return self.transport.is_connected

        connected = self.transport.wait_until_connected(wait)
        if not connected and self.verbosity >= 1:
            print(f"⚠️ Not connected to {self.transport.url} after {wait}s; frames will be dropped until it is.")
        return connected

    def stop(self):
        self.transport.close()

    def advertise_topics(self):
        """Advertises every enabled topic, in declared order. Called once per connection."""
        for topic in self.enabled_topics:
            self.transport.advertise(topic.name, topic.msg_type)

    def on_angular_rate(self, rate):
        """Receives an angular-rate sample (rad/s, source axes) from the motion stream."""
        self.motion.update(rate)

    def on_frame(self, frame):
        """
        Processes one frame.

        Returns:
            bool: False if the frame was throttled, True if a tick ran.
        """
        self.frames_received += 1
        if not self.throttler.should_publish(frame.timestamp):
            return False

        stamp = self.throttler.stamp(frame.timestamp)
        topics = self.enabled_topics

        samples = self._extract(frame, {topic.stream for topic in topics})
        for topic in topics:
            self._update(topic, samples)
        for topic in topics:
            self._publish(topic, stamp)

        self.frames_published += 1
        return True

    def _extract(self, frame, streams):
        """Runs each needed extraction once; paired topics share the result."""
        samples = {}

        if "depth" in streams:
            depth = extract_depth(frame, scale=self.config.topic("depth").scale)
            samples["depth"] = depth
            samples["depth_info"] = extract_camera_info(frame, depth)

        if "confidence" in streams:
            samples["confidence"] = extract_confidence(frame)

        if "color" in streams:
            color = extract_color(frame, scale=self.config.topic("color").scale)
            samples["color"] = color
            samples["color_info"] = extract_camera_info(frame, color)

        if "pose" in streams:
            try:
                samples["pose"] = transform_pose(frame.pose)
                samples["twist"] = compute_twist(self.velocity, self.motion, frame.pose, frame.timestamp)
            except ValueError as e:
                print(f"❌ Skipping pose this tick: {e}")

        if self.verbosity >= 2:
            for name, sample in samples.items():
                if getattr(sample, "is_empty", False):
                    print(f"   - Empty '{name}' sample this tick.")
        return samples

    def _update(self, topic, samples):
        sample = samples.get(topic.sample)
        if sample is None:
            return

        payload = topic.payload
        if isinstance(payload, (ImagePayload, CameraInfoPayload, TransformPayload)):
            payload.update(sample)
        elif isinstance(payload, OdometryPayload):
            payload.update(sample, samples.get("twist"))
        else:
            raise TypeError(f"Unhandled payload kind: {type(payload).__name__}")

    def _publish(self, topic, stamp):
        message = publish_message(topic.name, topic.payload, stamp)
        if message is None:
            if self.verbosity >= 2:
                print(f"   - Nothing to send on '{topic.name}' this tick.")
            return

        try:
            encoded = encode(message, topic.encoding)
        except SerializationError as e:
            self.messages_dropped += 1
            print(f"❌ Dropping message on '{topic.name}': {e}")
            return

        if self.verbosity >= 2:
            print(f"Publishing '{topic.name}' ({len(encoded)} {topic.encoding} chars/bytes)...")
        if not self.transport.send(encoded):
            self.messages_dropped += 1
