from dataclasses import dataclass

from .extractors import COLOR_FRAME_ID, DEPTH_FRAME_ID
from .payloads import CameraInfoPayload, ImagePayload, OdometryPayload, Payload, TransformPayload
from .serializer import JSON


@dataclass
class Topic:
    """
    A published topic and the builder holding its accumulated state.

    ``stream`` names the extraction the topic needs each tick and ``sample``
    the extracted item its builder is updated with.
    """

    key: str
    name: str
    stream: str
    sample: str
    payload: Payload
    encoding: str = JSON
    enabled: bool = True

    @property
    def msg_type(self):
        return self.payload.msg_type


def _make_topic(key, prefix):
    if key == "depth":
        return Topic(key, f"{prefix}/Image/depth", "depth", "depth",
                     ImagePayload(encoding="32FC1", step_multiplier=4, frame_id=DEPTH_FRAME_ID))
    if key == "confidence":
        return Topic(key, f"{prefix}/Image/confidence", "confidence", "confidence",
                     ImagePayload(encoding="mono8", step_multiplier=1, frame_id=DEPTH_FRAME_ID))
    if key == "depth_info":
        return Topic(key, f"{prefix}/depth/camera_info", "depth", "depth_info",
                     CameraInfoPayload(frame_id=DEPTH_FRAME_ID))
    if key == "color":
        return Topic(key, f"{prefix}/Image/color", "color", "color",
                     ImagePayload(encoding="rgb8", step_multiplier=3, frame_id=COLOR_FRAME_ID))
    if key == "color_info":
        return Topic(key, f"{prefix}/color/camera_info", "color", "color_info",
                     CameraInfoPayload(frame_id=COLOR_FRAME_ID))
    if key == "transform":
        return Topic(key, f"{prefix}/Pose/transform", "pose", "pose", TransformPayload())
    if key == "odometry":
        return Topic(key, f"{prefix}/Odometry/odom", "pose", "pose", OdometryPayload())
    raise ValueError(f"Unknown topic key '{key}'")


def build_topics(config):
    """Creates one Topic per configured key, in the configuration's order."""
    topics = []
    for key, topic_config in config.topics.items():
        topic = _make_topic(key, config.topic_prefix)
        topic.encoding = topic_config.encoding
        topic.enabled = topic_config.enabled
        topics.append(topic)
    return topics
