"""
Per-topic message builders.

The set of builders is closed: ImagePayload, CameraInfoPayload,
TransformPayload and OdometryPayload. Each keeps the state accumulated from
``update`` calls and turns it into a message body with ``build(stamp)``.
``build`` returns None when the topic has nothing to send this tick.
"""

from typing import Union

from .frame import CameraInfoSample, ImageSample, PoseSample, TwistSample

ODOM_FRAME_ID = "odom"
BASE_FRAME_ID = "base_link"

ZERO_COVARIANCE = (0.0,) * 36


def _vector3(v):
    return {"x": float(v[0]), "y": float(v[1]), "z": float(v[2])}


def _orientation(q):
    # The x and y signs are flipped on the way out; consumers were tuned against this.
    return {"x": -float(q[0]), "y": -float(q[1]), "z": float(q[2]), "w": float(q[3])}


def _header(stamp, frame_id):
    return {"stamp": dict(stamp), "frame_id": frame_id}


class ImagePayload:
    """sensor_msgs/msg/Image"""

    msg_type = "sensor_msgs/msg/Image"

    def __init__(self, encoding="32FC1", step_multiplier=4, frame_id=""):
        """
        Args:
            encoding (str): Image encoding until the first sample says otherwise.
            step_multiplier (int): Bytes per pixel, used when a sample carries no step.
            frame_id (str): Header frame id until the first sample says otherwise.
        """
        self.encoding = encoding
        self.step_multiplier = step_multiplier
        self.frame_id = frame_id
        self.width = 0
        self.height = 0
        self.step = 0
        self.data = b""
        self.skipped = False

    def update(self, sample: ImageSample):
        if sample.is_empty:
            self.skipped = True
            return
        self.skipped = False
        self.data = sample.data
        self.width = sample.width
        self.height = sample.height
        self.step = sample.step or sample.width * self.step_multiplier
        self.encoding = sample.encoding
        self.frame_id = sample.frame_id or self.frame_id

    def build(self, stamp):
        if self.skipped or self.width <= 0 or self.height <= 0:
            return None
        return {
            "header": _header(stamp, self.frame_id),
            "height": self.height,
            "width": self.width,
            "encoding": self.encoding,
            "is_bigendian": 0,
            "step": self.step,
            "data": self.data,
        }


class CameraInfoPayload:
    """sensor_msgs/msg/CameraInfo"""

    msg_type = "sensor_msgs/msg/CameraInfo"
    distortion_model = "plumb_bob"

    def __init__(self, frame_id=""):
        self.frame_id = frame_id
        self.width = 0
        self.height = 0
        self.k = []
        self.r = []
        self.p = []
        self.skipped = False

    def update(self, sample: CameraInfoSample):
        if sample.is_empty:
            self.skipped = True
            return
        self.skipped = False
        self.width = sample.width
        self.height = sample.height
        self.k = list(sample.k)
        self.r = list(sample.r)
        self.p = list(sample.p)
        self.frame_id = sample.frame_id or self.frame_id

    def build(self, stamp):
        if self.skipped or self.width <= 0 or self.height <= 0:
            return None
        return {
            "header": _header(stamp, self.frame_id),
            "height": self.height,
            "width": self.width,
            "distortion_model": self.distortion_model,
            # Input images are already rectified.
            "d": [0.0, 0.0, 0.0, 0.0, 0.0],
            "k": list(self.k),
            "r": list(self.r),
            "p": list(self.p),
        }


class TransformPayload:
    """geometry_msgs/msg/TransformStamped, odom -> base_link"""

    msg_type = "geometry_msgs/msg/TransformStamped"

    def __init__(self):
        self.translation = (0.0, 0.0, 0.0)
        self.rotation = (0.0, 0.0, 0.0, 1.0)
        self.has_pose = False

    def update(self, sample: PoseSample):
        self.translation = sample.translation
        self.rotation = sample.rotation
        self.has_pose = True

    def build(self, stamp):
        if not self.has_pose:
            return None
        return {
            "header": _header(stamp, ODOM_FRAME_ID),
            "child_frame_id": BASE_FRAME_ID,
            "transform": {
                "translation": _vector3(self.translation),
                "rotation": _orientation(self.rotation),
            },
        }


class OdometryPayload:
    """nav_msgs/msg/Odometry, odom -> base_link"""

    msg_type = "nav_msgs/msg/Odometry"

    def __init__(self):
        self.position = (0.0, 0.0, 0.0)
        self.orientation = (0.0, 0.0, 0.0, 1.0)
        self.linear = (0.0, 0.0, 0.0)
        self.angular = (0.0, 0.0, 0.0)
        self.has_pose = False

    def update(self, sample: PoseSample, twist: TwistSample = None):
        self.position = sample.translation
        self.orientation = sample.rotation
        self.has_pose = True
        if twist is not None:
            self.linear = twist.linear
            self.angular = twist.angular

    def build(self, stamp):
        if not self.has_pose:
            return None
        return {
            "header": _header(stamp, ODOM_FRAME_ID),
            "child_frame_id": BASE_FRAME_ID,
            "pose": {
                "pose": {
                    "position": _vector3(self.position),
                    "orientation": _orientation(self.orientation),
                },
                "covariance": list(ZERO_COVARIANCE),
            },
            "twist": {
                "twist": {
                    "linear": _vector3(self.linear),
                    "angular": _vector3(self.angular),
                },
                "covariance": list(ZERO_COVARIANCE),
            },
        }


Payload = Union[ImagePayload, CameraInfoPayload, TransformPayload, OdometryPayload]
PAYLOAD_TYPES = (ImagePayload, CameraInfoPayload, TransformPayload, OdometryPayload)


def publish_message(topic, payload, stamp):
    """
    Builds the rosbridge ``publish`` operation for one topic.

    Returns:
        dict or None: The operation, or None if the payload has nothing to send.

    Raises:
        TypeError: If ``payload`` is not one of the known builders.
    """
    if not isinstance(payload, PAYLOAD_TYPES):
        raise TypeError(f"Unhandled payload kind: {type(payload).__name__}")

    msg = payload.build(stamp)
    if msg is None:
        return None
    return {
        "op": "publish",
        "topic": topic,
        "type": payload.msg_type,
        "msg": msg,
        "queue_length": 1,
    }


def advertise_message(topic, msg_type):
    return {"op": "advertise", "topic": topic, "type": msg_type}
