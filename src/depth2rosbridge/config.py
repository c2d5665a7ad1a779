import json
from dataclasses import dataclass, field

from .serializer import ENCODINGS_SUPPORTED, JSON
from .transport import DEFAULT_PORT

# Declared topic order. Topics are advertised and published in this order
# unless a configuration lists them differently.
TOPIC_KEYS = (
    "depth",
    "confidence",
    "depth_info",
    "color",
    "color_info",
    "transform",
    "odometry",
)


@dataclass
class TopicConfig:
    enabled: bool = True
    encoding: str = JSON
    # Downsample factor; only read for the image topics ("depth", "color"),
    # whose camera-info topics follow the same factor.
    scale: float = 1.0

    def __post_init__(self):
        if self.encoding not in ENCODINGS_SUPPORTED:
            raise ValueError(f"Unsupported encoding '{self.encoding}'; expected one of {ENCODINGS_SUPPORTED}")
        self.scale = float(self.scale)
        if not 0.0 < self.scale <= 1.0:
            raise ValueError(f"Scale must be in (0, 1], got {self.scale}")


def default_topics():
    return {
        "depth": TopicConfig(),
        "confidence": TopicConfig(),
        "depth_info": TopicConfig(),
        "color": TopicConfig(scale=0.1),
        "color_info": TopicConfig(),
        "transform": TopicConfig(),
        "odometry": TopicConfig(),
    }


@dataclass
class BridgeConfig:
    """
    Settings the bridge is constructed with.

    Args:
        host (str): Host, ``host:port`` or WebSocket URL of the rosbridge server.
        port (int): Port used when ``host`` names none. Defaults to 9090.
        target_fps (float): Publish frequency in Hz, clamped to at least 1.
        verbosity (int): 0 errors only, 1 connection events and drops, 2 per-message detail.
        topic_prefix (str): Namespace every topic name starts with.
        topics (dict[str, TopicConfig]): Per-topic settings; key order is publish order.
    """

    host: str = "localhost"
    port: int = DEFAULT_PORT
    target_fps: float = 10
    verbosity: int = 1
    topic_prefix: str = "/arkit"
    topics: dict = field(default_factory=default_topics)

    def __post_init__(self):
        self.target_fps = max(1.0, float(self.target_fps))
        self.topic_prefix = "/" + self.topic_prefix.strip("/") if self.topic_prefix.strip("/") else ""

        unknown = [key for key in self.topics if key not in TOPIC_KEYS]
        if unknown:
            raise ValueError(f"Unknown topic keys {unknown}; expected a subset of {list(TOPIC_KEYS)}")

        defaults = default_topics()
        for key in TOPIC_KEYS:
            if key not in self.topics:
                self.topics[key] = defaults[key]

    def topic(self, key):
        return self.topics[key]

    @classmethod
    def from_dict(cls, data):
        """
        Builds a config from a plain mapping, e.g. parsed JSON.

        ``topics`` maps topic keys to partial TopicConfig fields; anything not
        given keeps its default. Keys listed come first, in the given order.
        """
        data = dict(data)
        defaults = default_topics()
        topics = {}
        for key, values in (data.pop("topics", None) or {}).items():
            if key not in defaults:
                raise ValueError(f"Unknown topic key '{key}'; expected one of {list(TOPIC_KEYS)}")
            merged = dict(vars(defaults[key]))
            merged.update(values or {})
            try:
                topics[key] = TopicConfig(**merged)
            except TypeError as e:
                raise ValueError(f"Invalid settings for topic '{key}': {e}") from e

        unknown = [key for key in data if key not in cls.__dataclass_fields__]
        if unknown:
            raise ValueError(f"Unknown configuration fields {unknown}")
        return cls(topics=topics, **data)


def load_config(path):
    """Reads a BridgeConfig from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return BridgeConfig.from_dict(json.load(f))
