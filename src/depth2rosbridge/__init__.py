from .bridge import DepthBridge
from .config import BridgeConfig, TopicConfig, load_config
from .frame import Frame
from .transport import ConnectionState, RosbridgeClient

__all__ = [
    "BridgeConfig",
    "ConnectionState",
    "DepthBridge",
    "Frame",
    "RosbridgeClient",
    "TopicConfig",
    "load_config",
]
