"""Records handed from the sensing side to the bridge, and the samples the
extractors produce from them."""

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np


@dataclass
class Frame:
    """
    One sensing tick.

    Buffers are raw bytes exactly as the sensing side produced them. The pose is
    a 4x4 row-major camera-to-world transform with the translation in
    ``pose[:3, 3]``; the intrinsics are a 3x3 row-major K matrix valid for
    ``resolution`` (capture width, height).
    """

    timestamp: float
    depth: bytes = b""
    depth_width: int = 0
    depth_height: int = 0
    confidence: Optional[bytes] = None
    confidence_width: int = 0
    confidence_height: int = 0
    confidence_row_bytes: int = 0
    color: Optional[bytes] = None
    color_width: int = 0
    color_height: int = 0
    color_layout: str = "rgba8"
    pose: np.ndarray = field(default_factory=lambda: np.eye(4))
    intrinsics: np.ndarray = field(default_factory=lambda: np.eye(3))
    resolution: Tuple[int, int] = (0, 0)


@dataclass
class ImageSample:
    data: bytes
    width: int
    height: int
    step: int
    encoding: str
    frame_id: str
    # Downsample factor applied, so the paired camera info scales intrinsics
    # the same way.
    scale: float = 1.0

    @property
    def is_empty(self):
        return self.width <= 0 or self.height <= 0

    @classmethod
    def empty(cls, encoding, frame_id):
        return cls(data=b"", width=0, height=0, step=0, encoding=encoding, frame_id=frame_id)


@dataclass
class CameraInfoSample:
    width: int
    height: int
    k: list
    r: list
    p: list
    frame_id: str

    @property
    def is_empty(self):
        return self.width <= 0 or self.height <= 0


@dataclass
class PoseSample:
    translation: Tuple[float, float, float]
    rotation: Tuple[float, float, float, float]  # x, y, z, w


@dataclass
class TwistSample:
    linear: Tuple[float, float, float]
    angular: Tuple[float, float, float]
