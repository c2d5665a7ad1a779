"""
Frame sources for running the bridge without live sensing hardware.

``NpzFrameSource`` replays frames recorded as one ``.npz`` file per tick with
the arrays:

    timestamp      ()          float, monotonic seconds
    depth          (H, W)      float32 metres
    confidence     (H, W)      uint8, optional
    color          (H, W, C)   uint8, or (H*3/2, W) for nv12; optional
    color_layout   ()          str, defaults to rgba8 for 4 channels, rgb8 for 3
    pose           (4, 4)      camera-to-world
    intrinsics     (3, 3)      K for the capture resolution
    resolution     (2,)        capture width, height
    angular_rate   (3,)        rad/s, optional

``synthetic_frames`` generates a camera moving on a circle.
"""

import math
import time
from pathlib import Path

import numpy as np

from .frame import Frame


def frame_from_arrays(arrays):
    """Builds a Frame (and the angular rate, or None) from a mapping of recorded arrays."""
    depth = np.asarray(arrays["depth"], dtype="<f4")
    depth_height, depth_width = depth.shape[:2]

    frame = Frame(
        timestamp=float(arrays["timestamp"]),
        depth=depth.tobytes(),
        depth_width=depth_width,
        depth_height=depth_height,
        pose=np.asarray(arrays["pose"], dtype=float),
        intrinsics=np.asarray(arrays["intrinsics"], dtype=float),
    )

    if "confidence" in arrays:
        confidence = np.ascontiguousarray(arrays["confidence"], dtype=np.uint8)
        frame.confidence = confidence.tobytes()
        frame.confidence_height, frame.confidence_width = confidence.shape[:2]
        frame.confidence_row_bytes = confidence.strides[0]

    if "color" in arrays:
        color = np.ascontiguousarray(arrays["color"], dtype=np.uint8)
        if "color_layout" in arrays:
            layout = str(arrays["color_layout"])
        else:
            layout = "rgba8" if color.ndim == 3 and color.shape[2] == 4 else "rgb8"
        frame.color = color.tobytes()
        frame.color_layout = layout
        if layout == "nv12":
            frame.color_height, frame.color_width = color.shape[0] * 2 // 3, color.shape[1]
        else:
            frame.color_height, frame.color_width = color.shape[:2]

    if "resolution" in arrays:
        width, height = (int(v) for v in np.asarray(arrays["resolution"]).reshape(2))
        frame.resolution = (width, height)
    elif frame.color:
        frame.resolution = (frame.color_width, frame.color_height)
    else:
        frame.resolution = (depth_width, depth_height)

    rate = arrays["angular_rate"] if "angular_rate" in arrays else None
    return frame, (None if rate is None else np.asarray(rate, dtype=float))


class NpzFrameSource:
    """Replays a directory of recorded ``.npz`` frames, sorted by file name."""

    def __init__(self, directory, loop=False, realtime=True, verbosity=1):
        """
        Args:
            directory (str | Path): Directory holding the ``.npz`` files.
            loop (bool, optional): Start over after the last frame. Defaults to False.
            realtime (bool, optional): Sleep between frames according to their timestamps. Defaults to True.
            verbosity (int, optional): The verbosity level. Defaults to 1.

        Raises:
            FileNotFoundError: If the directory holds no ``.npz`` files.
        """
        self.paths = sorted(Path(directory).glob("*.npz"))
        if not self.paths:
            raise FileNotFoundError(f"No .npz frames found in '{directory}'")
        self.loop = loop
        self.realtime = realtime
        self.verbosity = verbosity

    def __len__(self):
        return len(self.paths)

    def __iter__(self):
        # Timestamps keep increasing across loops so throttling and velocity stay sane.
        time_shift = 0.0
        while True:
            previous = None
            first = last = None
            for path in self.paths:
                with np.load(path, allow_pickle=False) as arrays:
                    frame, rate = frame_from_arrays(arrays)
                if first is None:
                    first = frame.timestamp
                last = frame.timestamp
                frame.timestamp += time_shift

                if self.realtime and previous is not None and frame.timestamp > previous:
                    time.sleep(frame.timestamp - previous)
                previous = frame.timestamp
                yield frame, rate

            if not self.loop:
                return
            if self.verbosity >= 1:
                print("🔁 Replaying frames from the start.")
            time_shift += (last - first) + 1.0 / 30.0


def synthetic_frames(count, fps=30.0, depth_size=(256, 192), color_size=(640, 480), radius=1.0, start=0.0,
                     realtime=False):
    """
    Yields ``count`` (Frame, angular_rate) pairs of a camera circling the origin.

    The camera moves in the source X/Z plane at one revolution per 10 s and
    turns about the source Y axis at the matching rate. With ``realtime`` the
    generator sleeps one frame period after each frame.
    """
    depth_width, depth_height = depth_size
    color_width, color_height = color_size
    omega = 2.0 * math.pi / 10.0
    fx = fy = 0.8 * color_width
    intrinsics = np.array([
        [fx, 0.0, color_width / 2.0],
        [0.0, fy, color_height / 2.0],
        [0.0, 0.0, 1.0],
    ])

    gradient = np.linspace(0.5, 5.0, depth_width, dtype=np.float32)
    depth = np.tile(gradient, (depth_height, 1))
    confidence = np.full((depth_height, depth_width), 2, dtype=np.uint8)
    color = np.zeros((color_height, color_width, 4), dtype=np.uint8)
    color[..., 0] = np.linspace(0, 255, color_width, dtype=np.uint8)
    color[..., 1] = np.linspace(0, 255, color_height, dtype=np.uint8)[:, None]
    color[..., 3] = 255

    for i in range(count):
        t = start + i / fps
        angle = omega * t
        pose = np.eye(4)
        pose[:3, :3] = np.array([
            [math.cos(angle), 0.0, math.sin(angle)],
            [0.0, 1.0, 0.0],
            [-math.sin(angle), 0.0, math.cos(angle)],
        ])
        pose[:3, 3] = [radius * math.sin(angle), 0.0, radius * math.cos(angle)]

        frame = Frame(
            timestamp=t,
            depth=depth.tobytes(),
            depth_width=depth_width,
            depth_height=depth_height,
            confidence=confidence.tobytes(),
            confidence_width=depth_width,
            confidence_height=depth_height,
            confidence_row_bytes=depth_width,
            color=color.tobytes(),
            color_width=color_width,
            color_height=color_height,
            color_layout="rgba8",
            pose=pose,
            intrinsics=intrinsics,
            resolution=(color_width, color_height),
        )
        yield frame, np.array([0.0, omega, 0.0])
        if realtime:
            time.sleep(1.0 / fps)
