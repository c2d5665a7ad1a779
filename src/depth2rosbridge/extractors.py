"""
Turns the raw buffers of a Frame into topic-ready image and camera-info samples.

Every extractor is total: a missing, short or otherwise unusable buffer yields
an empty sample with zero dimensions instead of raising, and the payload
builders skip empty samples for that tick.
"""

import math

import cv2
import numpy as np

from .frame import CameraInfoSample, ImageSample

DEPTH_DTYPE = np.dtype("<f4")

DEPTH_FRAME_ID = "camera_depth_frame"
COLOR_FRAME_ID = "camera_color_frame"

# Native color layouts and their bytes per pixel. nv12 is the biplanar 4:2:0
# layout most camera pipelines hand out; it has no fixed per-pixel size.
COLOR_LAYOUTS = {
    "rgba8": 4,
    "bgra8": 4,
    "rgb8": 3,
    "bgr8": 3,
    "nv12": None,
}


def scaled_size(width, height, scale):
    """Output size of a uniform downsample by ``scale`` (floored)."""
    return int(math.floor(width * scale)), int(math.floor(height * scale))


def _resize(pixels, scale):
    new_width, new_height = scaled_size(pixels.shape[1], pixels.shape[0], scale)
    if new_width <= 0 or new_height <= 0:
        return None
    interpolation = cv2.INTER_AREA if scale < 1.0 else cv2.INTER_LINEAR
    return cv2.resize(pixels, (new_width, new_height), interpolation=interpolation)


def extract_depth(frame, scale=1.0, frame_id=DEPTH_FRAME_ID):
    """
    Extracts the depth map as a tightly packed single-channel float32 image.

    Args:
        frame (Frame): The source frame.
        scale (float, optional): Uniform downsample factor in (0, 1]. Defaults to 1.0 (raw).
        frame_id (str, optional): Header frame id for the image.

    Returns:
        ImageSample: ``32FC1`` image with ``step == width * 4``, or an empty sample.
    """
    width, height = frame.depth_width, frame.depth_height
    count = width * height
    if not frame.depth or width <= 0 or height <= 0 or len(frame.depth) < count * DEPTH_DTYPE.itemsize:
        return ImageSample.empty("32FC1", frame_id)

    if scale >= 1.0:
        data = bytes(frame.depth[:count * DEPTH_DTYPE.itemsize])
        out_width, out_height = width, height
    else:
        depth = np.frombuffer(frame.depth, dtype=DEPTH_DTYPE, count=count).reshape(height, width)
        resized = _resize(depth.astype(np.float32), scale)
        if resized is None:
            return ImageSample.empty("32FC1", frame_id)
        out_height, out_width = resized.shape[:2]
        data = np.ascontiguousarray(resized, dtype=DEPTH_DTYPE).tobytes()

    return ImageSample(
        data=data,
        width=out_width,
        height=out_height,
        step=out_width * DEPTH_DTYPE.itemsize,
        encoding="32FC1",
        frame_id=frame_id,
        scale=min(scale, 1.0),
    )


def extract_confidence(frame, frame_id=DEPTH_FRAME_ID):
    """
    Extracts the confidence map unchanged, one byte per pixel.

    Rows may be padded by the producer, so the image keeps the reported row
    stride as its step rather than ``width``.
    """
    width, height = frame.confidence_width, frame.confidence_height
    if frame.confidence is None or width <= 0 or height <= 0:
        return ImageSample.empty("mono8", frame_id)

    row_bytes = frame.confidence_row_bytes or width
    total = row_bytes * height
    if row_bytes < width or len(frame.confidence) < total:
        return ImageSample.empty("mono8", frame_id)

    return ImageSample(
        data=bytes(frame.confidence[:total]),
        width=width,
        height=height,
        step=row_bytes,
        encoding="mono8",
        frame_id=frame_id,
    )


def strip_alpha(rgba, width, height):
    """Drops every fourth byte of a packed 4-channel buffer, keeping channel order."""
    pixels = np.frombuffer(rgba, dtype=np.uint8, count=width * height * 4).reshape(height * width, 4)
    return np.ascontiguousarray(pixels[:, :3]).tobytes()


def color_to_rgb(buffer, width, height, layout):
    """Converts a native color buffer to an ``(height, width, 3)`` RGB array, or None."""
    if layout not in COLOR_LAYOUTS:
        return None

    if layout == "nv12":
        if width % 2 or height % 2 or len(buffer) < width * height * 3 // 2:
            return None
        yuv = np.frombuffer(buffer, dtype=np.uint8, count=width * height * 3 // 2)
        return cv2.cvtColor(yuv.reshape(height * 3 // 2, width), cv2.COLOR_YUV2RGB_NV12)

    channels = COLOR_LAYOUTS[layout]
    if len(buffer) < width * height * channels:
        return None
    pixels = np.frombuffer(buffer, dtype=np.uint8, count=width * height * channels)
    pixels = pixels.reshape(height, width, channels)

    if layout == "rgba8":
        return pixels[:, :, :3]
    if layout == "bgra8":
        return pixels[:, :, 2::-1]
    if layout == "bgr8":
        return pixels[:, :, ::-1]
    return pixels


def extract_color(frame, scale=1.0, frame_id=COLOR_FRAME_ID):
    """
    Extracts the color image as tightly packed ``rgb8``, optionally downsampled.

    Returns:
        ImageSample: ``rgb8`` image with ``step == width * 3``, or an empty sample.
    """
    width, height = frame.color_width, frame.color_height
    if not frame.color or width <= 0 or height <= 0:
        return ImageSample.empty("rgb8", frame_id)

    rgb = color_to_rgb(frame.color, width, height, frame.color_layout)
    if rgb is None:
        return ImageSample.empty("rgb8", frame_id)

    if scale < 1.0:
        rgb = _resize(np.ascontiguousarray(rgb), scale)
        if rgb is None:
            return ImageSample.empty("rgb8", frame_id)

    out_height, out_width = rgb.shape[:2]
    return ImageSample(
        data=np.ascontiguousarray(rgb, dtype=np.uint8).tobytes(),
        width=out_width,
        height=out_height,
        step=out_width * 3,
        encoding="rgb8",
        frame_id=frame_id,
        scale=min(scale, 1.0),
    )


def scale_intrinsics(intrinsics, scale_x, scale_y):
    """
    Builds the K, R and P matrices (flattened, row-major) for scaled intrinsics.

    ``intrinsics`` is a 3x3 row-major K. fx and cx scale by ``scale_x``, fy and
    cy by ``scale_y``. R is identity and P is K with a zero fourth column.
    """
    K = np.asarray(intrinsics, dtype=float)
    fx = float(K[0, 0]) * scale_x
    fy = float(K[1, 1]) * scale_y
    cx = float(K[0, 2]) * scale_x
    cy = float(K[1, 2]) * scale_y

    k = [fx, 0.0, cx,
         0.0, fy, cy,
         0.0, 0.0, 1.0]
    r = [1.0, 0.0, 0.0,
         0.0, 1.0, 0.0,
         0.0, 0.0, 1.0]
    p = [fx, 0.0, cx, 0.0,
         0.0, fy, cy, 0.0,
         0.0, 0.0, 1.0, 0.0]
    return k, r, p


def extract_camera_info(frame, image):
    """
    Builds the camera info paired with an extracted image.

    fx, fy, cx and cy are scaled by the image's downsample factor, the same
    factor the paired image was resized by.
    """
    if image.is_empty:
        return CameraInfoSample(width=0, height=0, k=[], r=[], p=[], frame_id=image.frame_id)

    k, r, p = scale_intrinsics(frame.intrinsics, image.scale, image.scale)
    return CameraInfoSample(
        width=image.width,
        height=image.height,
        k=k,
        r=r,
        p=p,
        frame_id=image.frame_id,
    )
