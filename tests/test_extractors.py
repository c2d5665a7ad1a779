import numpy as np
import pytest

from conftest import make_frame
from depth2rosbridge.extractors import (
    color_to_rgb,
    extract_camera_info,
    extract_color,
    extract_confidence,
    extract_depth,
    scale_intrinsics,
    scaled_size,
    strip_alpha,
)
from depth2rosbridge.frame import Frame


class TestDepth:

    def test_raw_depth_is_tightly_packed(self):
        frame = make_frame(1.0)
        sample = extract_depth(frame)

        assert (sample.width, sample.height) == (256, 192)
        assert sample.step == 256 * 4
        assert sample.encoding == "32FC1"
        assert sample.data == frame.depth

    def test_downsample_256x192_by_a_tenth(self):
        sample = extract_depth(make_frame(1.0), scale=0.1)

        assert (sample.width, sample.height) == (25, 19)
        assert sample.step == 100
        assert len(sample.data) == 1900

        values = np.frombuffer(sample.data, dtype="<f4")
        assert np.all(np.isfinite(values))

    def test_downsample_keeps_constant_depth(self):
        depth = np.full((40, 60), 2.5, dtype="<f4")
        frame = Frame(timestamp=0.0, depth=depth.tobytes(), depth_width=60, depth_height=40)

        sample = extract_depth(frame, scale=0.5)

        assert (sample.width, sample.height) == (30, 20)
        assert np.allclose(np.frombuffer(sample.data, dtype="<f4"), 2.5)

    def test_missing_depth_is_empty(self):
        sample = extract_depth(Frame(timestamp=0.0))
        assert sample.is_empty
        assert sample.data == b""

    def test_short_buffer_is_empty(self):
        frame = Frame(timestamp=0.0, depth=b"\x00" * 10, depth_width=4, depth_height=4)
        assert extract_depth(frame).is_empty

    def test_scale_too_small_is_empty(self):
        frame = make_frame(1.0, depth_size=(8, 8))
        assert extract_depth(frame, scale=0.05).is_empty


@pytest.mark.parametrize("width, height, scale, expected", [
    (256, 192, 0.1, (25, 19)),
    (1920, 1440, 0.25, (480, 360)),
    (33, 17, 0.5, (16, 8)),
])
def test_scaled_size_floors(width, height, scale, expected):
    assert scaled_size(width, height, scale) == expected


class TestConfidence:

    def test_uses_reported_row_stride(self):
        width, height, stride = 5, 3, 8
        rows = [bytes([row] * width) + b"\xff" * (stride - width) for row in range(height)]
        frame = Frame(
            timestamp=0.0,
            confidence=b"".join(rows),
            confidence_width=width,
            confidence_height=height,
            confidence_row_bytes=stride,
        )

        sample = extract_confidence(frame)

        assert sample.step == stride
        assert len(sample.data) == stride * height
        assert sample.encoding == "mono8"
        assert (sample.width, sample.height) == (width, height)

    def test_unavailable_confidence_is_empty(self):
        sample = extract_confidence(make_frame(1.0, confidence=False))
        assert sample.is_empty
        assert (sample.width, sample.height) == (0, 0)


class TestColor:

    def test_strip_alpha_keeps_rgb_bytes(self):
        width, height = 7, 3
        rgba = bytes((i * 37) % 256 for i in range(width * height * 4))

        rgb = strip_alpha(rgba, width, height)

        assert len(rgb) == 3 * width * height
        for i in range(width * height):
            assert rgb[3 * i:3 * i + 3] == rgba[4 * i:4 * i + 3]

    def test_rgba_extraction_strips_alpha(self):
        frame = make_frame(1.0, color_size=(64, 48))
        sample = extract_color(frame)

        assert sample.encoding == "rgb8"
        assert (sample.width, sample.height) == (64, 48)
        assert sample.step == 64 * 3
        assert sample.data == strip_alpha(frame.color, 64, 48)

    def test_bgra_is_reordered(self):
        pixel = bytes([1, 2, 3, 255])
        rgb = color_to_rgb(pixel * 4, 2, 2, "bgra8")
        assert rgb.reshape(-1, 3)[0].tolist() == [3, 2, 1]

    def test_downsampled_color(self):
        frame = make_frame(1.0, color_size=(64, 48))
        sample = extract_color(frame, scale=0.25)

        assert (sample.width, sample.height) == (16, 12)
        assert sample.step == 16 * 3
        assert len(sample.data) == 16 * 12 * 3
        assert sample.data[:3] == bytes([10, 20, 30])

    def test_nv12_converts_to_rgb(self):
        width, height = 4, 4
        nv12 = bytes([128] * (width * height * 3 // 2))
        frame = Frame(timestamp=0.0, color=nv12, color_width=width, color_height=height, color_layout="nv12")

        sample = extract_color(frame)

        assert (sample.width, sample.height) == (width, height)
        assert len(sample.data) == width * height * 3

    def test_unknown_layout_is_empty(self):
        frame = make_frame(1.0)
        frame.color_layout = "yuyv"
        assert extract_color(frame).is_empty

    def test_missing_color_is_empty(self):
        frame = make_frame(1.0)
        frame.color = None
        assert extract_color(frame).is_empty


class TestIntrinsics:

    def test_scale_intrinsics_layout(self):
        K = np.array([[100.0, 0.0, 50.0], [0.0, 200.0, 40.0], [0.0, 0.0, 1.0]])
        k, r, p = scale_intrinsics(K, 0.5, 0.5)

        assert k == [50.0, 0.0, 25.0, 0.0, 100.0, 20.0, 0.0, 0.0, 1.0]
        assert r == [1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0]
        assert p == [50.0, 0.0, 25.0, 0.0, 0.0, 100.0, 20.0, 0.0, 0.0, 0.0, 1.0, 0.0]

    def test_color_camera_info_uses_downsample_factor(self):
        frame = make_frame(1.0, color_size=(1920, 1440))
        color = extract_color(frame, scale=0.1)

        info = extract_camera_info(frame, color)

        assert (info.width, info.height) == (192, 144)
        assert info.k[0] == pytest.approx(150.0)
        assert info.k[2] == pytest.approx(96.0)
        assert info.k[4] == pytest.approx(150.0)
        assert info.k[5] == pytest.approx(72.0)

    def test_depth_camera_info_scales_by_downsample_factor_only(self):
        frame = make_frame(1.0)
        depth = extract_depth(frame, scale=0.1)

        info = extract_camera_info(frame, depth)

        assert (info.width, info.height) == (25, 19)
        assert info.k[0] == pytest.approx(150.0)
        assert info.k[2] == pytest.approx(96.0)
        assert info.k[4] == pytest.approx(150.0)
        assert info.k[5] == pytest.approx(72.0)
        assert info.p[0] == pytest.approx(150.0)

    def test_unscaled_image_keeps_capture_intrinsics(self):
        frame = make_frame(1.0)

        info = extract_camera_info(frame, extract_depth(frame))

        assert info.k[0] == pytest.approx(1500.0)
        assert info.k[2] == pytest.approx(960.0)
        assert (info.width, info.height) == (256, 192)

    def test_empty_image_gives_empty_camera_info(self):
        frame = make_frame(1.0, confidence=False)
        info = extract_camera_info(frame, extract_confidence(frame))
        assert info.is_empty
