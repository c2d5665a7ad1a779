import numpy as np
import pytest

from conftest import RecordingTransport
from depth2rosbridge import cli
from depth2rosbridge.sources import NpzFrameSource, frame_from_arrays, synthetic_frames


def write_frames(directory, count=3):
    for i in range(count):
        np.savez(
            directory / f"frame_{i:04d}.npz",
            timestamp=np.float64(10.0 + i * 0.2),
            depth=np.full((6, 8), 1.5, dtype=np.float32),
            confidence=np.full((6, 8), 2, dtype=np.uint8),
            color=np.zeros((12, 16, 4), dtype=np.uint8),
            pose=np.eye(4),
            intrinsics=np.eye(3),
            resolution=np.array([16, 12]),
            angular_rate=np.array([0.0, 0.1, 0.0]),
        )


def test_frame_from_arrays():
    frame, rate = frame_from_arrays({
        "timestamp": 3.0,
        "depth": np.zeros((2, 3), dtype=np.float32),
        "color": np.zeros((4, 6, 3), dtype=np.uint8),
        "pose": np.eye(4),
        "intrinsics": np.eye(3),
    })

    assert (frame.depth_width, frame.depth_height) == (3, 2)
    assert len(frame.depth) == 24
    assert frame.color_layout == "rgb8"
    assert frame.resolution == (6, 4)
    assert frame.confidence is None
    assert rate is None


def test_npz_source_replays_in_order(tmp_path):
    write_frames(tmp_path)
    source = NpzFrameSource(tmp_path, realtime=False, verbosity=0)

    frames = list(source)

    assert len(source) == 3
    assert [frame.timestamp for frame, _ in frames] == pytest.approx([10.0, 10.2, 10.4])
    frame, rate = frames[0]
    assert frame.color_layout == "rgba8"
    assert frame.confidence_row_bytes == 8
    assert rate.tolist() == [0.0, 0.1, 0.0]


def test_npz_source_loop_keeps_time_increasing(tmp_path):
    write_frames(tmp_path, count=2)
    source = NpzFrameSource(tmp_path, loop=True, realtime=False, verbosity=0)

    timestamps = []
    for frame, _ in source:
        timestamps.append(frame.timestamp)
        if len(timestamps) == 5:
            break

    assert all(later > earlier for earlier, later in zip(timestamps, timestamps[1:]))


def test_npz_source_requires_frames(tmp_path):
    with pytest.raises(FileNotFoundError):
        NpzFrameSource(tmp_path)


def test_synthetic_frames_move():
    frames = list(synthetic_frames(3, fps=10.0, color_size=(32, 24)))

    assert len(frames) == 3
    first, second = frames[0][0], frames[1][0]
    assert second.timestamp == pytest.approx(0.1)
    assert not np.allclose(first.pose, second.pose)
    assert first.resolution == (32, 24)


def test_cli_config_from_args():
    args = cli.build_parser().parse_args([
        "--host", "10.1.1.1", "--fps", "0.5", "--disable", "confidence",
        "--bson", "color", "--scale", "depth=0.5", "-vv", "--synthetic", "1",
    ])

    config = cli.config_from_args(args)

    assert config.host == "10.1.1.1"
    assert config.target_fps == 1.0
    assert config.verbosity == 3
    assert config.topic("confidence").enabled is False
    assert config.topic("color").encoding == "bson"
    assert config.topic("depth").scale == 0.5


def test_cli_rejects_malformed_host(capsys):
    assert cli.main(["--host", "not a host", "--synthetic", "1", "-q"]) == 2
    assert "Malformed host" in capsys.readouterr().out


def test_cli_runs_synthetic_frames(monkeypatch):
    transport = RecordingTransport(connected=False)
    real_bridge = cli.DepthBridge
    monkeypatch.setattr(cli, "DepthBridge", lambda config: real_bridge(config, transport=transport))
    monkeypatch.setattr(cli, "synthetic_frames", lambda count, realtime: synthetic_frames(count, color_size=(32, 24)))

    assert cli.main(["--synthetic", "10", "-q"]) == 0
    assert transport.advertised
    assert transport.published
    assert transport.closed
