"""
Conversion of poses and velocities from the sensing convention to ROS.

Source convention: right-handed, camera looking down -Z, X right, Y up.
Target convention (ROS REP 103): X forward, Y left, Z up.

Quaternions are (x, y, z, w) tuples, w being the scalar part.
"""

import math
import threading

import numpy as np

from .frame import PoseSample, TwistSample

# target = AXIS_PERMUTATION @ source, i.e. (x, y, z) -> (-z, -x, y).
AXIS_PERMUTATION = np.array([
    [0.0, 0.0, -1.0],
    [-1.0, 0.0, 0.0],
    [0.0, 1.0, 0.0],
])

# Calibration constant: 90 degrees about the normalised (1, 1, 1) axis, applied
# on the left of every orientation.
_CORRECTION_ANGLE = math.pi / 2.0
_CORRECTION_AXIS = 1.0 / math.sqrt(3.0)
CORRECTION_QUATERNION = (
    _CORRECTION_AXIS * math.sin(_CORRECTION_ANGLE / 2.0),
    _CORRECTION_AXIS * math.sin(_CORRECTION_ANGLE / 2.0),
    _CORRECTION_AXIS * math.sin(_CORRECTION_ANGLE / 2.0),
    math.cos(_CORRECTION_ANGLE / 2.0),
)


def permute(v):
    """Maps a source-convention 3-vector onto the target axes."""
    v = np.asarray(v, dtype=float).reshape(3)
    return AXIS_PERMUTATION @ v


def rotmat_to_quat(R):
    """
    Convert rotation matrix to quaternion (x, y, z, w).

    Uses Shepperd's method for numerical stability.
    """
    R = np.asarray(R, dtype=float)
    if R.shape != (3, 3):
        raise ValueError(f"Expected 3x3 matrix, got shape {R.shape}")

    trace = np.trace(R)

    if trace > 0:
        s = math.sqrt(trace + 1.0) * 2  # s = 4 * qw
        w = 0.25 * s
        x = (R[2, 1] - R[1, 2]) / s
        y = (R[0, 2] - R[2, 0]) / s
        z = (R[1, 0] - R[0, 1]) / s
    elif (R[0, 0] > R[1, 1]) and (R[0, 0] > R[2, 2]):
        s = math.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2]) * 2
        w = (R[2, 1] - R[1, 2]) / s
        x = 0.25 * s
        y = (R[0, 1] + R[1, 0]) / s
        z = (R[0, 2] + R[2, 0]) / s
    elif R[1, 1] > R[2, 2]:
        s = math.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2]) * 2
        w = (R[0, 2] - R[2, 0]) / s
        x = (R[0, 1] + R[1, 0]) / s
        y = 0.25 * s
        z = (R[1, 2] + R[2, 1]) / s
    else:
        s = math.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1]) * 2
        w = (R[1, 0] - R[0, 1]) / s
        x = (R[0, 2] + R[2, 0]) / s
        y = (R[1, 2] + R[2, 1]) / s
        z = 0.25 * s

    return (float(x), float(y), float(z), float(w))


def quat_multiply(a, b):
    """Hamilton product ``a * b`` of two (x, y, z, w) quaternions."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return (
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    )


def quat_normalize(q):
    norm = math.sqrt(sum(c * c for c in q))
    if norm < 1e-12:
        raise ValueError("Quaternion norm is too small (near zero)")
    return tuple(float(c / norm) for c in q)


def transform_pose(pose):
    """
    Converts a 4x4 camera-to-world pose into a target-convention PoseSample.

    The rotation block is re-expressed in the target axes (M R M^T), turned into
    a quaternion, corrected by CORRECTION_QUATERNION and normalised. An identity
    pose maps to zero translation and exactly the correction quaternion.
    """
    T = np.asarray(pose, dtype=float)
    if T.shape != (4, 4):
        raise ValueError(f"Expected 4x4 pose, got shape {T.shape}")

    translation = permute(T[:3, 3])
    rotation = AXIS_PERMUTATION @ T[:3, :3] @ AXIS_PERMUTATION.T
    q = quat_normalize(quat_multiply(CORRECTION_QUATERNION, rotmat_to_quat(rotation)))

    return PoseSample(
        translation=tuple(float(c) for c in translation),
        rotation=q,
    )


class VelocityState:
    """
    Finite-difference linear velocity over successive accepted frames.

    One instance lives for the whole process, across reconnects. The first
    sample, and any sample whose timestamp does not advance, yields zero
    velocity; the stored sample is replaced either way.
    """

    def __init__(self):
        self.last_position = None
        self.last_timestamp = None

    def update(self, position, timestamp):
        position = np.asarray(position, dtype=float).reshape(3)
        velocity = np.zeros(3)

        if self.last_position is not None:
            dt = timestamp - self.last_timestamp
            if dt > 0:
                velocity = permute(position - self.last_position) / dt

        self.last_position = position
        self.last_timestamp = timestamp
        return velocity


class MotionSampler:
    """Holds the latest angular-rate sample (rad/s, source axes) from an out-of-band stream."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rate = None

    def update(self, rate):
        rate = np.asarray(rate, dtype=float).reshape(3)
        with self._lock:
            self._rate = rate

    def latest(self):
        with self._lock:
            return None if self._rate is None else self._rate.copy()


def compute_twist(velocity_state, motion_sampler, pose, timestamp):
    """Linear velocity from pose deltas, angular velocity from the latest rate sample, both in target axes."""
    T = np.asarray(pose, dtype=float)
    linear = velocity_state.update(T[:3, 3], timestamp)

    rate = motion_sampler.latest()
    angular = np.zeros(3) if rate is None else permute(rate)

    return TwistSample(
        linear=tuple(float(c) for c in linear),
        angular=tuple(float(c) for c in angular),
    )
