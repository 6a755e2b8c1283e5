"""Rotation conventions shared by the frame transforms and the lidar equation.

Conventions
-----------
- Euler angles are ``(roll, pitch, yaw)`` in radians, applied in the
  aerospace Z-Y-X sequence: ``R = Rz(yaw) @ Ry(pitch) @ Rx(roll)``.
- ``R`` is active: it maps a body-frame vector into the local
  North-East-Down frame, ``v_ned = R @ v_body``.  The same convention is
  used for the boresight, mapping sensor vectors into the body frame.
- The world frame is East-North-Up; ``NED_TO_ENU`` swaps the horizontal
  axes and flips the vertical.  It is its own inverse.
"""

from typing import Tuple

import numpy as np
from scipy.spatial.transform import Rotation

NED_TO_ENU = np.array([
    [0.0, 1.0, 0.0],
    [1.0, 0.0, 0.0],
    [0.0, 0.0, -1.0],
])


def _elementary(roll: float, pitch: float, yaw: float):
    cr, sr = np.cos(roll), np.sin(roll)
    cp, sp = np.cos(pitch), np.sin(pitch)
    cy, sy = np.cos(yaw), np.sin(yaw)
    rx = np.array([[1.0, 0.0, 0.0], [0.0, cr, -sr], [0.0, sr, cr]])
    ry = np.array([[cp, 0.0, sp], [0.0, 1.0, 0.0], [-sp, 0.0, cp]])
    rz = np.array([[cy, -sy, 0.0], [sy, cy, 0.0], [0.0, 0.0, 1.0]])
    drx = np.array([[0.0, 0.0, 0.0], [0.0, -sr, -cr], [0.0, cr, -sr]])
    dry = np.array([[-sp, 0.0, cp], [0.0, 0.0, 0.0], [-cp, 0.0, -sp]])
    drz = np.array([[-sy, -cy, 0.0], [cy, -sy, 0.0], [0.0, 0.0, 0.0]])
    return (rx, ry, rz), (drx, dry, drz)


def rotation_matrix(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Return the Z-Y-X rotation matrix for roll, pitch and yaw.

    Parameters
    ----------
    roll, pitch, yaw : float
        Angles in radians.

    Returns
    -------
    numpy.ndarray
        3×3 matrix ``R`` with ``v_ned = R @ v_body``.
    """
    (rx, ry, rz), _ = _elementary(roll, pitch, yaw)
    return rz @ ry @ rx


def rotation_matrix_derivatives(roll: float, pitch: float, yaw: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Partial derivatives of :func:`rotation_matrix` with respect to each angle.

    Returns
    -------
    tuple of numpy.ndarray
        ``(dR/droll, dR/dpitch, dR/dyaw)``, each 3×3.
    """
    (rx, ry, rz), (drx, dry, drz) = _elementary(roll, pitch, yaw)
    return rz @ ry @ drx, rz @ dry @ rx, drz @ ry @ rx


def rotation_matrix_to_euler(matrix: np.ndarray) -> np.ndarray:
    """Extract ``(roll, pitch, yaw)`` from a Z-Y-X rotation matrix.

    At gimbal lock (pitch of ±90°) roll is set to zero and the whole
    rotation about the vertical is assigned to yaw.
    """
    matrix = np.asarray(matrix, dtype=float)
    if matrix.shape != (3, 3):
        raise ValueError(f"expected a 3x3 matrix, got shape {matrix.shape}")
    sin_pitch = -matrix[2, 0]
    if abs(sin_pitch) >= 1.0:
        pitch = np.copysign(np.pi / 2.0, sin_pitch)
        yaw = np.arctan2(-matrix[0, 1], matrix[1, 1])
        roll = 0.0
    else:
        pitch = np.arcsin(sin_pitch)
        roll = np.arctan2(matrix[2, 1], matrix[2, 2])
        yaw = np.arctan2(matrix[1, 0], matrix[0, 0])
    return np.array([roll, pitch, yaw])


def to_scipy(attitude) -> Rotation:
    """Convert ``(roll, pitch, yaw)`` angles, single or stacked, to a scipy rotation."""
    attitude = np.asarray(attitude, dtype=float)
    return Rotation.from_euler("ZYX", attitude[..., ::-1])


def from_scipy(rotation: Rotation) -> np.ndarray:
    """Convert a scipy rotation back to ``(roll, pitch, yaw)`` angles."""
    return rotation.as_euler("ZYX")[..., ::-1]


def wrap_angle(angle):
    """Wrap angles to the interval ``[-pi, pi)``."""
    return (np.asarray(angle) + np.pi) % (2.0 * np.pi) - np.pi
