"""Platform navigation: rotation conventions and trajectory storage."""

from .rotations import NED_TO_ENU, rotation_matrix, rotation_matrix_derivatives, rotation_matrix_to_euler
from .trajectory import PoseSample, Trajectory
from .sbet import load_sbet, read_sbet, read_smrmsg, sbet_to_trajectory

__all__ = [
    "NED_TO_ENU",
    "rotation_matrix",
    "rotation_matrix_derivatives",
    "rotation_matrix_to_euler",
    "PoseSample",
    "Trajectory",
    "load_sbet",
    "read_sbet",
    "read_smrmsg",
    "sbet_to_trajectory",
]
