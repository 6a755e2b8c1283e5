"""Readers for Applanix SBET trajectories and SMRMSG accuracy files.

An SBET ("smoothed best estimate of trajectory") file is a flat array
of little-endian float64 records with 17 fields each.  Positions are
geodetic (radians, metres) and attitude is roll, pitch and true
heading in radians.  The companion SMRMSG file holds one record of 10
float64 per epoch with position and velocity standard deviations in
metres and attitude standard deviations in arc minutes, usually at a
lower rate than the trajectory itself.
"""

from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from ..utils.geodesy import geodetic_to_utm, grid_convergence, utm_zone
from ..utils.logging import get_logger
from .trajectory import Trajectory

logger = get_logger(__name__)

SBET_FIELDS = (
    "time",
    "latitude",
    "longitude",
    "altitude",
    "x_velocity",
    "y_velocity",
    "z_velocity",
    "roll",
    "pitch",
    "heading",
    "wander_angle",
    "x_acceleration",
    "y_acceleration",
    "z_acceleration",
    "x_angular_rate",
    "y_angular_rate",
    "z_angular_rate",
)

SMRMSG_FIELDS = (
    "time",
    "north_sd",
    "east_sd",
    "down_sd",
    "v_north_sd",
    "v_east_sd",
    "v_down_sd",
    "roll_sd",
    "pitch_sd",
    "heading_sd",
)

ARCMINUTE = np.pi / (180.0 * 60.0)


def _read_records(path: Union[str, Path], fields) -> pd.DataFrame:
    path = Path(path)
    raw = path.read_bytes()
    record_size = 8 * len(fields)
    if len(raw) % record_size:
        raise ValueError(
            f"{path} is {len(raw)} bytes, not a whole number of {record_size}-byte records"
        )
    data = np.frombuffer(raw, dtype="<f8").reshape(-1, len(fields))
    return pd.DataFrame(data, columns=list(fields))


def read_sbet(path: Union[str, Path]) -> pd.DataFrame:
    """Read an SBET file into a DataFrame with one column per field."""
    df = _read_records(path, SBET_FIELDS)
    logger.info("Read %d SBET records from %s", len(df), path)
    return df


def read_smrmsg(path: Union[str, Path]) -> pd.DataFrame:
    """Read an SMRMSG file.  Attitude columns are converted to radians."""
    df = _read_records(path, SMRMSG_FIELDS)
    for column in ("roll_sd", "pitch_sd", "heading_sd"):
        df[column] = df[column] * ARCMINUTE
    logger.info("Read %d SMRMSG records from %s", len(df), path)
    return df


def sbet_to_trajectory(
    sbet: pd.DataFrame,
    zone: Optional[int] = None,
    accuracy: Optional[pd.DataFrame] = None,
    **kwargs,
) -> Trajectory:
    """Project an SBET table into a UTM world-frame trajectory.

    Parameters
    ----------
    sbet : pandas.DataFrame
        Table as returned by :func:`read_sbet`.
    zone : int, optional
        UTM zone.  Defaults to the zone of the first sample.
    accuracy : pandas.DataFrame, optional
        Table as returned by :func:`read_smrmsg`.  Its standard
        deviations are interpolated onto the SBET epochs and become the
        sample covariances.
    **kwargs
        Passed to :class:`Trajectory`.

    Returns
    -------
    Trajectory
        Positions are easting, northing and ellipsoidal height.  Yaw is
        the heading relative to grid north.
    """
    if sbet.empty:
        raise ValueError("SBET table is empty")
    longitude = sbet["longitude"].to_numpy()
    latitude = sbet["latitude"].to_numpy()
    if zone is None:
        zone = utm_zone(float(longitude[0]))
    easting, northing, height = geodetic_to_utm(longitude, latitude, sbet["altitude"].to_numpy(), zone)
    yaw = sbet["heading"].to_numpy() - grid_convergence(longitude, latitude, zone)
    times = sbet["time"].to_numpy()

    position_sigmas = attitude_sigmas = None
    if accuracy is not None:
        if accuracy.empty:
            raise ValueError("SMRMSG table is empty")
        at = accuracy["time"].to_numpy()

        def resample(column: str) -> np.ndarray:
            return np.interp(times, at, accuracy[column].to_numpy())

        position_sigmas = np.column_stack([resample("east_sd"), resample("north_sd"), resample("down_sd")])
        attitude_sigmas = np.column_stack([resample("roll_sd"), resample("pitch_sd"), resample("heading_sd")])

    return Trajectory.from_arrays(
        times,
        np.column_stack([easting, northing, height]),
        np.column_stack([sbet["roll"].to_numpy(), sbet["pitch"].to_numpy(), yaw]),
        position_sigmas=position_sigmas,
        attitude_sigmas=attitude_sigmas,
        **kwargs,
    )


def load_sbet(
    path: Union[str, Path],
    zone: Optional[int] = None,
    smrmsg_path: Optional[Union[str, Path]] = None,
    **kwargs,
) -> Trajectory:
    """Read an SBET file (and optional SMRMSG file) into a :class:`Trajectory`."""
    accuracy = read_smrmsg(smrmsg_path) if smrmsg_path is not None else None
    trajectory = sbet_to_trajectory(read_sbet(path), zone=zone, accuracy=accuracy, **kwargs)
    logger.info(
        "Trajectory covers %.3f to %.3f s (%d samples)",
        trajectory.start_time,
        trajectory.end_time,
        len(trajectory),
    )
    return trajectory
