"""Platform trajectory storage and time interpolation.

A `Trajectory` owns an ordered sequence of `PoseSample` records (for
example a smoothed best estimate of trajectory, SBET) and answers pose
queries at arbitrary times inside its coverage:

- position is interpolated linearly between the bracketing samples;
- attitude is interpolated by quaternion slerp, so yaw wraparound at
  ±180° is handled without special cases;
- covariances are blended with the same weight and grown by a
  Brownian-bridge term ``w (1 - w) dt Q`` for a configured random-walk
  density ``Q``, so uncertainty between sparse samples is not lost.

Queries outside the coverage raise `OutOfRange`.  Bounded
extrapolation can be enabled explicitly with `extrapolation_limit`;
it extends the end segment at constant rate and grows the covariance
by ``|dt| Q``.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.spatial.transform import Rotation, Slerp

from ..common.errors import OutOfRange
from ..utils.logging import get_logger
from .rotations import from_scipy, rotation_matrix, to_scipy

logger = get_logger(__name__)

REQUIRED_COLUMNS = ("time", "x", "y", "z", "roll", "pitch", "yaw")
POSITION_SIGMA_COLUMNS = ("sigma_x", "sigma_y", "sigma_z")
ATTITUDE_SIGMA_COLUMNS = ("sigma_roll", "sigma_pitch", "sigma_yaw")


def _readonly(array: Optional[np.ndarray], shape) -> Optional[np.ndarray]:
    if array is None:
        return None
    array = np.array(array, dtype=float)
    if array.shape != shape:
        raise ValueError(f"expected shape {shape}, got {array.shape}")
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class PoseSample:
    """Platform pose at one instant.

    Position is in the world (East-North-Up) frame; attitude is
    ``(roll, pitch, yaw)`` in radians with the Z-Y-X convention.
    """

    time: float
    position: np.ndarray
    attitude: np.ndarray
    position_covariance: Optional[np.ndarray] = None
    attitude_covariance: Optional[np.ndarray] = None

    def __post_init__(self):
        object.__setattr__(self, "time", float(self.time))
        object.__setattr__(self, "position", _readonly(self.position, (3,)))
        object.__setattr__(self, "attitude", _readonly(self.attitude, (3,)))
        object.__setattr__(self, "position_covariance", _readonly(self.position_covariance, (3, 3)))
        object.__setattr__(self, "attitude_covariance", _readonly(self.attitude_covariance, (3, 3)))

    @property
    def roll(self) -> float:
        return float(self.attitude[0])

    @property
    def pitch(self) -> float:
        return float(self.attitude[1])

    @property
    def yaw(self) -> float:
        return float(self.attitude[2])

    @property
    def rotation_matrix(self) -> np.ndarray:
        """Body to North-East-Down rotation."""
        return rotation_matrix(*self.attitude)


class Trajectory:
    """Time-ordered platform poses with interpolation.

    Parameters
    ----------
    samples : sequence of PoseSample
        Non-empty, strictly increasing in time.  Either every sample
        carries a given covariance block or none does.
    extrapolation_limit : float, optional
        Seconds beyond either end that may still be queried.  Zero
        (default) disables extrapolation.
    max_gap : float, optional
        Largest spacing between bracketing samples that may be
        interpolated across.  Larger gaps raise `OutOfRange`.
    position_random_walk : float, optional
        Position variance growth rate in m²/s.
    attitude_random_walk : float, optional
        Attitude variance growth rate in rad²/s.
    """

    def __init__(
        self,
        samples: Sequence[PoseSample],
        extrapolation_limit: float = 0.0,
        max_gap: Optional[float] = None,
        position_random_walk: float = 0.0,
        attitude_random_walk: float = 0.0,
    ):
        samples = list(samples)
        if not samples:
            raise ValueError("a trajectory needs at least one sample")
        if extrapolation_limit < 0.0:
            raise ValueError("extrapolation_limit must be non-negative")
        if max_gap is not None and max_gap <= 0.0:
            raise ValueError("max_gap must be positive")
        if position_random_walk < 0.0 or attitude_random_walk < 0.0:
            raise ValueError("random walk densities must be non-negative")

        self._samples = samples
        self.times = np.array([s.time for s in samples])
        self.positions = np.array([s.position for s in samples])
        attitudes = np.array([s.attitude for s in samples])
        if not (np.all(np.isfinite(self.times)) and np.all(np.isfinite(self.positions))
                and np.all(np.isfinite(attitudes))):
            raise ValueError("trajectory samples must be finite")
        steps = np.diff(self.times)
        if np.any(steps <= 0.0):
            bad = int(np.argmax(steps <= 0.0))
            raise ValueError(
                f"trajectory times must be strictly increasing "
                f"(sample {bad + 1} at {self.times[bad + 1]} follows {self.times[bad]})"
            )
        self.position_covariances = self._stack_covariances([s.position_covariance for s in samples], "position")
        self.attitude_covariances = self._stack_covariances([s.attitude_covariance for s in samples], "attitude")

        self.extrapolation_limit = float(extrapolation_limit)
        self.max_gap = max_gap
        self.position_random_walk = float(position_random_walk)
        self.attitude_random_walk = float(attitude_random_walk)

        self._rotations = to_scipy(attitudes)
        self._slerp = Slerp(self.times, self._rotations) if len(samples) > 1 else None

    @staticmethod
    def _stack_covariances(blocks: List[Optional[np.ndarray]], name: str) -> Optional[np.ndarray]:
        present = [b is not None for b in blocks]
        if not any(present):
            return None
        if not all(present):
            raise ValueError(f"either all or no samples must carry a {name} covariance")
        return np.array(blocks)

    @classmethod
    def from_arrays(
        cls,
        times,
        positions,
        attitudes,
        position_sigmas=None,
        attitude_sigmas=None,
        **kwargs,
    ) -> "Trajectory":
        """Build a trajectory from column arrays.

        Parameters
        ----------
        times : array_like, shape (N,)
        positions : array_like, shape (N, 3)
            World-frame positions.
        attitudes : array_like, shape (N, 3)
            Roll, pitch, yaw in radians.
        position_sigmas, attitude_sigmas : array_like, shape (N, 3), optional
            Per-axis standard deviations, turned into diagonal covariances.
        **kwargs
            Passed to the constructor.
        """
        times = np.asarray(times, dtype=float)
        positions = np.asarray(positions, dtype=float)
        attitudes = np.asarray(attitudes, dtype=float)
        n = len(times)
        if positions.shape != (n, 3) or attitudes.shape != (n, 3):
            raise ValueError("positions and attitudes must have shape (N, 3) matching times")
        pos_cov = cls._diagonal_covariances(position_sigmas, n)
        att_cov = cls._diagonal_covariances(attitude_sigmas, n)
        samples = [
            PoseSample(
                time=times[i],
                position=positions[i],
                attitude=attitudes[i],
                position_covariance=None if pos_cov is None else pos_cov[i],
                attitude_covariance=None if att_cov is None else att_cov[i],
            )
            for i in range(n)
        ]
        return cls(samples, **kwargs)

    @staticmethod
    def _diagonal_covariances(sigmas, n: int) -> Optional[np.ndarray]:
        if sigmas is None:
            return None
        sigmas = np.asarray(sigmas, dtype=float)
        if sigmas.shape != (n, 3):
            raise ValueError(f"sigmas must have shape ({n}, 3), got {sigmas.shape}")
        if np.any(sigmas < 0.0):
            raise ValueError("sigmas must be non-negative")
        covariances = np.zeros((n, 3, 3))
        idx = np.arange(3)
        covariances[:, idx, idx] = sigmas ** 2
        return covariances

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, degrees: bool = False, **kwargs) -> "Trajectory":
        """Build a trajectory from a table with named columns.

        Required columns are ``time, x, y, z, roll, pitch, yaw``.  The
        optional ``sigma_x, sigma_y, sigma_z`` and ``sigma_roll,
        sigma_pitch, sigma_yaw`` column groups supply covariances.
        """
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"trajectory table is missing columns: {', '.join(missing)}")
        df = df.sort_values("time")
        scale = np.pi / 180.0 if degrees else 1.0
        attitudes = df[["roll", "pitch", "yaw"]].to_numpy(dtype=float) * scale
        position_sigmas = None
        if set(POSITION_SIGMA_COLUMNS).issubset(df.columns):
            position_sigmas = df[list(POSITION_SIGMA_COLUMNS)].to_numpy(dtype=float)
        attitude_sigmas = None
        if set(ATTITUDE_SIGMA_COLUMNS).issubset(df.columns):
            attitude_sigmas = df[list(ATTITUDE_SIGMA_COLUMNS)].to_numpy(dtype=float) * scale
        return cls.from_arrays(
            df["time"].to_numpy(dtype=float),
            df[["x", "y", "z"]].to_numpy(dtype=float),
            attitudes,
            position_sigmas=position_sigmas,
            attitude_sigmas=attitude_sigmas,
            **kwargs,
        )

    @classmethod
    def from_csv(cls, path: Union[str, Path], degrees: bool = False, **kwargs) -> "Trajectory":
        """Read a trajectory from a CSV file with the columns of :meth:`from_dataframe`."""
        df = pd.read_csv(path)
        trajectory = cls.from_dataframe(df, degrees=degrees, **kwargs)
        logger.info("Loaded %d trajectory samples from %s", len(trajectory), path)
        return trajectory

    def to_dataframe(self) -> pd.DataFrame:
        """Table in the layout read by :meth:`from_dataframe`, angles in radians.

        Covariances are written as the square roots of their diagonals.
        """
        attitudes = np.array([s.attitude for s in self._samples])
        df = pd.DataFrame(np.column_stack([self.times, self.positions, attitudes]), columns=list(REQUIRED_COLUMNS))
        for columns, covariances in (
            (POSITION_SIGMA_COLUMNS, self.position_covariances),
            (ATTITUDE_SIGMA_COLUMNS, self.attitude_covariances),
        ):
            if covariances is not None:
                sigmas = np.sqrt(np.diagonal(covariances, axis1=1, axis2=2))
                for i, column in enumerate(columns):
                    df[column] = sigmas[:, i]
        return df

    def __len__(self) -> int:
        return len(self._samples)

    def __getitem__(self, index: int) -> PoseSample:
        return self._samples[index]

    def __iter__(self) -> Iterator[PoseSample]:
        return iter(self._samples)

    @property
    def start_time(self) -> float:
        return float(self.times[0])

    @property
    def end_time(self) -> float:
        return float(self.times[-1])

    def covers(self, time: float) -> bool:
        """Whether `time` can be queried without raising `OutOfRange`."""
        try:
            self._locate(time)
        except OutOfRange:
            return False
        return True

    def _locate(self, time: float) -> int:
        """Index of the sample at or before `time`, after range checks."""
        if not np.isfinite(time):
            raise OutOfRange(time, self.start_time, self.end_time, "time is not finite")
        if time < self.start_time - self.extrapolation_limit or time > self.end_time + self.extrapolation_limit:
            raise OutOfRange(time, self.start_time, self.end_time)
        index = int(np.searchsorted(self.times, time, side="right")) - 1
        if 0 <= index < len(self.times) - 1 and self.max_gap is not None:
            gap = self.times[index + 1] - self.times[index]
            if gap > self.max_gap and time != self.times[index]:
                raise OutOfRange(
                    time, self.start_time, self.end_time,
                    f"falls in a {gap:.3f} s gap larger than max_gap={self.max_gap}",
                )
        return index

    def interpolate(self, time: float) -> PoseSample:
        """Return the pose at `time`.

        At the exact time of a stored sample the stored sample itself is
        returned.

        Raises
        ------
        OutOfRange
            If `time` precedes the first or follows the last sample
            (beyond the extrapolation limit), or falls in a gap longer
            than `max_gap`.
        """
        time = float(time)
        index = self._locate(time)
        if 0 <= index < len(self.times) and self.times[index] == time:
            return self._samples[index]
        if index < 0 or index >= len(self.times) - 1:
            return self._extrapolate(time, index)

        t0, t1 = self.times[index], self.times[index + 1]
        dt = t1 - t0
        weight = (time - t0) / dt
        position = (1.0 - weight) * self.positions[index] + weight * self.positions[index + 1]
        attitude = from_scipy(self._slerp([time])[0])
        growth = weight * (1.0 - weight) * dt
        return PoseSample(
            time=time,
            position=position,
            attitude=attitude,
            position_covariance=self._blend(self.position_covariances, index, weight, growth * self.position_random_walk),
            attitude_covariance=self._blend(self.attitude_covariances, index, weight, growth * self.attitude_random_walk),
        )

    @staticmethod
    def _blend(covariances: Optional[np.ndarray], index: int, weight: float, growth: float) -> Optional[np.ndarray]:
        if covariances is None:
            return None
        return (1.0 - weight) * covariances[index] + weight * covariances[index + 1] + growth * np.eye(3)

    def _extrapolate(self, time: float, index: int) -> PoseSample:
        # index is -1 before the start and len-1 after the end
        end = 0 if index < 0 else len(self.times) - 1
        sample = self._samples[end]
        dt = time - sample.time
        if len(self.times) == 1:
            position = sample.position
            attitude = sample.attitude
        else:
            a, b = (0, 1) if end == 0 else (end - 1, end)
            span = self.times[b] - self.times[a]
            velocity = (self.positions[b] - self.positions[a]) / span
            rate = (self._rotations[a].inv() * self._rotations[b]).as_rotvec() / span
            position = sample.position + velocity * dt
            attitude = from_scipy(self._rotations[end] * Rotation.from_rotvec(rate * dt))
        growth = abs(dt)
        logger.debug("Extrapolating trajectory %.3f s beyond sample at %.6f", dt, sample.time)

        def grow(block: Optional[np.ndarray], density: float) -> Optional[np.ndarray]:
            if block is None:
                return None
            return block + growth * density * np.eye(3)

        return PoseSample(
            time=time,
            position=position,
            attitude=attitude,
            position_covariance=grow(sample.position_covariance, self.position_random_walk),
            attitude_covariance=grow(sample.attitude_covariance, self.attitude_random_walk),
        )
