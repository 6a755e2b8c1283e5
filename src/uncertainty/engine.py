"""Per-point TPU and body-frame engine.

`LidarEngine` ties a loaded trajectory and sensor configuration together
and exposes the operations a point cloud pipeline calls per return
(TPU, body-frame coordinates) and per batch (plane fits, normals and
boresight adjustment).  It holds no mutable state after construction,
so points can be processed in any order.
"""

from dataclasses import dataclass
from enum import Flag, auto
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

from ..common.errors import LidarTpuError
from ..common.point import PointMeasurement
from ..common.sensor import SensorConfig
from ..mapping.boresight import AdjustmentParameters, AdjustmentResult, BoresightAdjuster
from ..mapping.frames import BodyFrameResult, FrameTransformer
from ..mapping.plane import Plane, estimate_normals, fit_plane
from ..navigation.sbet import load_sbet
from ..navigation.trajectory import PoseSample, Trajectory
from ..utils.logging import get_logger
from .measurement import LidarMeasurement
from .propagation import TpuResult, propagate

logger = get_logger(__name__)

ENGINE_VERSION = "0.1.0"

TPU_COLUMNS = ("SigmaX", "SigmaY", "SigmaHorizontal", "SigmaVertical", "SigmaMagnitude", "IncidenceAngle")
BODY_FRAME_COLUMNS = ("BodyFrameX", "BodyFrameY", "BodyFrameZ", "Roll", "Pitch", "Yaw")


class Output(Flag):
    """Per-point results to compute."""

    TPU = auto()
    BODY_FRAME = auto()
    ALL = TPU | BODY_FRAME


@dataclass(frozen=True)
class PointResult:
    tpu: Optional[TpuResult] = None
    body_frame: Optional[BodyFrameResult] = None

    def to_dict(self) -> Dict[str, float]:
        values: Dict[str, float] = {}
        if self.tpu is not None:
            values.update(self.tpu.to_dict())
        if self.body_frame is not None:
            values.update(self.body_frame.to_dict())
        return values


@dataclass(frozen=True)
class PointOutcome:
    """Result or error for one point of a batch."""

    index: int
    result: Optional[PointResult] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class LidarEngine:
    """Uncertainty and body-frame computations for one flight.

    Parameters
    ----------
    trajectory : Trajectory
        Loaded, validated platform trajectory.
    config : SensorConfig
        Scanner configuration.
    outputs : Output, optional
        Results computed by :meth:`process` and :meth:`process_batch`.
    """

    version = ENGINE_VERSION

    def __init__(self, trajectory: Trajectory, config: SensorConfig, outputs: Output = Output.ALL):
        if not outputs:
            raise ValueError("at least one output must be requested")
        self.trajectory = trajectory
        self.config = config
        self.outputs = outputs
        self.transformer = FrameTransformer(config)

    @classmethod
    def from_paths(
        cls,
        trajectory_path: Union[str, Path],
        config_path: Union[str, Path],
        smrmsg_path: Optional[Union[str, Path]] = None,
        outputs: Output = Output.ALL,
        **kwargs,
    ) -> "LidarEngine":
        """Load a configuration and a trajectory (SBET, or CSV by suffix).

        Extra keyword arguments go to the trajectory constructor.
        """
        config = SensorConfig.from_path(config_path)
        if Path(trajectory_path).suffix.lower() == ".csv":
            trajectory = Trajectory.from_csv(trajectory_path, **kwargs)
        else:
            trajectory = load_sbet(trajectory_path, zone=config.utm_zone, smrmsg_path=smrmsg_path, **kwargs)
        return cls(trajectory, config, outputs)

    def pose(self, gps_time: float) -> PoseSample:
        """Platform pose for a point GPS time, after the configured time offset."""
        return self.trajectory.interpolate(gps_time + self.config.time_offset)

    def measurement(self, point: PointMeasurement) -> LidarMeasurement:
        return LidarMeasurement.from_point(point, self.pose(point.gps_time), self.config)

    def tpu(self, point: PointMeasurement) -> TpuResult:
        """Total propagated uncertainty of one point.

        Raises
        ------
        OutOfRange
            If the point time is outside the trajectory.
        MissingInput
            If an uncertainty source is missing.
        SingularJacobian
            If the geometry is degenerate.
        """
        pose = self.pose(point.gps_time)
        return propagate(point, pose, self.config)

    def body_frame(self, point: PointMeasurement) -> BodyFrameResult:
        """Point coordinates in the platform body frame at its measurement time."""
        return self.transformer.to_body_frame(point.position, self.pose(point.gps_time))

    def process(self, point: PointMeasurement) -> PointResult:
        """Compute the requested outputs for one point."""
        pose = self.pose(point.gps_time)
        tpu = body_frame = None
        if Output.TPU in self.outputs:
            tpu = propagate(point, pose, self.config)
        if Output.BODY_FRAME in self.outputs:
            body_frame = self.transformer.to_body_frame(point.position, pose)
        return PointResult(tpu=tpu, body_frame=body_frame)

    def process_batch(self, points: Iterable[PointMeasurement], show_progress: bool = False) -> List[PointOutcome]:
        """Process many points; a failing point does not stop the batch.

        Each outcome carries either the result or the error raised for
        that point.
        """
        outcomes = []
        failures = 0
        for index, point in enumerate(tqdm(points, desc="Points", disable=not show_progress)):
            try:
                outcomes.append(PointOutcome(index, result=self.process(point)))
            except (LidarTpuError, ValueError) as error:
                failures += 1
                logger.warning("Point %d (time %.6f) skipped: %s", index, point.gps_time, error)
                outcomes.append(PointOutcome(index, error=error))
        logger.info("Processed %d points, %d failed", len(outcomes), failures)
        return outcomes

    def to_dataframe(self, outcomes: Sequence[PointOutcome]) -> pd.DataFrame:
        """Named per-point attributes, one row per outcome.

        Failed points get NaN attributes and their error message in the
        ``Error`` column.
        """
        columns: List[str] = []
        if Output.TPU in self.outputs:
            columns.extend(TPU_COLUMNS)
        if Output.BODY_FRAME in self.outputs:
            columns.extend(BODY_FRAME_COLUMNS)
        rows = []
        errors = []
        for outcome in outcomes:
            row = dict.fromkeys(columns, np.nan)
            if outcome.ok:
                row.update(outcome.result.to_dict())
            rows.append(row)
            errors.append(None if outcome.ok else str(outcome.error))
        index = pd.Index([o.index for o in outcomes], name="point")
        df = pd.DataFrame(rows, columns=columns, index=index, dtype=float)
        # object dtype keeps None for successful points
        df["Error"] = pd.Series(errors, index=index, dtype=object)
        return df

    def fit_plane(self, points: Sequence[PointMeasurement], frame: str = "body") -> Plane:
        """Best-fit plane through points in the body or world frame.

        In the body frame each point is expressed at its own measurement
        time and the normal points away from the platform.  In the world
        frame the normal points away from the mean scanner position.
        """
        if frame == "body":
            coordinates = np.array([self.body_frame(p).position for p in points])
            return fit_plane(coordinates)
        if frame == "world":
            coordinates = np.array([p.position for p in points])
            origins = np.array([self.transformer.sensor_origin(self.pose(p.gps_time)) for p in points])
            return fit_plane(coordinates, viewpoint=origins.mean(axis=0) if len(origins) else None)
        raise ValueError(f"frame must be 'body' or 'world', got {frame!r}")

    def estimate_normals(self, points: Sequence[PointMeasurement], k: int = 10) -> np.ndarray:
        """World-frame normals from the k nearest neighbours, pointing away from the scanner."""
        coordinates = np.array([p.position for p in points])
        origins = np.array([self.transformer.sensor_origin(self.pose(p.gps_time)) for p in points])
        return estimate_normals(coordinates, k=k, viewpoints=origins)

    def estimate_boresight(
        self,
        patches: Sequence[Sequence[PointMeasurement]],
        parameters: AdjustmentParameters = AdjustmentParameters.BORESIGHT,
        **kwargs,
    ) -> AdjustmentResult:
        """Estimate calibration corrections from returns on planar patches.

        Extra keyword arguments configure the :class:`BoresightAdjuster`.
        """
        paired = [[(point, self.pose(point.gps_time)) for point in patch] for patch in patches]
        return BoresightAdjuster(self.config, parameters=parameters, **kwargs).adjust(paired)
