"""Boresight and lever arm estimation from overlapping planar patches.

Points on a planar surface seen from several passes only agree when the
boresight and lever arm are right.  This module estimates corrections
to those calibration parameters by minimising point-to-plane distances:

- every point keeps its sensor-frame vector, recovered once with the
  nominal configuration;
- for a trial set of parameters the points are georeferenced again,
  each patch gets a fresh best-fit plane and the residuals are the
  signed distances to that plane;
- the plane parameters are projected out of the Jacobian (variable
  projection), so only parameter changes a plane refit cannot absorb
  count;
- the parameters are updated with Levenberg-Marquardt steps and gain
  ratio damping.

Patches should cover surfaces of several orientations and be seen from
opposite and laterally offset flight lines, otherwise some parameters
are unobservable and `SingularJacobian` is raised.
"""

import math
from dataclasses import dataclass, field
from enum import Flag, auto
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..common.errors import DegeneratePlane, DidNotConverge, SingularJacobian
from ..common.point import PointMeasurement
from ..common.sensor import SensorConfig
from ..navigation.rotations import rotation_matrix, rotation_matrix_derivatives
from ..navigation.trajectory import PoseSample
from ..utils.logging import get_logger
from .frames import FrameTransformer, body_to_world_matrix
from .plane import fit_plane

logger = get_logger(__name__)


class AdjustmentParameters(Flag):
    """Calibration parameters to estimate."""

    BORESIGHT = auto()
    LEVER_ARM = auto()
    ALL = BORESIGHT | LEVER_ARM


PARAMETER_NAMES = {
    AdjustmentParameters.BORESIGHT: ("boresight_roll", "boresight_pitch", "boresight_yaw"),
    AdjustmentParameters.LEVER_ARM: ("lever_arm_x", "lever_arm_y", "lever_arm_z"),
}


@dataclass(frozen=True)
class IterationRecord:
    iteration: int
    rmse: float
    damping: float
    step_norm: float
    parameters: np.ndarray = field(repr=False)
    stalled: bool = False
    """No damped step reduced the cost; the parameters were left unchanged."""


@dataclass
class AdjustmentResult:
    """Outcome of a boresight adjustment."""

    boresight_correction: np.ndarray
    """Roll, pitch and yaw to add to the nominal boresight, radians."""

    lever_arm_correction: np.ndarray
    """Offset to add to the nominal lever arm, metres."""

    config: SensorConfig
    """Nominal configuration with the corrections applied."""

    rmse: float
    """Root mean square point-to-plane distance after adjustment."""

    initial_rmse: float
    iterations: int
    converged: bool
    parameter_names: Tuple[str, ...] = ()
    covariance: Optional[np.ndarray] = field(default=None, repr=False)
    """Covariance of the estimated parameters, in `parameter_names` order."""

    history: List[IterationRecord] = field(default_factory=list, repr=False)

    @property
    def parameter_sigmas(self) -> Optional[np.ndarray]:
        if self.covariance is None:
            return None
        return np.sqrt(np.clip(np.diag(self.covariance), 0.0, None))


@dataclass
class _Patch:
    sensor: np.ndarray
    positions: np.ndarray
    rotations: np.ndarray


def _tangent_basis(normal: np.ndarray) -> np.ndarray:
    _, _, vt = np.linalg.svd(normal.reshape(1, 3))
    return vt[1:]


class BoresightAdjuster:
    """Levenberg-Marquardt estimator for boresight and lever arm corrections.

    Parameters
    ----------
    config : SensorConfig
        Nominal configuration the point cloud was georeferenced with.
    parameters : AdjustmentParameters, optional
        Which calibration parameters to estimate.
    max_iterations : int, optional
        Iteration bound; exceeding it raises `DidNotConverge`.
    step_tolerance : float, optional
        Relative parameter step below which iteration stops.
    residual_tolerance : float, optional
        RMSE in metres below which iteration stops.
    damping : float, optional
        Initial Levenberg-Marquardt damping.
    max_condition : float, optional
        Largest acceptable condition number of the normal matrix.
    """

    def __init__(
        self,
        config: SensorConfig,
        parameters: AdjustmentParameters = AdjustmentParameters.BORESIGHT,
        max_iterations: int = 50,
        step_tolerance: float = 1e-10,
        residual_tolerance: float = 1e-9,
        damping: float = 1e-3,
        max_condition: float = 1e14,
    ):
        if not parameters:
            raise ValueError("at least one parameter group must be selected")
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.config = config
        self.parameters = parameters
        self.max_iterations = max_iterations
        self.step_tolerance = step_tolerance
        self.residual_tolerance = residual_tolerance
        self.damping = damping
        self.max_condition = max_condition
        self._patches: List[_Patch] = []

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        names: Tuple[str, ...] = ()
        for group, group_names in PARAMETER_NAMES.items():
            if group in self.parameters:
                names += group_names
        return names

    def _initial(self) -> np.ndarray:
        values = []
        if AdjustmentParameters.BORESIGHT in self.parameters:
            values.extend(self.config.boresight)
        if AdjustmentParameters.LEVER_ARM in self.parameters:
            values.extend(self.config.lever_arm)
        return np.array(values, dtype=float)

    def _unpack(self, theta: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        boresight = np.array(self.config.boresight, dtype=float)
        lever_arm = np.array(self.config.lever_arm, dtype=float)
        i = 0
        if AdjustmentParameters.BORESIGHT in self.parameters:
            boresight = theta[0:3]
            i = 3
        if AdjustmentParameters.LEVER_ARM in self.parameters:
            lever_arm = theta[i:i + 3]
        return boresight, lever_arm

    def _prepare(self, patches: Sequence[Sequence[Tuple[PointMeasurement, PoseSample]]]) -> None:
        transformer = FrameTransformer(self.config)
        self._patches = []
        for patch in patches:
            pairs = list(patch)
            if len(pairs) < 3:
                raise DegeneratePlane(f"every patch needs at least three points, got {len(pairs)}")
            sensor = np.array([transformer.world_to_sensor(point.position, pose) for point, pose in pairs])
            self._patches.append(_Patch(
                sensor=sensor,
                positions=np.array([pose.position for _, pose in pairs]),
                rotations=np.array([body_to_world_matrix(pose.attitude) for _, pose in pairs]),
            ))
        if not self._patches:
            raise ValueError("no patches to adjust")

    def _evaluate(self, theta: np.ndarray, with_jacobian: bool = True, project: bool = True):
        boresight, lever_arm = self._unpack(theta)
        boresight_matrix = rotation_matrix(*boresight)
        boresight_derivatives = rotation_matrix_derivatives(*boresight)
        residuals = []
        rows = []
        for patch in self._patches:
            body = lever_arm + patch.sensor @ boresight_matrix.T
            points = patch.positions + np.einsum("nij,nj->ni", patch.rotations, body)
            plane = fit_plane(points)
            residuals.append(plane.distance(points))
            if not with_jacobian:
                continue
            columns = []
            if AdjustmentParameters.BORESIGHT in self.parameters:
                for derivative in boresight_derivatives:
                    partial = np.einsum("nij,nj->ni", patch.rotations, patch.sensor @ derivative.T)
                    columns.append(partial @ plane.normal)
            if AdjustmentParameters.LEVER_ARM in self.parameters:
                for k in range(3):
                    columns.append(patch.rotations[:, :, k] @ plane.normal)
            block = np.column_stack(columns)
            if not project:
                rows.append(block)
                continue
            # remove what a change of plane offset or tilt would absorb
            basis = np.column_stack([
                np.ones(len(points)),
                (points - plane.point) @ _tangent_basis(plane.normal).T,
            ])
            block = block - basis @ np.linalg.lstsq(basis, block, rcond=None)[0]
            rows.append(block)
        residuals = np.concatenate(residuals)
        if not with_jacobian:
            return residuals, None
        return residuals, np.vstack(rows)

    def _check_observable(self, jacobian: np.ndarray, sensitivity: np.ndarray) -> None:
        # measured against the sensitivity before plane refits, so parameters
        # a refit absorbs completely count as unobservable
        _, singular, vt = np.linalg.svd(jacobian, full_matrices=False)
        reference = max(singular[0], np.linalg.norm(sensitivity, 2))
        condition = (reference / singular[-1]) ** 2 if singular[-1] > 0.0 else math.inf
        if not condition <= self.max_condition:
            weakest = self.parameter_names[int(np.argmax(np.abs(vt[-1])))]
            raise SingularJacobian(
                f"parameters are not observable from these patches "
                f"(condition {condition:.3g}, weakest around {weakest})"
            )

    def adjust(self, patches: Sequence[Sequence[Tuple[PointMeasurement, PoseSample]]]) -> AdjustmentResult:
        """Estimate calibration corrections from planar patches.

        Parameters
        ----------
        patches : sequence of sequences of (PointMeasurement, PoseSample)
            Each inner sequence holds the returns from one planar
            surface, paired with the platform pose at their times.

        Raises
        ------
        DegeneratePlane
            If a patch cannot be fitted with a plane.
        SingularJacobian
            If the selected parameters are not observable.
        DidNotConverge
            If `max_iterations` is exceeded.
        """
        self._prepare(patches)
        theta = self._initial()
        residuals, jacobian = self._evaluate(theta)
        if len(residuals) <= len(theta):
            raise ValueError(f"{len(residuals)} residuals cannot determine {len(theta)} parameters")
        self._check_observable(jacobian, self._evaluate(theta, project=False)[1])

        initial_rmse = rmse = float(np.sqrt(np.mean(residuals ** 2)))
        logger.info(
            "Adjusting %s over %d patches (%d points), initial rmse %.4f m",
            ", ".join(self.parameter_names), len(self._patches), len(residuals), initial_rmse,
        )
        mu = self.damping
        nu = 2.0
        history: List[IterationRecord] = []
        converged = rmse <= self.residual_tolerance
        iteration = 0
        while not converged:
            if iteration >= self.max_iterations:
                raise DidNotConverge(iteration, rmse)
            iteration += 1
            cost = 0.5 * residuals @ residuals
            gradient = jacobian.T @ residuals
            normal = jacobian.T @ jacobian
            stalled = False
            while True:
                step = np.linalg.solve(normal + mu * np.eye(len(theta)), -gradient)
                candidate_residuals, _ = self._evaluate(theta + step, with_jacobian=False)
                candidate_cost = 0.5 * candidate_residuals @ candidate_residuals
                predicted = 0.5 * step @ (mu * step - gradient)
                gain = (cost - candidate_cost) / predicted if predicted > 0.0 else 0.0
                if gain > 0.0:
                    theta = theta + step
                    residuals = candidate_residuals
                    mu *= max(1.0 / 3.0, 1.0 - (2.0 * gain - 1.0) ** 3)
                    nu = 2.0
                    break
                mu *= nu
                nu *= 2.0
                if mu > 1e10:
                    stalled = True
                    break

            rmse = float(np.sqrt(np.mean(residuals ** 2)))
            step_norm = 0.0 if stalled else float(np.linalg.norm(step))
            history.append(IterationRecord(iteration, rmse, mu, step_norm, theta.copy(), stalled=stalled))
            logger.debug("Iteration %d: rmse %.6g m, step %.3g, damping %.3g", iteration, rmse, step_norm, mu)
            if stalled:
                logger.debug("No step reduces the cost any further")
                converged = True
            elif rmse <= self.residual_tolerance:
                converged = True
            elif step_norm <= self.step_tolerance * (np.linalg.norm(theta) + self.step_tolerance):
                converged = True
            if not converged:
                _, jacobian = self._evaluate(theta)

        _, jacobian = self._evaluate(theta)
        dof = len(residuals) - len(theta)
        sigma2 = float(residuals @ residuals) / dof
        normal = jacobian.T @ jacobian
        try:
            covariance = sigma2 * np.linalg.inv(normal)
        except np.linalg.LinAlgError:
            covariance = sigma2 * np.linalg.pinv(normal)

        boresight, lever_arm = self._unpack(theta)
        adjusted = self.config.with_adjustment(boresight=boresight, lever_arm=lever_arm)
        logger.info("Adjustment finished after %d iterations, rmse %.4f m", iteration, rmse)
        return AdjustmentResult(
            boresight_correction=boresight - np.array(self.config.boresight),
            lever_arm_correction=lever_arm - np.array(self.config.lever_arm),
            config=adjusted,
            rmse=rmse,
            initial_rmse=initial_rmse,
            iterations=iteration,
            converged=converged,
            parameter_names=self.parameter_names,
            covariance=covariance,
            history=history,
        )
