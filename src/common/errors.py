"""Error kinds reported by the georeferencing and uncertainty engine.

Every failure is tied to the point or batch that caused it.  None of
these errors are swallowed inside the engine; batch entry points attach
them to per-point outcomes so the calling pipeline can decide whether
to skip or abort.
"""


class LidarTpuError(Exception):
    """Base class for all engine errors."""


class OutOfRange(LidarTpuError):
    """Query time lies outside the trajectory coverage."""

    def __init__(self, time: float, start: float, end: float, reason: str = ""):
        self.time = time
        self.start = start
        self.end = end
        message = f"time {time:.6f} outside trajectory coverage [{start:.6f}, {end:.6f}]"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MissingInput(LidarTpuError):
    """A required covariance block, normal or config parameter is absent."""


class InvalidCovariance(MissingInput):
    """A covariance block is present but not symmetric positive semi-definite."""


class SingularJacobian(LidarTpuError):
    """Error propagation or adjustment cannot proceed numerically."""


class DegeneratePlane(LidarTpuError):
    """Too few or collinear points to define a plane."""


class DidNotConverge(LidarTpuError):
    """An iterative estimator exceeded its iteration bound."""

    def __init__(self, iterations: int, rmse: float):
        self.iterations = iterations
        self.rmse = rmse
        super().__init__(f"no convergence after {iterations} iterations (rmse={rmse:.6g})")
