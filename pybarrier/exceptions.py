"""Custom exceptions."""

import numpy as np
import numpy.typing as npt


class NewtonStepError(Exception):
    """Raised when we cannot calculate the search direction."""

    def __init__(self, message: str) -> None:
        self.message = message

    def __str__(self) -> str:
        """Pretty-print error."""
        return self.message


class BacktrackingLineSearchError(Exception):
    """Raised when the line search fails."""

    def __init__(self, message: str) -> None:
        self.message = message

    def __str__(self) -> str:
        """Pretty-print error."""
        return self.message


class ConstraintBoundaryError(BacktrackingLineSearchError):
    """Raised when the line search would leave the interior of the box."""


class InvalidDescentDirectionError(BacktrackingLineSearchError):
    """Raised when the search direction wasn't a descent direction.

    Usually this is because the Hessian approximation is nearly singular and there was
    some numerical issue.

    """

    def __init__(self, message: str, grad_dot_direction: float) -> None:
        self.message = message
        self.grad_dot_direction = grad_dot_direction

    def __str__(self) -> str:
        """Pretty-print error."""
        msg = (
            f"{self.message} (∇φ^T p = {self.grad_dot_direction} >= 0, "
            "but should be < 0)"
        )
        return msg


class InterpolationError(BacktrackingLineSearchError):
    """Raised when the quadratic-logarithmic model cannot be fitted."""


class SevereCurvatureError(BacktrackingLineSearchError):
    """Raised when neither trial step satisfied the sufficient decrease condition."""

    def __init__(
        self,
        message: str,
        required_improvement: float,
        actual_improvement: float,
    ) -> None:
        self.message = message
        self.required_improvement = required_improvement
        self.actual_improvement = actual_improvement

    def __str__(self) -> str:
        """Pretty-print error."""
        msg = (
            f"{self.message} (required improvement > {self.required_improvement:.03g}"
            f"; actual improvement = {self.actual_improvement:.03g})"
        )
        return msg


class OptimizationError(Exception):
    """Base class for optimization errors."""

    def __init__(
        self,
        message: str,
        last_iterate: npt.NDArray[np.float64],
    ) -> None:
        self.message = message
        self.last_iterate = last_iterate

    def __str__(self) -> str:
        """Pretty-print error."""
        return self.message


class BarrierParameterError(OptimizationError):
    """Raised when the barrier parameter becomes too small to continue."""

    def __init__(
        self,
        message: str,
        barrier_parameter: float,
        last_iterate: npt.NDArray[np.float64],
    ) -> None:
        super().__init__(message, last_iterate)
        self.barrier_parameter = barrier_parameter

    def __str__(self) -> str:
        """Pretty-print error."""
        return f"{self.message} (mu = {self.barrier_parameter:.03g})"
