"""Bound-constrained problems.

A problem exposes the current iterate together with its objective value and gradient,
the bounds on each variable, and a way of evaluating the objective and gradient at
trial points without committing them. The solver only ever changes the current
iterate through `accept`.

Unbounded sides are encoded with `NO_LOWER_BOUND` (-inf) and `NO_UPPER_BOUND` (+inf).

"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Optional

import numpy as np
import numpy.typing as npt

NO_LOWER_BOUND = -np.inf
NO_UPPER_BOUND = np.inf


class BoundConstrainedProblem(ABC):
    """Base class for a problem of the form minimize f(x) s.t. lower <= x <= upper."""

    def __init__(
        self,
        x0: npt.NDArray[np.float64],
        lower: Optional[npt.NDArray[np.float64]] = None,
        upper: Optional[npt.NDArray[np.float64]] = None,
    ) -> None:
        x0 = np.asarray(x0, dtype=np.float64)
        if x0.ndim != 1:
            raise ValueError("x0 must be a 1D NumPy array.")

        n = x0.shape[0]
        if lower is None:
            lower = np.full(n, NO_LOWER_BOUND)
        if upper is None:
            upper = np.full(n, NO_UPPER_BOUND)
        lower = np.asarray(lower, dtype=np.float64)
        upper = np.asarray(upper, dtype=np.float64)

        if lower.shape != x0.shape or upper.shape != x0.shape:
            raise ValueError("lower and upper must have the same length as x0.")
        if np.any(lower >= upper):
            raise ValueError("Each lower bound must be strictly less than its upper.")

        self.lower = lower
        self.upper = upper
        self.fevals = 0
        self.gevals = 0
        self._x = x0.copy()
        self._f = self.evaluate_objective(self._x)
        self._g = self.evaluate_gradient(self._x)

    @property
    def dimension(self) -> int:
        """Number of variables."""
        return self._x.shape[0]

    @property
    def x(self) -> npt.NDArray[np.float64]:
        """Current iterate."""
        return self._x.copy()

    @property
    def f(self) -> float:
        """Objective value at the current iterate."""
        return self._f

    @property
    def g(self) -> npt.NDArray[np.float64]:
        """Gradient at the current iterate."""
        return self._g.copy()

    def evaluate_objective(self, x: npt.NDArray[np.float64]) -> float:
        """Calculate f at x without committing x."""
        self.fevals += 1
        return float(self.objective(x))

    def evaluate_gradient(self, x: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Calculate the gradient of f at x without committing x."""
        self.gevals += 1
        return np.asarray(self.gradient(x), dtype=np.float64)

    def accept(
        self,
        x: npt.NDArray[np.float64],
        f: float,
        g: Optional[npt.NDArray[np.float64]] = None,
    ) -> None:
        """Make x the current iterate.

        If the gradient at x is not supplied it is evaluated here.

        """
        self._x = np.array(x, dtype=np.float64)
        self._f = float(f)
        if g is None:
            g = self.evaluate_gradient(self._x)
        self._g = np.array(g, dtype=np.float64)

    @abstractmethod
    def objective(self, x: npt.NDArray[np.float64]) -> float:
        """Calculate f at x."""

    @abstractmethod
    def gradient(self, x: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Calculate gradient of f at x."""


class FunctionProblem(BoundConstrainedProblem):
    """Problem defined by an objective and gradient callable.

    Parameters
    ----------
     fun : Callable
        Objective, f(x) -> float.
     jac : Callable
        Gradient, g(x) -> vector.
     x0 : vector
        Starting point. Must lie strictly inside the bounds.
     lower, upper : vectors, optional
        Bounds. Use -np.inf and np.inf for unbounded sides. Defaults to no bounds.

    """

    def __init__(
        self,
        fun: Callable[[npt.NDArray[np.float64]], float],
        jac: Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]],
        x0: npt.NDArray[np.float64],
        lower: Optional[npt.NDArray[np.float64]] = None,
        upper: Optional[npt.NDArray[np.float64]] = None,
    ) -> None:
        self.fun = fun
        self.jac = jac
        super().__init__(x0=x0, lower=lower, upper=upper)

    def objective(self, x: npt.NDArray[np.float64]) -> float:
        """Calculate f at x."""
        return self.fun(x)

    def gradient(self, x: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Calculate gradient of f at x."""
        return self.jac(x)
