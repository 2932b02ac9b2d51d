r"""Logarithmic barrier transform.

For the problem
    minimize    f(x)
    subject to  l <= x <= u,
the barrier objective is
    phi(x) := f(x) - mu * \sum_i [log(x_i - l_i) + log(u_i - x_i)],
where only finite bounds contribute. All functions below require x to be strictly
inside the finite bounds.

"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import numpy.typing as npt


@dataclass(frozen=True)
class PreviousIterate:
    """Snapshot of an iterate taken before a trial step.

    Parameters
    ----------
     x : vector
        Point.
     objective_value : float
        Objective, f(x).
     gradient : vector
        Gradient of f at x.
     barrier_value : float
        Barrier objective at x.
     barrier_gradient : vector
        Gradient of the barrier objective at x.

    """

    x: npt.NDArray[np.float64]
    objective_value: float
    gradient: npt.NDArray[np.float64]
    barrier_value: float
    barrier_gradient: npt.NDArray[np.float64]


@dataclass(frozen=True)
class BarrierSolverState:
    """State of the barrier method.

    Replaced, never mutated, whenever the iterate, the Hessian approximation, or the
    barrier parameter changes.

    Parameters
    ----------
     mu : float
        Barrier parameter.
     barrier_value : float
        Barrier objective at the current iterate.
     barrier_gradient : vector
        Gradient of the barrier objective at the current iterate.
     hessian : matrix
        Quasi-Newton approximation of the barrier Hessian.
     previous : PreviousIterate, optional
        Iterate before the most recent trial step.
     outer_start_value : float
        Objective value at the start of the current outer iteration.
     hessian_update : str
        Branch taken by the most recent Hessian update.

    """

    mu: float
    barrier_value: float
    barrier_gradient: npt.NDArray[np.float64]
    hessian: npt.NDArray[np.float64]
    previous: Optional[PreviousIterate] = None
    outer_start_value: float = np.inf
    hessian_update: str = ""


def is_strictly_feasible(
    x: npt.NDArray[np.float64],
    lower: npt.NDArray[np.float64],
    upper: npt.NDArray[np.float64],
) -> bool:
    """Check l_i < x_i < u_i for every finite bound."""
    above = np.where(np.isfinite(lower), x > lower, True)
    below = np.where(np.isfinite(upper), x < upper, True)
    return bool(np.all(above) and np.all(below))


def _distances(
    x: npt.NDArray[np.float64],
    lower: npt.NDArray[np.float64],
    upper: npt.NDArray[np.float64],
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Distances to the lower and upper bounds; 1.0 for unbounded sides."""
    has_lower = np.isfinite(lower)
    has_upper = np.isfinite(upper)
    dl = np.where(has_lower, x - np.where(has_lower, lower, 0.0), 1.0)
    du = np.where(has_upper, np.where(has_upper, upper, 0.0) - x, 1.0)
    return dl, du


def barrier_objective(
    f: float,
    x: npt.NDArray[np.float64],
    lower: npt.NDArray[np.float64],
    upper: npt.NDArray[np.float64],
    mu: float,
) -> float:
    """Calculate phi at x, given f(x)."""
    dl, du = _distances(x, lower, upper)
    # Unbounded sides have unit distance, so log contributes 0.
    return float(f - mu * np.sum(np.log(dl) + np.log(du)))


def barrier_gradient(
    g: npt.NDArray[np.float64],
    x: npt.NDArray[np.float64],
    lower: npt.NDArray[np.float64],
    upper: npt.NDArray[np.float64],
    mu: float,
) -> npt.NDArray[np.float64]:
    """Calculate the gradient of phi at x, given the gradient of f."""
    dl, du = _distances(x, lower, upper)
    inv_l = np.where(np.isfinite(lower), 1.0 / dl, 0.0)
    inv_u = np.where(np.isfinite(upper), 1.0 / du, 0.0)
    return g + mu * (inv_u - inv_l)


def barrier_hessian(
    H: npt.NDArray[np.float64],
    x: npt.NDArray[np.float64],
    lower: npt.NDArray[np.float64],
    upper: npt.NDArray[np.float64],
    mu: float,
) -> npt.NDArray[np.float64]:
    """Add the barrier correction to the diagonal of H.

    Returns a new matrix; H is not modified. Off-diagonal entries are unchanged.

    """
    dl, du = _distances(x, lower, upper)
    inv_l2 = np.where(np.isfinite(lower), 1.0 / (dl * dl), 0.0)
    inv_u2 = np.where(np.isfinite(upper), 1.0 / (du * du), 0.0)
    H2 = np.array(H, dtype=np.float64)
    H2[np.diag_indices_from(H2)] += mu * (inv_l2 - inv_u2)
    return H2
