"""Numerical routines used by the barrier method."""

import numpy as np
import numpy.typing as npt
from scipy import linalg

from .exceptions import NewtonStepError

ROOT_INITIAL_GUESS = 1e-6
ROOT_TOLERANCE = 1e-4
ROOT_FAILURE = 1.0


def solve_cholesky(
    H: npt.NDArray[np.float64],
    b: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Solve H * x = b.

    Solves a linear system of equations where H is symmetric positive definite, by
    factoring H = L * L^T and doing a forward and a back substitution.

    Parameters
    ----------
     H : npt.NDArray[np.float64]
        Symmetric positive definite matrix.
     b : npt.NDArray[np.float64]
        Right hand side. Can be either a vector or a matrix, in which case we solve the
        system for each column of b.

    Returns
    -------
     x : npt.NDArray[np.float64]
        The solution.

    Raises
    ------
     NewtonStepError
        If H is not (numerically) positive definite.

    """
    if H.ndim != 2 or H.shape[0] != H.shape[1]:
        raise ValueError("H must be a square matrix.")
    if b.shape[0] != H.shape[0]:
        raise ValueError("Number of rows in b must match the dimension of H.")
    if not np.all(np.isfinite(H)):
        raise NewtonStepError("Hessian approximation has non-finite entries.")

    try:
        c_and_lower = linalg.cho_factor(H, lower=True)
    except linalg.LinAlgError as e:
        raise NewtonStepError(
            "Hessian approximation is not strictly positive definite."
        ) from e

    return linalg.cho_solve(c_and_lower, b)


def search_direction(
    H: npt.NDArray[np.float64],
    g: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Calculate the quasi-Newton direction, d = -H^{-1} * g."""
    return solve_cholesky(H, -g)


def max_feasible_step(
    p: npt.NDArray[np.float64],
    x: npt.NDArray[np.float64],
    lower: npt.NDArray[np.float64],
    upper: npt.NDArray[np.float64],
    feasibility_tolerance: float = 1e-3,
    verbose: bool = False,
) -> float:
    """Largest step along p before x + s * p leaves the box.

    Parameters
    ----------
     p : vector
        Search direction.
     x : vector
        Current iterate.
     lower, upper : vectors
        Bounds; non-finite entries never limit the step.
     feasibility_tolerance : float, optional
        Coordinates whose limit is at most this value are reported when verbose.
     verbose : bool, optional
        If True, print the coordinates that are about to hit a bound.

    Returns
    -------
     gamma : float
        Maximum step, or np.inf if no coordinate constrains the step. Negative limits
        are clamped to zero.

    """
    limits = np.full(x.shape, np.inf)
    increasing = p > 0
    decreasing = p < 0
    with np.errstate(invalid="ignore"):
        limits[increasing] = (upper[increasing] - x[increasing]) / p[increasing]
        limits[decreasing] = (lower[decreasing] - x[decreasing]) / p[decreasing]
    limits = np.maximum(limits, 0.0)

    if verbose:
        for ii in np.flatnonzero(limits <= feasibility_tolerance):
            side = "upper" if p[ii] > 0 else "lower"
            print(f"      Variable {ii} hits {side} bound (step limit {limits[ii]:.3g})")

    if limits.size == 0:
        return np.inf
    return float(np.min(limits))


def solve_scalar_newton(
    phi1: float,
    phi1_prime: float,
    phi2: float,
    phi2_prime: float,
    alpha: float,
    mu: float,
    max_iterations: int = 100,
    verbose: bool = False,
) -> float:
    r"""Calibrate the quadratic-logarithmic line search model.

    Uses Newton's method to find the root of
        h(y) = log(y) + 0.5 * (1/y - y) - kappa,
    where
        kappa = (0.5 * alpha * (phi1' + phi2') - phi2 + phi1) / mu.

    Parameters
    ----------
     phi1, phi1_prime : float
        Barrier objective and its directional derivative at step 0.
     phi2, phi2_prime : float
        Barrier objective and its directional derivative at step alpha.
     alpha : float
        Trial step length.
     mu : float
        Barrier parameter.
     max_iterations : int, optional
        Maximum number of Newton iterations.
     verbose : bool, optional
        If True, print diagnostics.

    Returns
    -------
     y : float
        The root, in (0, 1), or 1.0 if the interpolant is inadequate (kappa <= 0) or
        the iteration did not converge.

    Notes
    -----
    h is convex and decreasing on (0, 1), with h(y) -> inf as y -> 0 and h(1) = -kappa.
    Starting to the left of the root, the Newton iterates increase monotonically toward
    it, but from 1e-6 it takes a few dozen steps to get there.

    """
    kappa = (0.5 * alpha * (phi1_prime + phi2_prime) - phi2 + phi1) / mu
    if verbose:
        print(f"      ScalarNewton: kappa = {kappa:.6g}")
    if not kappa > 0.0:
        if verbose:
            print("      ScalarNewton: interpolant inadequate")
        return ROOT_FAILURE

    y = ROOT_INITIAL_GUESS
    for _ in range(max_iterations):
        h = np.log(y) + 0.5 * (1.0 / y - y) - kappa
        if abs(h) < ROOT_TOLERANCE:
            if verbose:
                print(f"      ScalarNewton: y = {y:.6g}, h(y) = {h:.3g}")
            return float(y)

        h_prime = 1.0 / y - 1.0 / (2.0 * y * y) - 0.5
        y = y - h / h_prime
        if not 0.0 < y < 1.0:
            break

    if verbose:
        print("      ScalarNewton: iteration did not converge")
    return ROOT_FAILURE
