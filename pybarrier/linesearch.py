"""Line search for the logarithmic barrier function.

Reference: Murray, Walter and Wright, Margaret H., "Line search procedures for the
logarithmic barrier function", SIAM Journal on Optimization 4(2), 1994.

"""

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from .barrier import (
    BarrierSolverState,
    barrier_gradient,
    barrier_objective,
    is_strictly_feasible,
)
from .exceptions import (
    ConstraintBoundaryError,
    InterpolationError,
    InvalidDescentDirectionError,
    SevereCurvatureError,
)
from .numerical_helpers import ROOT_FAILURE, max_feasible_step, solve_scalar_newton
from .problem import BoundConstrainedProblem


@dataclass
class LineSearchResult:
    """Accepted step.

    Parameters
    ----------
     step_length : float
        Accepted step, alpha.
     x : vector
        New iterate, x + alpha * p.
     objective_value : float
        f at the new iterate.
     num_trials : [1, 2]
        1 if the initial trial was accepted, 2 if the interpolated step was.

    """

    step_length: float
    x: npt.NDArray[np.float64]
    objective_value: float
    num_trials: int


def initial_step(alpha_bar: float, inner_gp: float, mu: float) -> float:
    """Largest trial step that respects both the box and the barrier singularity."""
    if np.isfinite(alpha_bar):
        alpha_bar_plus = alpha_bar + mu / inner_gp
        if alpha_bar_plus < 0.0:
            return max(alpha_bar_plus, 0.5 * alpha_bar)
        return 0.95 * alpha_bar
    return np.inf


def interpolated_step(
    phi: float,
    inner_gp: float,
    inner_gpnew: float,
    alpha: float,
    y: float,
    mu: float,
) -> float:
    r"""Minimize the quadratic-logarithmic model along the search direction.

    The model Q(t) = a + b * t + c * t^2 - mu * log(d - t) matches the barrier
    objective's slope at 0 and alpha, with singularity d = alpha / (1 - y). Its
    stationary points solve
        2c t^2 - (2cd - b) t - (mu + bd) = 0;
    we take the root closer to zero.

    Raises
    ------
     InterpolationError
        If the model is degenerate (c == 0) or has no stationary point.

    """
    d = alpha / (1.0 - y)
    c = (inner_gpnew - inner_gp + mu / d - mu / (d - alpha)) / (2.0 * alpha)
    b = inner_gp - mu / d
    if c == 0.0:
        raise InterpolationError("Quadratic-logarithmic model is degenerate (c = 0).")

    dtmp1 = 2.0 * c * d - b
    discriminant = dtmp1 * dtmp1 + 8.0 * c * (mu + b * d)
    if not discriminant >= 0.0:
        raise InterpolationError("Quadratic-logarithmic model has no stationary point.")

    return (dtmp1 - np.sqrt(discriminant)) / (4.0 * c)


def barrier_line_search(
    problem: BoundConstrainedProblem,
    state: BarrierSolverState,
    p: npt.NDArray[np.float64],
    ftol: float,
    feasibility_tolerance: float = 1e-3,
    max_root_iterations: int = 100,
    verbose: bool = False,
) -> LineSearchResult:
    """Find a step along p satisfying the barrier sufficient decrease condition.

    Tries min(alpha_b, 1) first, where alpha_b keeps clear of the nearest bound. If
    that fails, fits a quadratic-logarithmic model to the barrier objective and tries
    its minimizer. No further backtracking is done. Nothing is committed to the
    problem; the caller accepts the returned point.

    Parameters
    ----------
     problem : BoundConstrainedProblem
        Problem; supplies the current iterate, bounds, and evaluations.
     state : BarrierSolverState
        Barrier value and gradient at the current iterate.
     p : vector
        Search direction.
     ftol : float
        Function tolerance used in the sufficient decrease condition.
     feasibility_tolerance : float, optional
        Passed to `max_feasible_step`.
     max_root_iterations : int, optional
        Passed to `solve_scalar_newton`.
     verbose : bool, optional
        If True, print diagnostics.

    Returns
    -------
     res : LineSearchResult
        The accepted step.

    Raises
    ------
     BacktrackingLineSearchError
        If no acceptable step was found.

    """
    x = problem.x
    lower, upper = problem.lower, problem.upper
    mu = state.mu
    phi = state.barrier_value
    g = state.barrier_gradient

    alpha_bar = max_feasible_step(
        p, x, lower, upper, feasibility_tolerance=feasibility_tolerance, verbose=verbose
    )

    inner_gp = float(np.dot(g, p))
    if not inner_gp < 0.0:
        raise InvalidDescentDirectionError(
            message="Search direction was not a descent direction.",
            grad_dot_direction=inner_gp,
        )

    alpha_b = initial_step(alpha_bar, inner_gp, mu)
    alpha = min(alpha_b, 1.0)
    if verbose:
        print(
            f"      Line search: max step = {alpha_bar:.6g}, "
            f"initial step = {alpha:.6g}"
        )

    # The sufficient decrease test compares against the gradient at x for both trials.
    required_improvement = ftol * np.dot(g, g)

    x_plus = x + alpha * p
    f_next = problem.evaluate_objective(x_plus)
    phi_plus = barrier_objective(f_next, x_plus, lower, upper, mu)
    if phi_plus < phi - required_improvement:
        return LineSearchResult(
            step_length=alpha, x=x_plus, objective_value=f_next, num_trials=1
        )

    g_next = problem.evaluate_gradient(x_plus)
    inner_gpnew = float(
        np.dot(barrier_gradient(g_next, x_plus, lower, upper, mu), p)
    )
    if verbose:
        print(
            f"      Line search: φ (old, new) = {phi:.6g}, {phi_plus:.6g}; "
            f"∇φ^T p (old, new) = {inner_gp:.6g}, {inner_gpnew:.6g}"
        )

    y = solve_scalar_newton(
        phi,
        inner_gp,
        phi_plus,
        inner_gpnew,
        alpha,
        mu,
        max_iterations=max_root_iterations,
        verbose=verbose,
    )
    if y == ROOT_FAILURE:
        raise InterpolationError("Quadratic-logarithmic interpolant is inadequate.")

    alpha = interpolated_step(phi, inner_gp, inner_gpnew, alpha, y, mu)
    if verbose:
        print(f"      Line search: interpolated step = {alpha:.6g}")
    if not 0.0 < alpha < alpha_bar:
        raise ConstraintBoundaryError(
            f"Interpolated step {alpha:.3g} is outside (0, {alpha_bar:.3g})."
        )

    x_plus = x + alpha * p
    if not is_strictly_feasible(x_plus, lower, upper):
        raise ConstraintBoundaryError("Interpolated step reaches a bound.")

    f_next = problem.evaluate_objective(x_plus)
    phi_plus = barrier_objective(f_next, x_plus, lower, upper, mu)
    if phi_plus < phi - required_improvement:
        return LineSearchResult(
            step_length=alpha, x=x_plus, objective_value=f_next, num_trials=2
        )

    raise SevereCurvatureError(
        message="Step does not satisfy sufficient decrease condition.",
        required_improvement=required_improvement,
        actual_improvement=phi - phi_plus,
    )
