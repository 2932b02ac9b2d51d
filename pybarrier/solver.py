r"""Barrier quasi-Newton method for bound-constrained problems.

Solves
    minimize    f(x)
    subject to  l <= x <= u
by approximately minimizing the barrier objective
    phi(x) := f(x) - mu * \sum_i [log(x_i - l_i) + log(u_i - x_i)]
for a decreasing sequence of barrier parameters mu. Each barrier problem is solved with
a BFGS quasi-Newton method and the line search of Murray and Wright, which never leaves
the interior of the box.

"""

from collections.abc import Callable
from dataclasses import replace
from typing import Optional

import numpy as np
import numpy.typing as npt

from .barrier import (
    BarrierSolverState,
    PreviousIterate,
    barrier_gradient,
    barrier_hessian,
    barrier_objective,
    is_strictly_feasible,
)
from .exceptions import BarrierParameterError, OptimizationError
from .hessian import initial_hessian, update_hessian
from .linesearch import LineSearchResult, barrier_line_search
from .numerical_helpers import search_direction
from .optimization import (
    STATUS_BARRIER_PARAMETER_TOO_SMALL,
    STATUS_FUNCTION_TOLERANCE,
    STATUS_GRADIENT_TOLERANCE,
    STATUS_STALLED,
    NewtonStrategy,
    OptimizationSettings,
    Optimizer,
    QuasiNewtonDriver,
    QuasiNewtonResult,
    Status,
)
from .problem import BoundConstrainedProblem, FunctionProblem

MIN_BARRIER_PARAMETER = 1e-12
MAX_BARRIER_REDUCTION = 10.0
MIN_INNER_TOLERANCE = 1e-5
OUTER_FUNCTION_TOLERANCE = 1e-6
OUTER_GRADIENT_TOLERANCE = 1e-4
ACTIVE_BOUND_TOLERANCE = 1e-4


class BarrierStrategy(NewtonStrategy):
    """Logarithmic barrier implementation of the quasi-Newton capabilities.

    Parameters
    ----------
     lower, upper : vectors
        Bounds; non-finite entries are treated as absent.
     settings : OptimizationSettings, optional
        Settings.

    """

    def __init__(
        self,
        lower: npt.NDArray[np.float64],
        upper: npt.NDArray[np.float64],
        settings: Optional[OptimizationSettings] = None,
    ) -> None:
        self.lower = lower
        self.upper = upper
        if settings is None:
            self.settings: OptimizationSettings = OptimizationSettings()
        else:
            self.settings = settings

        self.typical_scale: Optional[npt.NDArray[np.float64]] = None
        if self.settings.typical_scale is not None:
            typical_scale = np.asarray(self.settings.typical_scale, dtype=np.float64)
            if typical_scale.shape != lower.shape:
                raise ValueError("typical_scale must have one entry per variable.")
            if not np.all(typical_scale != 0):
                raise ValueError("typical_scale entries must be nonzero.")
            self.typical_scale = typical_scale

    def initialize(self, problem: BoundConstrainedProblem) -> BarrierSolverState:
        """Barrier state at the starting point, with mu at its initial value."""
        x = problem.x
        if not is_strictly_feasible(x, self.lower, self.upper):
            raise ValueError("Starting point must lie strictly inside the bounds.")

        mu = self.settings.initial_barrier_parameter
        if not mu > 0:
            raise ValueError("Initial barrier parameter must be positive.")

        g = self.transform_gradient_mu(problem.g, x, mu)
        return BarrierSolverState(
            mu=mu,
            barrier_value=barrier_objective(problem.f, x, self.lower, self.upper, mu),
            barrier_gradient=g,
            hessian=initial_hessian(x, g),
            outer_start_value=problem.f,
        )

    def transform_value(
        self, state: BarrierSolverState, f: float, x: npt.NDArray[np.float64]
    ) -> float:
        """Calculate the barrier objective."""
        return barrier_objective(f, x, self.lower, self.upper, state.mu)

    def transform_gradient(
        self,
        state: BarrierSolverState,
        g: npt.NDArray[np.float64],
        x: npt.NDArray[np.float64],
    ) -> npt.NDArray[np.float64]:
        """Calculate the barrier gradient."""
        return self.transform_gradient_mu(g, x, state.mu)

    def transform_gradient_mu(
        self, g: npt.NDArray[np.float64], x: npt.NDArray[np.float64], mu: float
    ) -> npt.NDArray[np.float64]:
        """Calculate the barrier gradient for a given mu."""
        return barrier_gradient(g, x, self.lower, self.upper, mu)

    def transform_hessian(
        self,
        state: BarrierSolverState,
        H: npt.NDArray[np.float64],
        x: npt.NDArray[np.float64],
    ) -> npt.NDArray[np.float64]:
        """Add the barrier correction to the diagonal of H."""
        return barrier_hessian(H, x, self.lower, self.upper, state.mu)

    def refresh(
        self, problem: BoundConstrainedProblem, state: BarrierSolverState
    ) -> BarrierSolverState:
        """Recompute the barrier value and gradient at the current iterate."""
        x = problem.x
        return replace(
            state,
            barrier_value=self.transform_value(state, problem.f, x),
            barrier_gradient=self.transform_gradient(state, problem.g, x),
        )

    def update_hessian(
        self, problem: BoundConstrainedProblem, state: BarrierSolverState, k: int
    ) -> BarrierSolverState:
        """BFGS update; restart from a scaled identity when k == 0."""
        previous = state.previous if k > 0 else None
        H, update_type = update_hessian(
            state.hessian,
            problem.x,
            state.barrier_gradient,
            previous,
            typical_scale=self.typical_scale,
        )
        if self.settings.verbose:
            print(f"    {k + 1:02d} Hessian update: {update_type}")
        return replace(state, hessian=H, hessian_update=update_type)

    def set_aside(
        self, problem: BoundConstrainedProblem, state: BarrierSolverState
    ) -> BarrierSolverState:
        """Snapshot the current iterate for the next secant update."""
        state = self.refresh(problem, state)
        previous = PreviousIterate(
            x=problem.x,
            objective_value=problem.f,
            gradient=problem.g,
            barrier_value=state.barrier_value,
            barrier_gradient=state.barrier_gradient,
        )
        return replace(state, previous=previous)

    def compute_direction(
        self, problem: BoundConstrainedProblem, state: BarrierSolverState
    ) -> npt.NDArray[np.float64]:
        """Solve H * p = -g with a Cholesky factorization."""
        return search_direction(state.hessian, state.barrier_gradient)

    def line_search(
        self,
        problem: BoundConstrainedProblem,
        state: BarrierSolverState,
        direction: npt.NDArray[np.float64],
    ) -> LineSearchResult:
        """Murray-Wright barrier line search."""
        return barrier_line_search(
            problem,
            state,
            direction,
            ftol=self.settings.function_tolerance,
            feasibility_tolerance=self.settings.feasibility_tolerance,
            max_root_iterations=self.settings.max_root_iterations,
            verbose=self.settings.verbose,
        )

    def accept_step(
        self,
        problem: BoundConstrainedProblem,
        state: BarrierSolverState,
        step: LineSearchResult,
    ) -> BarrierSolverState:
        """Commit the new iterate and recompute the barrier value and gradient."""
        problem.accept(step.x, step.objective_value)
        return self.refresh(problem, state)

    def inner_converged(
        self,
        problem: BoundConstrainedProblem,
        state: BarrierSolverState,
        outer_iteration: int,
    ) -> bool:
        """Check ||g|| / max(1, ||x||) against a tolerance that tightens each outer."""
        epik = max(MIN_INNER_TOLERANCE, 10.0 ** (-(outer_iteration + 1.0)))
        gnorm = np.linalg.norm(state.barrier_gradient)
        xnorm = np.linalg.norm(problem.x)
        return bool(gnorm / max(1.0, xnorm) < epik)

    def start_outer(
        self, problem: BoundConstrainedProblem, state: BarrierSolverState
    ) -> BarrierSolverState:
        """Remember the objective at the start of the outer iteration."""
        return replace(state, outer_start_value=problem.f)

    def update_outer(
        self, problem: BoundConstrainedProblem, state: BarrierSolverState
    ) -> BarrierSolverState:
        """Reduce mu by up to a factor of 10 and refresh the barrier state.

        The reduction is limited by any coordinate that has crossed a bound, so mu
        never shrinks faster than the iterate approaches the boundary.

        """
        x = problem.x
        mu = state.mu
        max_mu = MAX_BARRIER_REDUCTION

        has_lower = np.isfinite(self.lower)
        has_upper = np.isfinite(self.upper)
        ratios = np.concatenate(
            (
                (x[has_lower] - self.lower[has_lower]) / mu,
                (self.upper[has_upper] - x[has_upper]) / mu,
            )
        )
        crossed = ratios[ratios < 0.0]
        if crossed.size > 0:
            max_mu = min(max_mu, float(np.min(1.0 / crossed)))

        new_mu = mu / min(max_mu, MAX_BARRIER_REDUCTION)
        if self.settings.verbose:
            print(f"  New mu = {new_mu:.3g}")
        return self.refresh(problem, replace(state, mu=new_mu))

    def check_convergence(
        self, problem: BoundConstrainedProblem, state: BarrierSolverState
    ) -> Optional[Status]:
        """Check for convergence of the outer iterations.

        Returns
        -------
         status : int or None
            0 if the objective did not change, 1 if the change was below the
            function tolerance, 2 if the projected barrier gradient and bound
            violation are small, None otherwise.

        Raises
        ------
         BarrierParameterError
            If mu has become too small to continue.

        """
        x = problem.x
        if state.mu < MIN_BARRIER_PARAMETER:
            raise BarrierParameterError(
                message="Mu is too small to continue",
                barrier_parameter=state.mu,
                last_iterate=x,
            )

        fvalue = problem.f
        deltaf = state.outer_start_value - fvalue
        if deltaf == 0.0:
            return STATUS_STALLED

        if state.previous is not None:
            fprev = state.previous.objective_value
        else:
            fprev = state.outer_start_value
        rftol = OUTER_FUNCTION_TOLERANCE * (1.0 + abs(fprev))
        # The objective may rise while the barrier pushes x away from a bound.
        if abs(deltaf) <= rftol:
            if self.settings.verbose:
                print(f"  CheckConvg: deltaf = {deltaf:.4e}, rftol = {rftol:.4e}")
            return STATUS_FUNCTION_TOLERANCE

        dl = x - self.lower
        du = self.upper - x
        near_bound = (np.abs(dl) < ACTIVE_BOUND_TOLERANCE) | (
            np.abs(du) < ACTIVE_BOUND_TOLERANCE
        )
        g = np.where(near_bound, 0.0, state.barrier_gradient)
        q1 = np.linalg.norm(g) / (1.0 + np.linalg.norm(x))
        distances = np.concatenate(
            (dl[np.isfinite(self.lower)], du[np.isfinite(self.upper)])
        )
        q2 = -np.min(distances) if distances.size > 0 else -np.inf
        if self.settings.verbose:
            print(f"  CheckConvg: gnorm/(1+xnorm) = {q1:.4e}")
        if max(q1, q2) < OUTER_GRADIENT_TOLERANCE:
            return STATUS_GRADIENT_TOLERANCE

        return None

    def merit_value(self, state: BarrierSolverState) -> float:
        """Barrier objective at the current iterate."""
        return state.barrier_value

    def penalty_parameter(self, state: BarrierSolverState) -> float:
        """Barrier parameter."""
        return state.mu

    def hessian_update_type(self, state: BarrierSolverState) -> str:
        """Branch taken by the most recent Hessian update."""
        return state.hessian_update


class BarrierQuasiNewtonSolver(Optimizer):
    """Solve a bound-constrained problem with the barrier quasi-Newton method.

    Parameters
    ----------
     problem : BoundConstrainedProblem
        The problem. Its current iterate is the default starting point.
     settings : OptimizationSettings, optional
        Settings.

    """

    def __init__(
        self,
        problem: BoundConstrainedProblem,
        settings: Optional[OptimizationSettings] = None,
        **kwargs,
    ) -> None:
        super().__init__(settings=settings, **kwargs)
        self.problem = problem

    def solve(
        self,
        x0: Optional[npt.NDArray[np.float64]] = None,
        raise_on_failure: bool = False,
        **kwargs,
    ) -> QuasiNewtonResult:
        """Solve optimization problem.

        Parameters
        ----------
         x0 : vector, optional
            Starting point, strictly inside the bounds. Defaults to the problem's
            current iterate.
         raise_on_failure : bool, optional
            If True, raise an OptimizationError instead of returning an unsuccessful
            result. Defaults to False.

        Returns
        -------
         res : QuasiNewtonResult
            The results are wrapped in a QuasiNewtonResult class, which includes the
            solution, the convergence status, and iteration history.

        Raises
        ------
         ValueError
            If the starting point is not strictly inside the bounds.
         OptimizationError
            If raise_on_failure is True and the method did not converge.

        """
        problem = self.problem
        if x0 is not None:
            x0 = np.asarray(x0, dtype=np.float64)
            if x0.shape != problem.x.shape:
                raise ValueError("x0 must have one entry per variable.")
            if not is_strictly_feasible(x0, problem.lower, problem.upper):
                raise ValueError("Starting point must lie strictly inside the bounds.")
            problem.accept(x0, problem.evaluate_objective(x0))

        strategy = BarrierStrategy(problem.lower, problem.upper, settings=self.settings)
        driver = QuasiNewtonDriver(problem, strategy, settings=self.settings)
        result = driver.run()

        if raise_on_failure and not result.success:
            if result.status == STATUS_BARRIER_PARAMETER_TOO_SMALL:
                raise BarrierParameterError(
                    message=result.message,
                    barrier_parameter=result.barrier_parameter,
                    last_iterate=result.solution,
                )
            raise OptimizationError(
                message=result.message, last_iterate=result.solution
            )

        return result


def minimize(
    fun: Callable[[npt.NDArray[np.float64]], float],
    jac: Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]],
    x0: npt.NDArray[np.float64],
    lower: Optional[npt.NDArray[np.float64]] = None,
    upper: Optional[npt.NDArray[np.float64]] = None,
    settings: Optional[OptimizationSettings] = None,
) -> QuasiNewtonResult:
    """Minimize fun subject to lower <= x <= upper.

    Parameters
    ----------
     fun : Callable
        Objective, f(x) -> float.
     jac : Callable
        Gradient of the objective, g(x) -> vector.
     x0 : vector
        Starting point, strictly inside the bounds.
     lower, upper : vectors, optional
        Bounds. Use -np.inf and np.inf for unbounded sides. Defaults to no bounds.
     settings : OptimizationSettings, optional
        Settings.

    Returns
    -------
     res : QuasiNewtonResult
        The result.

    """
    problem = FunctionProblem(fun=fun, jac=jac, x0=x0, lower=lower, upper=upper)
    return BarrierQuasiNewtonSolver(problem, settings=settings).solve()
