"""Base optimization classes."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt
from matplotlib.axes import Axes

from .exceptions import (
    BacktrackingLineSearchError,
    NewtonStepError,
    OptimizationError,
)
from .problem import BoundConstrainedProblem

STATUS_STALLED = 0
STATUS_FUNCTION_TOLERANCE = 1
STATUS_GRADIENT_TOLERANCE = 2
STATUS_BARRIER_PARAMETER_TOO_SMALL = 3
STATUS_LINE_SEARCH_FAILED = 4
STATUS_FACTORIZATION_FAILED = 5
STATUS_ITERATION_LIMIT = 6

Status = Literal[0, 1, 2, 3, 4, 5, 6]

MESSAGES: Dict[int, str] = {
    STATUS_STALLED: "No improvement during the last outer iteration",
    STATUS_FUNCTION_TOLERANCE: "Function tolerance test passed",
    STATUS_GRADIENT_TOLERANCE: "Function and gradient tolerance test passed",
    STATUS_BARRIER_PARAMETER_TOO_SMALL: "Mu is too small to continue",
    STATUS_LINE_SEARCH_FAILED: "Line search failed without accepting any step",
    STATUS_FACTORIZATION_FAILED: "Cholesky factorization of the Hessian failed",
    STATUS_ITERATION_LIMIT: "Maximum number of outer iterations reached",
}


@dataclass
class OptimizationSettings:
    """Optimization settings.

    Parameters
    ----------
    initial_barrier_parameter : float, default=0.1
        The weight, mu, on the logarithmic barrier term at the first outer iteration.
        It is divided by up to 10 at every subsequent outer iteration.
    function_tolerance : float, default=sqrt(machine epsilon)
        The coefficient used in the line search sufficient decrease condition. A step
        is accepted when the barrier objective decreases by more than this value times
        the squared norm of the barrier gradient.
    feasibility_tolerance : float, default=1e-3
        Steps to a bound shorter than this are reported (when verbose) by the feasible
        step calculation.
    typical_scale : vector, optional
        Typical magnitude of each variable. When the Hessian approximation becomes
        ill-conditioned along a step, it is replaced by diag(typical_scale^2). Defaults
        to all ones.
    max_outer_iterations : int, default=100
        The maximum number of barrier parameter updates. This guards against infinite
        loops when the method stalls without triggering a convergence test.
    max_inner_iterations : int, default=200
        The maximum number of quasi-Newton iterations per outer iteration.
    max_root_iterations : int, default=100
        The maximum number of Newton iterations used to calibrate the line search
        model.
    verbose : bool, default=False
        If True, print status along with how long it took to execute each step.

    """

    initial_barrier_parameter: float = 0.1
    function_tolerance: float = float(np.sqrt(np.finfo(np.float64).eps))
    feasibility_tolerance: float = 1e-3
    typical_scale: Optional[npt.NDArray[np.float64]] = None
    max_outer_iterations: int = 100
    max_inner_iterations: int = 200
    max_root_iterations: int = 100
    verbose: bool = False


@dataclass
class OptimizationResult:
    """Wrapper for generic optimization result."""

    solution: npt.NDArray[np.float64]


@dataclass
class QuasiNewtonResult(OptimizationResult):
    """Wrapper for the results of the barrier quasi-Newton method.

    Parameters
    ----------
     solution : vector
        The last accepted iterate. On failure, this is the best point found so far.
     objective_value : float
        Objective value at the solution.
     gradient : vector
        Gradient of the objective at the solution.
     barrier_parameter : float
        Final barrier parameter.
     status : int
        Solution status:
          0 : converged; no improvement during the last outer iteration
          1 : converged; function tolerance test passed
          2 : converged; gradient tolerance test passed
          3 : failed; barrier parameter too small
          4 : failed; line search never accepted a step
          5 : failed; Cholesky factorization failed
          6 : failed; iteration limit reached
     success : bool
        Whether the method converged.
     message : str
        Summary of result.
     nits : int
        Total number of inner iterations.
     outer_nits : int
        Number of outer iterations.
     inner_nits : List[int]
        Number of inner iterations during each outer iteration.
     fevals, gevals : int
        Number of objective and gradient evaluations.
     barrier_values : List[List[float]]
        Barrier objective after each accepted step, grouped by outer iteration. The
        first entry of each group is the value at the start of that outer iteration.
     barrier_parameters : List[float]
        Barrier parameter used during each outer iteration, followed by the final one.
     step_lengths : List[float]
        Step length of each accepted step.
     hessian_updates : List[str]
        Hessian update branch taken at each inner iteration.

    """

    objective_value: float
    gradient: npt.NDArray[np.float64]
    barrier_parameter: float
    status: Status
    success: bool
    message: str
    nits: int
    outer_nits: int
    inner_nits: List[int]
    fevals: int
    gevals: int
    barrier_values: List[List[float]] = field(default_factory=list)
    barrier_parameters: List[float] = field(default_factory=list)
    step_lengths: List[float] = field(default_factory=list)
    hessian_updates: List[str] = field(default_factory=list)

    def plot_convergence(self, ax: Optional[Axes] = None) -> Axes:
        """Plot the barrier objective after each accepted step."""
        if ax is None:
            _, ax = plt.subplots()

        start = 0
        for ii, values in enumerate(self.barrier_values):
            ax.plot(
                [start + jj for jj in range(len(values))],
                values,
                marker="o",
                label=f"μ = {self.barrier_parameters[ii]:.1e}",
            )
            start += len(values) - 1
        ax.set_xlabel("Accepted Steps")
        ax.set_ylabel("Barrier Objective")
        return ax

    def plot_barrier_parameter(self, ax: Optional[Axes] = None) -> Axes:
        """Plot the barrier parameter used in each outer iteration."""
        if ax is None:
            _, ax = plt.subplots()

        ax.stairs(
            values=self.barrier_parameters[: self.outer_nits],
            edges=[ii for ii in range(self.outer_nits + 1)],
            baseline=None,
        )
        ax.set_yscale("log")
        ax.set_xlabel("Outer Iterations")
        ax.set_ylabel("Barrier Parameter")
        return ax


class NewtonStrategy(ABC):
    """Capabilities a quasi-Newton iteration needs from a particular method.

    The driver owns the loop structure and bookkeeping; a strategy owns the state of
    the method and decides how gradients and Hessians are transformed, how steps are
    accepted, and when to stop. Every method that changes the state returns a new one.

    """

    @abstractmethod
    def initialize(self, problem: BoundConstrainedProblem) -> Any:
        """Create the state at the current iterate of the problem."""

    @abstractmethod
    def transform_value(self, state: Any, f: float, x: npt.NDArray[np.float64]) -> float:
        """Map the objective value at x to the merit function value."""

    @abstractmethod
    def transform_gradient(
        self, state: Any, g: npt.NDArray[np.float64], x: npt.NDArray[np.float64]
    ) -> npt.NDArray[np.float64]:
        """Map the objective gradient at x to the merit function gradient."""

    @abstractmethod
    def transform_hessian(
        self, state: Any, H: npt.NDArray[np.float64], x: npt.NDArray[np.float64]
    ) -> npt.NDArray[np.float64]:
        """Map the objective Hessian at x to the merit function Hessian."""

    @abstractmethod
    def update_hessian(
        self, problem: BoundConstrainedProblem, state: Any, k: int
    ) -> Any:
        """Update the Hessian approximation at inner iteration k."""

    @abstractmethod
    def set_aside(self, problem: BoundConstrainedProblem, state: Any) -> Any:
        """Remember the current iterate before taking a step."""

    @abstractmethod
    def compute_direction(
        self, problem: BoundConstrainedProblem, state: Any
    ) -> npt.NDArray[np.float64]:
        """Calculate the search direction."""

    @abstractmethod
    def line_search(
        self,
        problem: BoundConstrainedProblem,
        state: Any,
        direction: npt.NDArray[np.float64],
    ) -> Any:
        """Find an acceptable step along direction.

        Raises BacktrackingLineSearchError if there is none.

        """

    @abstractmethod
    def accept_step(
        self, problem: BoundConstrainedProblem, state: Any, step: Any
    ) -> Any:
        """Commit the step to the problem and refresh the state."""

    @abstractmethod
    def inner_converged(
        self, problem: BoundConstrainedProblem, state: Any, outer_iteration: int
    ) -> bool:
        """Whether the inner iterations have converged."""

    @abstractmethod
    def start_outer(self, problem: BoundConstrainedProblem, state: Any) -> Any:
        """Prepare the state for a new outer iteration."""

    @abstractmethod
    def update_outer(self, problem: BoundConstrainedProblem, state: Any) -> Any:
        """Update the penalty parameter after the inner iterations."""

    @abstractmethod
    def check_convergence(
        self, problem: BoundConstrainedProblem, state: Any
    ) -> Optional[Status]:
        """Return a status code if the outer iterations have converged, else None.

        Raises an OptimizationError if the method cannot continue.

        """

    @abstractmethod
    def merit_value(self, state: Any) -> float:
        """Merit function value at the current iterate."""

    @abstractmethod
    def penalty_parameter(self, state: Any) -> float:
        """Current penalty parameter."""

    @abstractmethod
    def hessian_update_type(self, state: Any) -> str:
        """Name of the branch taken by the most recent Hessian update."""


class QuasiNewtonDriver:
    """Outer/inner quasi-Newton iteration.

    Each outer iteration runs inner iterations with a fixed penalty parameter: update
    the Hessian approximation, set the current iterate aside, compute a direction, and
    line search along it. A failed line search ends the inner iterations. After the
    inner iterations the penalty parameter is updated and convergence is checked.

    """

    def __init__(
        self,
        problem: BoundConstrainedProblem,
        strategy: NewtonStrategy,
        settings: Optional[OptimizationSettings] = None,
    ) -> None:
        self.problem = problem
        self.strategy = strategy
        if settings is None:
            self.settings: OptimizationSettings = OptimizationSettings()
        else:
            self.settings = settings

    def run(self) -> QuasiNewtonResult:
        """Run the method to termination.

        Returns
        -------
         res : QuasiNewtonResult
            The result, whether or not the method converged.

        """
        problem = self.problem
        strategy = self.strategy
        settings = self.settings

        state = strategy.initialize(problem)

        barrier_values: List[List[float]] = []
        barrier_parameters: List[float] = []
        step_lengths: List[float] = []
        hessian_updates: List[str] = []
        inner_nits: List[int] = []
        nits = 0
        accepted_steps = 0
        status: Optional[Status] = None
        message = ""

        if settings.verbose:
            overall_start_time = time.time()
            print("  Starting barrier quasi-Newton method")

        outer_nits = 0
        while status is None:
            if outer_nits >= settings.max_outer_iterations:
                status = STATUS_ITERATION_LIMIT
                break

            outer_nits += 1
            state = strategy.start_outer(problem, state)
            barrier_parameters.append(strategy.penalty_parameter(state))
            barrier_values.append([strategy.merit_value(state)])
            if settings.verbose:
                print(
                    f"  {outer_nits:02d} Beginning outer iteration with "
                    f"mu={strategy.penalty_parameter(state):.3g}"
                )
                start_time = time.time()

            k = 0
            try:
                while k < settings.max_inner_iterations:
                    state = strategy.update_hessian(problem, state, k)
                    hessian_updates.append(strategy.hessian_update_type(state))
                    k += 1
                    nits += 1

                    state = strategy.set_aside(problem, state)
                    direction = strategy.compute_direction(problem, state)

                    try:
                        step = strategy.line_search(problem, state, direction)
                    except BacktrackingLineSearchError as e:
                        if settings.verbose:
                            print(f"    {k:02d} Line search failed: {e}")
                        break

                    state = strategy.accept_step(problem, state, step)
                    accepted_steps += 1
                    step_lengths.append(step.step_length)
                    barrier_values[-1].append(strategy.merit_value(state))
                    if settings.verbose:
                        print(
                            f"    {k:02d} step={step.step_length:.6g}, "
                            f"φ={strategy.merit_value(state):.10g}, "
                            f"f={problem.f:.10g}"
                        )

                    if strategy.inner_converged(problem, state, outer_nits):
                        break
            except NewtonStepError as e:
                inner_nits.append(k)
                status = STATUS_FACTORIZATION_FAILED
                message = f"{MESSAGES[status]}: {e}"
                break

            inner_nits.append(k)
            if settings.verbose:
                end_time = time.time()
                print(
                    f"  {outer_nits:02d} Outer iteration completed in "
                    f"{1000 * (end_time - start_time):.03f} ms after {k} "
                    "inner iteration(s)"
                )

            state = strategy.update_outer(problem, state)
            try:
                status = strategy.check_convergence(problem, state)
            except OptimizationError as e:
                status = STATUS_BARRIER_PARAMETER_TOO_SMALL
                message = str(e)

        if status == STATUS_STALLED and accepted_steps == 0:
            status = STATUS_LINE_SEARCH_FAILED

        barrier_parameters.append(strategy.penalty_parameter(state))
        if not message:
            message = MESSAGES[status]
        success = status in (
            STATUS_STALLED,
            STATUS_FUNCTION_TOLERANCE,
            STATUS_GRADIENT_TOLERANCE,
        )

        if settings.verbose:
            overall_end_time = time.time()
            print(
                f"  Barrier quasi-Newton method completed in "
                f"{1000 * (overall_end_time - overall_start_time):.03f} ms: {message}"
            )

        return QuasiNewtonResult(
            solution=problem.x,
            objective_value=problem.f,
            gradient=problem.g,
            barrier_parameter=strategy.penalty_parameter(state),
            status=status,
            success=success,
            message=message,
            nits=nits,
            outer_nits=outer_nits,
            inner_nits=inner_nits,
            fevals=problem.fevals,
            gevals=problem.gevals,
            barrier_values=barrier_values,
            barrier_parameters=barrier_parameters,
            step_lengths=step_lengths,
            hessian_updates=hessian_updates,
        )


class Optimizer(ABC):
    """Base class for an optimizer."""

    def __init__(
        self,
        settings: Optional[OptimizationSettings] = None,
        **kwargs,
    ) -> None:
        """Initialize optimizer."""
        if settings is None:
            self.settings: OptimizationSettings = OptimizationSettings()
        else:
            self.settings = settings

    @abstractmethod
    def solve(
        self, x0: Optional[npt.NDArray[np.float64]] = None, **kwargs
    ) -> OptimizationResult:
        """Solve optimization problem.

        Parameters
        ----------
         x0 : vector, optional
            Initial guess.

        Returns
        -------
         res : OptimizationResult
            The solution.

        """
