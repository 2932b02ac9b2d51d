"""Barrier quasi-Newton method for bound-constrained minimization."""

from .barrier import (
    BarrierSolverState,
    PreviousIterate,
    barrier_gradient,
    barrier_hessian,
    barrier_objective,
    is_strictly_feasible,
)
from .exceptions import (
    BacktrackingLineSearchError,
    BarrierParameterError,
    ConstraintBoundaryError,
    InterpolationError,
    InvalidDescentDirectionError,
    NewtonStepError,
    OptimizationError,
    SevereCurvatureError,
)
from .hessian import initial_hessian, update_hessian
from .linesearch import LineSearchResult, barrier_line_search
from .numerical_helpers import (
    max_feasible_step,
    search_direction,
    solve_cholesky,
    solve_scalar_newton,
)
from .optimization import (
    NewtonStrategy,
    OptimizationResult,
    OptimizationSettings,
    Optimizer,
    QuasiNewtonDriver,
    QuasiNewtonResult,
)
from .problem import (
    NO_LOWER_BOUND,
    NO_UPPER_BOUND,
    BoundConstrainedProblem,
    FunctionProblem,
)
from .solver import BarrierQuasiNewtonSolver, BarrierStrategy, minimize

__all__ = [
    "BarrierQuasiNewtonSolver",
    "BarrierStrategy",
    "minimize",
    "BoundConstrainedProblem",
    "FunctionProblem",
    "NO_LOWER_BOUND",
    "NO_UPPER_BOUND",
    "OptimizationSettings",
    "OptimizationResult",
    "QuasiNewtonResult",
    "Optimizer",
    "NewtonStrategy",
    "QuasiNewtonDriver",
    "BarrierSolverState",
    "PreviousIterate",
    "barrier_objective",
    "barrier_gradient",
    "barrier_hessian",
    "is_strictly_feasible",
    "initial_hessian",
    "update_hessian",
    "LineSearchResult",
    "barrier_line_search",
    "max_feasible_step",
    "search_direction",
    "solve_cholesky",
    "solve_scalar_newton",
    "BacktrackingLineSearchError",
    "BarrierParameterError",
    "ConstraintBoundaryError",
    "InterpolationError",
    "InvalidDescentDirectionError",
    "NewtonStepError",
    "OptimizationError",
    "SevereCurvatureError",
]
