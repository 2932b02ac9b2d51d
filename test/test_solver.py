"""Test the barrier quasi-Newton solver."""

from dataclasses import replace
from typing import List

import matplotlib

matplotlib.use("Agg")

import numpy as np
import numpy.typing as npt
import pytest
from matplotlib.axes import Axes
from scipy import linalg
from scipy.optimize import rosen, rosen_der

from pybarrier.barrier import (
    BarrierSolverState,
    barrier_gradient,
    barrier_objective,
    is_strictly_feasible,
)
from pybarrier.exceptions import BarrierParameterError, OptimizationError
from pybarrier.optimization import (
    OptimizationSettings,
    QuasiNewtonDriver,
    QuasiNewtonResult,
)
from pybarrier.problem import BoundConstrainedProblem, FunctionProblem
from pybarrier.solver import BarrierQuasiNewtonSolver, BarrierStrategy, minimize


class RecordingProblem(FunctionProblem):
    """Remembers every accepted iterate."""

    def __init__(self, *args, **kwargs) -> None:
        self.accepted: List[npt.NDArray[np.float64]] = []
        super().__init__(*args, **kwargs)

    def accept(self, x, f, g=None) -> None:
        """Make x the current iterate."""
        super().accept(x, f, g)
        self.accepted.append(self.x)


class CheckedStrategy(BarrierStrategy):
    """Verifies invariants of the barrier state during the run."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.factorizations = 0
        self.commits = 0

    def update_hessian(
        self, problem: BoundConstrainedProblem, state: BarrierSolverState, k: int
    ) -> BarrierSolverState:
        """Require a symmetric positive definite Hessian after every update."""
        state = super().update_hessian(problem, state, k)
        np.testing.assert_allclose(state.hessian, state.hessian.T)
        linalg.cho_factor(state.hessian)
        self.factorizations += 1
        return state

    def accept_step(self, problem, state, step) -> BarrierSolverState:
        """Require the stored barrier state to match the committed iterate."""
        state = super().accept_step(problem, state, step)
        x = problem.x
        assert state.barrier_value == barrier_objective(
            problem.f, x, self.lower, self.upper, state.mu
        )
        np.testing.assert_array_equal(
            state.barrier_gradient,
            barrier_gradient(problem.g, x, self.lower, self.upper, state.mu),
        )
        self.commits += 1
        return state


def _square(x: npt.NDArray[np.float64]) -> float:
    return float(np.dot(x, x))


def _grad_square(x: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    return 2.0 * x


def _square_problem() -> RecordingProblem:
    return RecordingProblem(
        fun=_square,
        jac=_grad_square,
        x0=np.array([1.0]),
        lower=np.array([0.01]),
        upper=np.array([10.0]),
    )


class TestBarrierQuasiNewtonSolver:
    """Test BarrierQuasiNewtonSolver."""

    def test_square(self) -> None:
        """Minimize x^2 on [0.01, 10]; the minimum is at the lower bound."""
        problem = _square_problem()
        res = BarrierQuasiNewtonSolver(problem).solve()

        assert isinstance(res, QuasiNewtonResult)
        assert res.success
        assert res.status in (0, 1, 2)
        assert abs(res.solution[0] - 0.01) < 1e-3
        assert res.objective_value == pytest.approx(res.solution[0] ** 2)
        np.testing.assert_allclose(res.gradient, 2.0 * res.solution)

        # Barrier parameter decreases every outer iteration and stays positive.
        mus = np.array(res.barrier_parameters)
        assert len(mus) == res.outer_nits + 1
        assert np.all(mus > 0)
        assert np.all(np.diff(mus) < 0)

        # Barrier objective never increases within an outer iteration.
        for values in res.barrier_values:
            assert np.all(np.diff(values) <= 0)

    def test_square_feasibility(self) -> None:
        """Every accepted iterate is strictly inside the bounds."""
        problem = _square_problem()
        BarrierQuasiNewtonSolver(problem).solve()

        assert len(problem.accepted) > 0
        for x in problem.accepted:
            assert is_strictly_feasible(x, problem.lower, problem.upper)

    def test_square_invariants(self) -> None:
        """Hessian stays positive definite and barrier state stays consistent."""
        problem = _square_problem()
        strategy = CheckedStrategy(problem.lower, problem.upper)
        res = QuasiNewtonDriver(problem, strategy).run()

        assert res.success
        assert strategy.factorizations == res.nits
        assert strategy.commits == len(res.step_lengths)
        assert len(res.hessian_updates) == res.nits
        assert res.hessian_updates[0] == "restart"

    def test_evaluation_counts(self) -> None:
        """Evaluation counts are reported."""
        problem = _square_problem()
        res = BarrierQuasiNewtonSolver(problem).solve()

        assert res.fevals == problem.fevals
        assert res.gevals == problem.gevals
        assert res.fevals > res.outer_nits
        assert sum(res.inner_nits) == res.nits

    def test_unbounded_quadratic(self) -> None:
        """Without bounds the method is a plain quasi-Newton method."""
        A = np.array([[3.0, 1.0], [1.0, 2.0]])
        b = np.array([1.0, 1.0])
        problem = FunctionProblem(
            fun=lambda x: float(0.5 * x @ A @ x - b @ x),
            jac=lambda x: A @ x - b,
            x0=np.array([1.0, 1.0]),
        )

        strategy = BarrierStrategy(problem.lower, problem.upper)
        state = strategy.initialize(problem)
        np.testing.assert_array_equal(state.barrier_gradient, problem.g)
        assert state.barrier_value == problem.f

        res = BarrierQuasiNewtonSolver(problem).solve()
        assert res.success
        np.testing.assert_allclose(res.solution, np.linalg.solve(A, b), atol=1e-2)

    def test_bounded_quadratic(self) -> None:
        """Some bounds active, some not."""
        c = np.array([-1.0, 0.5, 2.0])
        problem = RecordingProblem(
            fun=lambda x: float(np.sum((x - c) ** 2)),
            jac=lambda x: 2.0 * (x - c),
            x0=np.array([0.5, 0.5, 0.5]),
            lower=np.zeros(3),
            upper=np.ones(3),
        )

        res = BarrierQuasiNewtonSolver(problem).solve()
        assert res.success
        np.testing.assert_allclose(res.solution, [0.0, 0.5, 1.0], atol=1e-2)
        for x in problem.accepted:
            assert is_strictly_feasible(x, problem.lower, problem.upper)

    def test_rosenbrock_in_box(self) -> None:
        """From the classic start the model fit fails on the first step."""
        x0 = np.array([-1.2, 1.0])
        problem = RecordingProblem(
            fun=rosen,
            jac=rosen_der,
            x0=x0,
            lower=np.array([-2.0, -2.0]),
            upper=np.array([0.5, 2.0]),
        )

        res = BarrierQuasiNewtonSolver(problem).solve()
        assert not res.success
        assert res.status == 4
        assert res.outer_nits == 1
        assert res.step_lengths == []
        np.testing.assert_array_equal(res.solution, x0)
        assert problem.accepted == []

    def test_x0(self) -> None:
        """Passing x0 restarts from that point."""
        problem = _square_problem()
        res = BarrierQuasiNewtonSolver(problem).solve(x0=np.array([5.0]))

        assert res.success
        assert abs(res.solution[0] - 0.01) < 1e-3

    @pytest.mark.parametrize("x0", [np.array([0.01]), np.array([-1.0]), np.array([10.0])])
    def test_infeasible_start(self, x0) -> None:
        """The starting point must be strictly inside the bounds."""
        problem = _square_problem()
        fevals, gevals = problem.fevals, problem.gevals
        with pytest.raises(ValueError):
            BarrierQuasiNewtonSolver(problem).solve(x0=x0)

        # Nothing is evaluated or committed at the infeasible point.
        assert problem.fevals == fevals
        assert problem.gevals == gevals
        np.testing.assert_array_equal(problem.x, [1.0])
        assert problem.accepted == []

    def test_invalid_bounds(self) -> None:
        """Lower bounds must be below upper bounds."""
        with pytest.raises(ValueError):
            FunctionProblem(
                fun=_square,
                jac=_grad_square,
                x0=np.array([1.0]),
                lower=np.array([2.0]),
                upper=np.array([1.0]),
            )

    def test_barrier_parameter_too_small(self) -> None:
        """Barrier parameter underflow is a failure, with the last iterate kept."""
        problem = _square_problem()
        settings = OptimizationSettings(initial_barrier_parameter=5e-12)
        res = BarrierQuasiNewtonSolver(problem, settings=settings).solve()

        assert not res.success
        assert res.status == 3
        assert res.barrier_parameter < 1e-12
        assert is_strictly_feasible(res.solution, problem.lower, problem.upper)
        np.testing.assert_array_equal(res.solution, problem.x)

    def test_raise_on_failure(self) -> None:
        """Failures can be raised instead of returned."""
        problem = _square_problem()
        settings = OptimizationSettings(initial_barrier_parameter=5e-12)
        solver = BarrierQuasiNewtonSolver(problem, settings=settings)

        with pytest.raises(BarrierParameterError) as e:
            solver.solve(raise_on_failure=True)
        assert is_strictly_feasible(e.value.last_iterate, problem.lower, problem.upper)

    def test_iteration_limit(self) -> None:
        """Running out of outer iterations is a failure."""
        problem = _square_problem()
        settings = OptimizationSettings(max_outer_iterations=1)
        res = BarrierQuasiNewtonSolver(problem, settings=settings).solve()

        assert not res.success
        assert res.status == 6
        assert res.outer_nits == 1

        with pytest.raises(OptimizationError):
            BarrierQuasiNewtonSolver(problem, settings=settings).solve(
                x0=np.array([1.0]), raise_on_failure=True
            )

    def test_factorization_failure(self) -> None:
        """A Hessian that is not positive definite stops the method."""

        class IndefiniteStrategy(BarrierStrategy):
            def update_hessian(self, problem, state, k):
                return replace(state, hessian=-np.eye(problem.dimension))

        problem = _square_problem()
        strategy = IndefiniteStrategy(problem.lower, problem.upper)
        res = QuasiNewtonDriver(problem, strategy).run()

        assert not res.success
        assert res.status == 5
        np.testing.assert_array_equal(res.solution, [1.0])

    def test_line_search_never_succeeds(self) -> None:
        """If no step is ever accepted, the method fails."""

        class AscentStrategy(BarrierStrategy):
            def compute_direction(self, problem, state):
                return state.barrier_gradient.copy()

        problem = _square_problem()
        strategy = AscentStrategy(problem.lower, problem.upper)
        res = QuasiNewtonDriver(problem, strategy).run()

        assert not res.success
        assert res.status == 4
        assert res.outer_nits == 1
        assert res.step_lengths == []

    def test_typical_scale_validation(self) -> None:
        """typical_scale must have one nonzero entry per variable."""
        problem = _square_problem()
        with pytest.raises(ValueError):
            BarrierStrategy(
                problem.lower,
                problem.upper,
                settings=OptimizationSettings(typical_scale=np.ones(2)),
            )
        with pytest.raises(ValueError):
            BarrierStrategy(
                problem.lower,
                problem.upper,
                settings=OptimizationSettings(typical_scale=np.zeros(1)),
            )

    def test_verbose(self, capsys) -> None:
        """Progress is printed when verbose."""
        problem = _square_problem()
        settings = OptimizationSettings(verbose=True)
        BarrierQuasiNewtonSolver(problem, settings=settings).solve()

        captured = capsys.readouterr()
        assert "Beginning outer iteration" in captured.out
        assert "Hessian update: restart" in captured.out


def test_update_outer() -> None:
    """mu shrinks by a factor of 10 and the barrier state follows it."""
    problem = _square_problem()
    strategy = BarrierStrategy(problem.lower, problem.upper)
    state = strategy.initialize(problem)

    new_state = strategy.update_outer(problem, state)
    assert new_state.mu == pytest.approx(0.01)
    assert new_state.barrier_value == barrier_objective(
        problem.f, problem.x, problem.lower, problem.upper, new_state.mu
    )
    np.testing.assert_array_equal(
        new_state.barrier_gradient,
        barrier_gradient(problem.g, problem.x, problem.lower, problem.upper, 0.01),
    )


@pytest.mark.parametrize(
    "outer_iteration,gnorm,expected",
    [
        (1, 5e-3, True),
        (1, 2e-2, False),
        (2, 5e-3, False),
        (10, 5e-6, True),
        (10, 5e-5, False),
    ],
)
def test_inner_converged(outer_iteration: int, gnorm: float, expected: bool) -> None:
    """Inner tolerance is max(1e-5, 10^-(outer + 1))."""
    problem = _square_problem()
    strategy = BarrierStrategy(problem.lower, problem.upper)
    state = replace(strategy.initialize(problem), barrier_gradient=np.array([gnorm]))

    assert strategy.inner_converged(problem, state, outer_iteration) == expected


def test_minimize() -> None:
    """Functional interface."""
    res = minimize(
        fun=_square,
        jac=_grad_square,
        x0=np.array([1.0, 2.0]),
        lower=np.array([0.5, -1.0]),
        upper=np.array([3.0, 4.0]),
    )

    assert res.success
    np.testing.assert_allclose(res.solution, [0.5, 0.0], atol=1e-2)


def test_plot_convergence() -> None:
    """Plots are drawn on matplotlib axes."""
    res = BarrierQuasiNewtonSolver(_square_problem()).solve()

    assert isinstance(res.plot_convergence(), Axes)
    assert isinstance(res.plot_barrier_parameter(), Axes)


@pytest.mark.parametrize(
    "start_value,expected",
    [
        # f rose as the barrier pushed x from 0.0595 off the lower bound.
        (0.0595**2, None),
        (0.076**2 - 1e-9, 1),
        (0.076**2 + 1e-9, 1),
    ],
)
def test_check_convergence_function_tolerance(start_value: float, expected) -> None:
    """Only a small change in f counts as convergence, whatever its sign."""
    problem = FunctionProblem(
        fun=_square,
        jac=_grad_square,
        x0=np.array([0.076]),
        lower=np.array([0.01]),
        upper=np.array([10.0]),
    )
    strategy = BarrierStrategy(problem.lower, problem.upper)
    state = replace(strategy.initialize(problem), outer_start_value=start_value)

    assert strategy.check_convergence(problem, state) == expected
