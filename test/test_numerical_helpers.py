"""Test numerical helpers."""

import time

import numpy as np
import pytest

from pybarrier.exceptions import NewtonStepError
from pybarrier.numerical_helpers import (
    ROOT_FAILURE,
    max_feasible_step,
    search_direction,
    solve_cholesky,
    solve_scalar_newton,
)


@pytest.mark.parametrize(
    "seed,M",
    [
        (101, 100),
        (201, 200),
        (301, 50),
        (401, 500),
        (501, 13),
    ],
)
def test_solve_cholesky(seed: int, M: int) -> None:
    """Test solving H*x = b by doing it the slow way."""
    np.random.seed(seed)
    H = np.random.randn(M, M)
    H = H @ H.T + np.eye(M)
    b = np.random.randn(M)

    st = time.time()
    x_expected = np.linalg.solve(H, b)
    mt = time.time()
    x = solve_cholesky(H, b)
    et = time.time()

    print(f"np.linalg.solve completed in {1e6 * (mt - st):.03f} us")
    print(f"Cholesky solve completed in {1e6 * (et - mt):.03f} us")

    np.testing.assert_allclose(x, x_expected, rtol=1e-8, atol=1e-8)

    # Verify H*x = b
    np.testing.assert_allclose(H @ x, b, rtol=1e-8, atol=1e-8)


@pytest.mark.parametrize(
    "seed,M",
    [
        (102, 10),
        (202, 20),
        (302, 5),
    ],
)
def test_search_direction(seed: int, M: int) -> None:
    """Direction is a descent direction solving H * d = -g."""
    np.random.seed(seed)
    H = np.random.randn(M, M)
    H = H @ H.T + np.eye(M)
    g = np.random.randn(M)

    d = search_direction(H, g)
    np.testing.assert_allclose(H @ d, -g, rtol=1e-8, atol=1e-8)
    assert np.dot(g, d) < 0


@pytest.mark.parametrize(
    "H",
    [
        np.array([[1.0, 0.0], [0.0, -1.0]]),
        np.array([[1.0, 2.0], [2.0, 1.0]]),
        np.zeros((3, 3)),
        np.array([[np.nan, 0.0], [0.0, 1.0]]),
    ],
)
def test_solve_cholesky_not_positive_definite(H) -> None:
    """Factorization failures are reported, not ignored."""
    with pytest.raises(NewtonStepError):
        solve_cholesky(H, np.ones(H.shape[0]))


def test_max_feasible_step_single_component() -> None:
    """With one positive component, the step is (u_i - x_i) / p_i."""
    x = np.array([1.0, 2.0])
    p = np.array([0.5, 0.0])
    lower = np.array([0.0, 0.0])
    upper = np.array([3.0, np.inf])

    assert max_feasible_step(p, x, lower, upper) == (3.0 - 1.0) / 0.5


def test_max_feasible_step_binding_coordinate() -> None:
    """The tightest coordinate determines the step."""
    x = np.array([1.0, 2.0, 0.0])
    p = np.array([1.0, -4.0, 1.0])
    lower = np.array([0.0, 0.0, -np.inf])
    upper = np.array([3.0, 5.0, np.inf])

    # Limits are 2, 0.5, inf.
    assert max_feasible_step(p, x, lower, upper) == 0.5


@pytest.mark.parametrize(
    "p,lower,upper",
    [
        (np.array([0.0, 0.0]), np.array([0.0, 0.0]), np.array([1.0, 1.0])),
        (np.array([1.0, -1.0]), np.array([-np.inf, -np.inf]), np.array([np.inf, np.inf])),
        (np.array([-1.0, 1.0]), np.array([-np.inf, 0.0]), np.array([1.0, np.inf])),
    ],
)
def test_max_feasible_step_unconstrained(p, lower, upper) -> None:
    """If no coordinate limits the step, it is infinite."""
    x = np.array([0.5, 0.5])
    assert max_feasible_step(p, x, lower, upper) == np.inf


def test_max_feasible_step_clamps_to_zero() -> None:
    """A coordinate already past its bound gives a zero step."""
    x = np.array([4.0, 0.5])
    p = np.array([1.0, 1.0])
    lower = np.array([0.0, 0.0])
    upper = np.array([3.0, 1.0])

    assert max_feasible_step(p, x, lower, upper) == 0.0


def test_max_feasible_step_verbose(capsys) -> None:
    """Coordinates about to hit a bound are reported."""
    x = np.array([0.9999, 0.5])
    p = np.array([1.0, 1.0])
    lower = np.array([0.0, 0.0])
    upper = np.array([1.0, 1.0])

    max_feasible_step(p, x, lower, upper, feasibility_tolerance=1e-3, verbose=True)
    captured = capsys.readouterr()
    assert "Variable 0 hits upper bound" in captured.out
    assert "Variable 1" not in captured.out


@pytest.mark.parametrize("kappa", [0.01, 0.5, 1.0, 10.0, 1000.0])
@pytest.mark.parametrize("mu", [1e-6, 0.1, 1.0])
def test_solve_scalar_newton(kappa: float, mu: float) -> None:
    """The returned y is a root of log(y) + 0.5 * (1/y - y) - kappa."""
    phi1, phi1_prime, phi2_prime, alpha = 1.0, -2.0, 1.0, 0.5
    # Choose phi2 so that the equation has the requested kappa.
    phi2 = 0.5 * alpha * (phi1_prime + phi2_prime) + phi1 - kappa * mu
    actual_kappa = (0.5 * alpha * (phi1_prime + phi2_prime) - phi2 + phi1) / mu

    y = solve_scalar_newton(phi1, phi1_prime, phi2, phi2_prime, alpha, mu)

    assert 0.0 < y < 1.0
    residual = np.log(y) + 0.5 * (1.0 / y - y) - actual_kappa
    assert abs(residual) < 1e-4


@pytest.mark.parametrize("kappa", [0.0, -0.5, -100.0])
def test_solve_scalar_newton_inadequate(kappa: float) -> None:
    """Non-positive kappa means the interpolant is inadequate."""
    mu = 0.1
    phi2 = -kappa * mu

    y = solve_scalar_newton(0.0, 0.0, phi2, 0.0, 1.0, mu)
    assert y == ROOT_FAILURE


def test_solve_scalar_newton_iteration_cap() -> None:
    """Running out of iterations gives the failure sentinel."""
    y = solve_scalar_newton(0.0, 0.0, -0.1, 0.0, 1.0, 0.1, max_iterations=2)
    assert y == ROOT_FAILURE
