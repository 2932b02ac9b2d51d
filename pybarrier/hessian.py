"""BFGS approximation of the barrier Hessian."""

from typing import Literal, Optional, Tuple

import numpy as np
import numpy.typing as npt

from .barrier import PreviousIterate

HessianUpdateType = Literal["restart", "skip-curvature", "skip-secant", "reset", "bfgs"]

EPS = np.finfo(np.float64).eps
SQRT_EPS = np.sqrt(EPS)
RESET_TOLERANCE = 1e-8


def initial_hessian(
    x: npt.NDArray[np.float64],
    barrier_gradient: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Scaled identity used at the start of every outer iteration.

    The scale is max(1, ||g||) / max(1e-30, max_i x_i). If no coordinate of x is
    positive, the denominator falls back to 1 so the matrix stays positive definite.

    """
    n = x.shape[0]
    xmax = np.max(x) if n > 0 else 0.0
    typx = max(1e-30, xmax) if xmax > 0.0 else 1.0
    scale = max(1.0, float(np.linalg.norm(barrier_gradient))) / typx
    return scale * np.eye(n)


def update_hessian(
    H: npt.NDArray[np.float64],
    x: npt.NDArray[np.float64],
    barrier_gradient: npt.NDArray[np.float64],
    previous: Optional[PreviousIterate],
    typical_scale: Optional[npt.NDArray[np.float64]] = None,
) -> Tuple[npt.NDArray[np.float64], HessianUpdateType]:
    """Update the Hessian approximation with the latest step.

    Parameters
    ----------
     H : matrix
        Current approximation. Not modified.
     x : vector
        Current iterate.
     barrier_gradient : vector
        Barrier gradient at x.
     previous : PreviousIterate
        Snapshot taken before the step that led to x. If None, restart.
     typical_scale : vector, optional
        Typical magnitude of each variable, used to rebuild H when it has become
        ill-conditioned along the step. Defaults to all ones.

    Returns
    -------
     H_new : matrix
        Updated approximation (always a new array).
     update_type : str
        Which branch was taken:
          "restart" : scaled identity, see `initial_hessian`
          "skip-curvature" : y^T s too small, H kept
          "skip-secant" : H * s already matches y, H kept
          "reset" : s^T H s too small, H replaced by diag(typical_scale^2)
          "bfgs" : rank-two update

    """
    if previous is None:
        return initial_hessian(x, barrier_gradient), "restart"

    y = barrier_gradient - previous.barrier_gradient
    s = x - previous.x

    yts = np.dot(y, s)
    snorm = np.linalg.norm(s)
    ynorm = np.linalg.norm(y)
    if yts <= SQRT_EPS * snorm * ynorm:
        return H.copy(), "skip-curvature"

    Bs = H @ s
    res = y - Bs
    if np.max(np.abs(res)) <= SQRT_EPS:
        return H.copy(), "skip-secant"

    sBs = np.dot(s, Bs)
    if sBs <= RESET_TOLERANCE * snorm * snorm:
        if typical_scale is None:
            typical_scale = np.ones_like(x)
        return np.diag(typical_scale * typical_scale), "reset"

    H_new = H - np.outer(Bs, Bs) / sBs + np.outer(y, y) / yts
    # Symmetrize to undo round-off.
    return 0.5 * (H_new + H_new.T), "bfgs"
