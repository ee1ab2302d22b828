"""
Detection of special points between two consecutive continuation points.

* A *target point* is a point of the curve where ``x[index]`` attains a prescribed value. It is bracketed if ``x[index] - value`` changes sign between the previous and the current point.
* A *limit point* with respect to ``x[index]`` is a point where ``x[index]`` is locally extremal along the curve, i.e., where the tangent component ``t[index]`` vanishes. It is bracketed if ``t[index]`` changes sign.

Both finders raise the corresponding :py:class:`~picont.errors.ContinuationWarning` subclass if the search fails. Fatal errors of the user equations propagate unchanged.
"""

from dataclasses import dataclass
import numpy as np
from scipy.optimize import brentq

from picont.equations.EquationSystem import EquationSystem
from picont.errors import (
    CorrectorDiverged,
    TooManyCorrectorSteps,
    SingularJacobian,
    NullTangent,
    TargetSearchFailed,
    LimitSearchFailed,
    LimitSearchStepLimit,
)
from picont.solvers.newton import NewtonSolver
from picont.solvers.tangent import Tangent, compute_tangent

_SEARCH_FAILURES = (CorrectorDiverged, TooManyCorrectorSteps, SingularJacobian, NullTangent)


@dataclass
class EventPoint:
    x: np.ndarray
    arclength: float
    tangent: Tangent = None
    iterations: int = 0


def interpolate_arclength(s_prev: float, s_cur: float, theta: float) -> float:
    """Arclength at the fraction ``theta`` of the interval, strictly inside ``(s_prev, s_cur)``."""
    s = s_prev + theta * (s_cur - s_prev)
    return min(max(s, np.nextafter(s_prev, s_cur)), np.nextafter(s_cur, s_prev))


def target_bracketed(x_prev, x_cur, index: int, value: float) -> bool:
    """``x[index] - value`` changes sign on the interval. A zero at the current point counts, a zero at the previous point does not."""
    a = x_prev[index] - value
    b = x_cur[index] - value
    return b == 0 or a * b < 0


def find_target_point(
    system: EquationSystem,
    solver: NewtonSolver,
    x_prev: np.ndarray,
    x_cur: np.ndarray,
    s_prev: float,
    s_cur: float,
    index: int,
    value: float,
    linear_solver=None,
    counters=None,
) -> EventPoint:
    """
    Compute the point with ``x[index] == value`` between two bracketing continuation points.

    The initial guess interpolates linearly between both points; it is corrected by the Newton solver holding ``x[index]`` at ``value``.

    Raises
    ------

    :py:class:`~picont.errors.TargetSearchFailed`
        If the correction fails.
    """
    a = x_prev[index] - value
    b = x_cur[index] - value
    theta = a / (a - b)
    x_guess = x_prev + theta * (x_cur - x_prev)
    x_guess[index] = value

    try:
        correction = solver.solve(
            system,
            x_guess,
            index,
            value,
            linear_solver=linear_solver,
            counters=counters,
        )
    except _SEARCH_FAILURES as exc:
        raise TargetSearchFailed(
            f"Could not correct the target point x[{index}] = {value}: {exc}"
        ) from exc

    return EventPoint(
        x=correction.x,
        arclength=interpolate_arclength(s_prev, s_cur, theta),
        iterations=correction.iterations,
    )


def limit_bracketed(tangent_prev: np.ndarray, tangent_cur: np.ndarray, index: int) -> bool:
    """``t[index]`` changes sign on the interval. A zero at the current point counts, a zero at the previous point does not."""
    a = tangent_prev[index]
    b = tangent_cur[index]
    return (b == 0 and a != 0) or a * b < 0


def find_limit_point(
    system: EquationSystem,
    solver: NewtonSolver,
    x_prev: np.ndarray,
    x_cur: np.ndarray,
    tangent_prev: Tangent,
    tangent_cur: Tangent,
    s_prev: float,
    s_cur: float,
    index: int,
    hold_index: int,
    linear_solver=None,
    xtol: float = 1e-12,
    max_iterations: int = 20,
    counters=None,
) -> EventPoint:
    """
    Compute the point between two continuation points at which the tangent component ``t[index]`` vanishes.

    The unknown is the fraction ``theta`` of the secant from ``x_prev`` to ``x_cur``. For every trial ``theta``, the secant point is corrected onto the curve holding ``x[hold_index]`` fixed, and the tangent there is computed with the orientation of ``tangent_prev``. The root of ``t[index](theta)`` is bracketed by ``theta = 0`` and ``theta = 1`` and found by Brent's method.

    Parameters
    ----------

    hold_index : int
        Unknown held fixed during the corrections. Must differ from ``index``, since ``x[index]`` is not monotone near a limit point.
    xtol : float, optional
        Absolute tolerance of the root finder on ``theta``.
    max_iterations : int, optional
        Maximum number of root-finder iterations.

    Raises
    ------

    :py:class:`~picont.errors.LimitSearchFailed`
        If a correction or tangent evaluation fails.
    :py:class:`~picont.errors.LimitSearchStepLimit`
        If the root finder exceeds ``max_iterations``.
    """
    if hold_index == index:
        raise ValueError("The held unknown must differ from the limit index")

    evaluated = {0.0: (x_prev, tangent_prev, 0), 1.0: (x_cur, tangent_cur, 0)}

    def tangent_component(theta):
        if theta not in evaluated:
            x_guess = x_prev + theta * (x_cur - x_prev)
            correction = solver.solve(
                system,
                x_guess,
                hold_index,
                linear_solver=linear_solver,
                counters=counters,
            )
            tangent = compute_tangent(
                system,
                correction.x,
                hold_index,
                linear_solver,
                previous=tangent_prev,
                counters=counters,
            )
            evaluated[theta] = (correction.x, tangent, correction.iterations)
        return evaluated[theta][1].vector[index]

    try:
        theta, info = brentq(
            tangent_component,
            0.0,
            1.0,
            xtol=xtol,
            maxiter=max_iterations,
            full_output=True,
            disp=False,
        )
        if not info.converged:
            raise LimitSearchStepLimit(
                f"Limit point search for x[{index}] did not converge within {max_iterations} iterations"
            )
        tangent_component(theta)
    except _SEARCH_FAILURES as exc:
        raise LimitSearchFailed(
            f"Could not locate the limit point of x[{index}]: {exc}"
        ) from exc

    x, tangent, iterations = evaluated[theta]
    return EventPoint(
        x=x,
        arclength=interpolate_arclength(s_prev, s_cur, theta),
        tangent=tangent,
        iterations=iterations,
    )
