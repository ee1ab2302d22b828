"""
Tangent computation and selection of the local parameter.

The tangent ``t`` at a point ``x`` of the curve spans the null space of the Jacobian ``DF(x)``. It is obtained from the bordered system::

    [ DF(x) ] z = [ 0 ]
    [ e_k^T ]     [ 1 ]

and normalized to unit Euclidean length. The orientation of the curve is stored as the sign of ``det([DF(x); t^T])``, which is constant along a regular curve. Because ``det([DF; t^T]) = det([DF; e_k^T]) * sign(t . z)``, the determinant sign of the factored bordered matrix fixes the sign of every subsequent tangent, independently of the index ``k``.
"""

from dataclasses import dataclass
import numpy as np

from picont.equations.EquationSystem import EquationSystem
from picont.errors import NullTangent
from picont.solvers.linalg import DenseSolver
from picont.solvers.newton import augmented_jacobian


@dataclass
class Tangent:
    vector: np.ndarray
    """Unit tangent vector."""
    determinant_sign: int
    """Sign of ``det([DF; t^T])``, i.e., the orientation of the curve."""
    parameter_index: int
    """Index ``k`` of the border row used to compute the tangent."""


def compute_tangent(
    system: EquationSystem,
    x: np.ndarray,
    parameter_index: int,
    linear_solver=None,
    previous: Tangent = None,
    direction: int = 1,
    counters=None,
) -> Tangent:
    """
    Compute the oriented unit tangent of the solution curve at ``x``.

    Parameters
    ----------

    system : EquationSystem
        Underdetermined equation system.
    x : np.ndarray
        Point on the curve.
    parameter_index : int
        Index ``k`` of the unit border row.
    linear_solver : DenseSolver or BandedSolver, optional
        Solver for the bordered system.
    previous : Tangent, optional
        Tangent at the previous point. Its orientation is continued. If ``None``, the tangent is oriented such that ``direction * t[k] > 0``.
    direction : int, optional
        Initial direction (+1 or -1) with respect to ``x[parameter_index]``. Only used if ``previous`` is ``None``.

    Raises
    ------

    :py:class:`~picont.errors.SingularJacobian`
        If the bordered matrix is singular.
    :py:class:`~picont.errors.NullTangent`
        If the solution vanishes or is not finite.
    """
    if linear_solver is None:
        linear_solver = DenseSolver()

    jac = augmented_jacobian(system, x, parameter_index, counters)
    if counters is not None:
        counters.factorizations += 1
        counters.solves += 1
    factorization = linear_solver.factor(jac)
    rhs = np.zeros(jac.shape[0])
    rhs[-1] = 1.0
    z = factorization.solve(rhs)

    norm = np.linalg.norm(z)
    if not np.isfinite(norm) or norm == 0:
        raise NullTangent(f"Tangent vanished at x = {x}")

    if previous is None:
        # z[k] == 1, so t[k] has the sign of the direction
        sign = 1 if direction > 0 else -1
        orientation = factorization.determinant_sign * sign
    else:
        orientation = previous.determinant_sign
        sign = orientation * factorization.determinant_sign

    return Tangent(
        vector=sign * z / norm,
        determinant_sign=orientation,
        parameter_index=parameter_index,
    )


def select_parameter(
    tangent: np.ndarray, pinned_index: int = None, pin: bool = False
) -> tuple[int, int]:
    """
    Choose the unknown that parameterizes the curve best near the current point.

    Returns the index of the largest tangent component in magnitude, together with the runner-up as fallback. If ``pin`` is ``True``, the ``pinned_index`` is returned instead. Indices outside ``[0, N-1]`` are replaced by ``N - 1``.
    """
    n = tangent.size
    if pin:
        index = sanitize_index(pinned_index, n)
        return index, index

    order = np.argsort(-np.abs(tangent), kind="stable")
    fallback = order[1] if n > 1 else order[0]
    return int(order[0]), int(fallback)


def sanitize_index(index, n: int) -> int:
    """Return ``index`` if it lies in ``[0, n-1]`` and the last index ``n - 1`` otherwise."""
    if index is None or not 0 <= index < n:
        return n - 1
    return int(index)
