"""
Newton corrector for points on the solution curve.

The equation system has one unknown more than equations. To obtain a square system, one unknown ``x[index]`` (the local parameter) is held fixed at a prescribed ``value``: the residual is augmented by the row ``x[index] - value``, the Jacobian by the unit row ``e_index``.
"""

from dataclasses import dataclass
from enum import Enum
import numpy as np

from picont.equations.EquationSystem import EquationSystem
from picont.errors import CorrectorDiverged, TooManyCorrectorSteps
from picont.solvers.counters import Counters
from picont.solvers.linalg import DenseSolver


class JacobianUpdate(Enum):
    """When the :py:class:`NewtonSolver` evaluates and factors the Jacobian anew."""

    EVERY_STEP = 0
    """Full Newton method."""
    FIRST_AND_LAST = 1
    """Chord method, refreshed in the first and in the last admissible iteration."""
    FIRST_AND_ON_FAILURE = 2
    """Chord method, refreshed in the first iteration and whenever the residual fails to decrease."""


@dataclass
class Correction:
    """Result of a successful Newton correction."""

    x: np.ndarray
    iterations: int
    residual_norm: float
    step_norm: float
    convergence_rate: float
    """Ratio of the last two step norms. Small values indicate fast convergence."""


def augmented_residual(
    system: EquationSystem, x: np.ndarray, index: int, value: float, counters=None
) -> np.ndarray:
    """Residual of the system at ``x``, augmented by ``x[index] - value``."""
    if counters is not None:
        counters.residual_evaluations += 1
    residual = system.evaluate(x)
    return np.append(residual, x[index] - value)


def augmented_jacobian(
    system: EquationSystem, x: np.ndarray, border: np.ndarray | int, counters=None
) -> np.ndarray:
    """Jacobian of the system at ``x`` with one border row appended.

    ``border`` is either an index (the border row becomes the corresponding unit vector) or a full row vector.
    """
    if counters is not None:
        counters.jacobian_evaluations += 1
    jac = system.evaluate_jacobian(x)
    if np.ndim(border) == 0:
        row = np.zeros(jac.shape[1])
        row[border] = 1.0
    else:
        row = np.asarray(border, dtype=float)
    return np.vstack((jac, row))


class NewtonSolver:
    """
    Implements Newton's method for correcting a predicted point back onto the solution curve of an underdetermined :py:class:`~picont.equations.EquationSystem.EquationSystem`.

    Convergence is tested with Euclidean norms: both the residual norm and the norm of the last Newton step must not exceed ``abs_tolerance + rel_tolerance * |x|``. When correcting the starting point, only the residual test applies.

    Attributes:
    -----------
    num_iter : int
        Number of iterations performed in the last call to :py:meth:`solve`.
    converged : bool
        Indicates whether the last solution procedure has converged.
    max_iterations : int
        Maximum number of allowed iterations.
    jacobian_update : JacobianUpdate
        Policy for re-evaluating the Jacobian.
    verbose : bool
        If True, prints progress information.

    """

    def __init__(
        self,
        abs_tolerance: float = 1e-8,
        rel_tolerance: float = 1e-8,
        max_iterations: int = 20,
        jacobian_update: JacobianUpdate = JacobianUpdate.EVERY_STEP,
        verbose: bool = False,
    ):
        if abs_tolerance < 0 or rel_tolerance < 0:
            raise ValueError("Tolerances must be non-negative")
        if max_iterations < 1:
            raise ValueError("At least one Newton iteration must be allowed")

        self.converged = False
        self.num_iter: int = 0

        # Parameters
        self.abs_tolerance = abs_tolerance
        self.rel_tolerance = rel_tolerance
        self.max_iterations = max_iterations
        self.jacobian_update = JacobianUpdate(jacobian_update)
        self.verbose = verbose

    def reset(self) -> None:
        """
        Reset the state of the solver.
        """

        self.converged = False
        self.num_iter = 0

    def check_converged(self, x, residual_norm, step_norm, start=False) -> bool:
        tolerance = self.abs_tolerance + self.rel_tolerance * np.linalg.norm(x)
        if residual_norm > tolerance:
            return False
        return start or step_norm <= tolerance

    def _refresh_due(self) -> bool:
        match self.jacobian_update:
            case JacobianUpdate.EVERY_STEP:
                return True
            case JacobianUpdate.FIRST_AND_LAST:
                return self.num_iter in (1, self.max_iterations)
            case _:
                return self.num_iter == 1

    def solve(
        self,
        system: EquationSystem,
        x0: np.ndarray,
        index: int,
        value: float = None,
        linear_solver=None,
        start: bool = False,
        counters: Counters = None,
    ) -> Correction:
        """
        Applies Newton's method to the system augmented by ``x[index] = value``, starting from ``x0``.

        At least one Newton step is always performed. The unknowns of ``system`` are left at the last evaluated iterate.

        Parameters
        ----------

        system : EquationSystem
            Underdetermined equation system with ``N`` unknowns and ``N - 1`` equations.
        x0 : np.ndarray
            Initial guess (predicted point).
        index : int
            Index of the unknown that is held fixed.
        value : float, optional
            Value at which ``x[index]`` is held. Defaults to ``x0[index]``.
        linear_solver : DenseSolver or BandedSolver, optional
            Solver for the augmented linear systems. Defaults to a :py:class:`~picont.solvers.linalg.DenseSolver`.
        start : bool, optional
            If ``True``, only the residual must become small (correction of the starting point).
        counters : Counters, optional
            Work statistics to be updated.

        Returns
        -------

        Correction
            The corrected point and convergence information.

        Raises
        ------

        :py:class:`~picont.errors.CorrectorDiverged`
            If the residual norm increases although the Jacobian is up to date.
        :py:class:`~picont.errors.TooManyCorrectorSteps`
            If ``max_iterations`` iterations do not suffice.
        :py:class:`~picont.errors.SingularJacobian`
            If the augmented Jacobian is singular.
        """
        if linear_solver is None:
            linear_solver = DenseSolver()
        if counters is None:
            counters = Counters()

        x = np.array(x0, dtype=float)
        if value is None:
            value = x[index]

        self.reset()
        residual = augmented_residual(system, x, index, value, counters)
        residual_norm = np.linalg.norm(residual)
        step_norm = np.inf
        previous_step_norm = None
        rate = 0.0
        factorization = None
        fresh = False

        if self.verbose:
            print(f"Initial guess: |r| = {residual_norm:8.3g}")

        while True:
            if self.num_iter >= self.max_iterations:
                if self.verbose:
                    print(f" Did not converge after {self.num_iter} iterations")
                raise TooManyCorrectorSteps(
                    f"Newton corrector did not converge within {self.max_iterations} iterations (|r| = {residual_norm:.3g})",
                    iterations=self.num_iter,
                    residual_norm=residual_norm,
                )
            self.num_iter += 1
            counters.corrector_steps += 1

            if factorization is None or self._refresh_due():
                factorization = self._factor(system, x, index, linear_solver, counters)
                fresh = True

            counters.solves += 1
            delta_x = factorization.solve(-residual)
            # the held unknown must not drift by roundoff
            delta_x[index] = value - x[index]
            x_new = x + delta_x
            residual_new = augmented_residual(system, x_new, index, value, counters)
            residual_norm_new = np.linalg.norm(residual_new)
            step_norm_new = np.linalg.norm(delta_x)

            if self.verbose:
                print(
                    f"Newton iteration {self.num_iter:2d}, |r| = {residual_norm_new:8.3g}, |dx| = {step_norm_new:8.3g}"
                )

            converged = self.check_converged(
                x_new, residual_norm_new, step_norm_new, start
            )
            if not converged and residual_norm_new > residual_norm:
                if (
                    not fresh
                    and self.jacobian_update is JacobianUpdate.FIRST_AND_ON_FAILURE
                ):
                    # discard the step and retry from x with an up-to-date Jacobian
                    factorization = self._factor(
                        system, x, index, linear_solver, counters
                    )
                    fresh = True
                    continue
                raise CorrectorDiverged(
                    f"Newton corrector diverged in iteration {self.num_iter}: |r| grew from {residual_norm:.3g} to {residual_norm_new:.3g}",
                    iterations=self.num_iter,
                    residual_norm=residual_norm_new,
                )

            x, residual = x_new, residual_new
            residual_norm, step_norm = residual_norm_new, step_norm_new
            if previous_step_norm:
                rate = step_norm / previous_step_norm
            previous_step_norm = step_norm
            fresh = False

            if converged:
                break

        self.converged = True
        if self.verbose:
            print(f" Converged after {self.num_iter} iterations")

        return Correction(
            x=x,
            iterations=self.num_iter,
            residual_norm=residual_norm,
            step_norm=step_norm,
            convergence_rate=rate,
        )

    def _factor(self, system, x, index, linear_solver, counters):
        jac = augmented_jacobian(system, x, index, counters)
        counters.factorizations += 1
        return linear_solver.factor(jac)
