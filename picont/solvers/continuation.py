"""

The :py:mod:`picont.solvers.continuation` module follows the solution curve of an underdetermined :py:class:`~picont.equations.EquationSystem.EquationSystem` (``N`` unknowns, ``N - 1`` equations) by predictor-corrector continuation with local parameterization.

The run state is a :py:class:`~picont.solvers.continuation.Continuation` object. Every call of :py:meth:`~picont.solvers.continuation.Continuation.step` returns exactly one new point as a :py:class:`~picont.solvers.continuation.ContinuationResult`:

#. The first call corrects the starting point.
#. Every further call computes the tangent at the current point, chooses the unknown with the largest tangent component as local parameter, predicts along the tangent and corrects with Newton's method while the local parameter is held fixed. If the correction fails, the step is halved and the prediction is repeated.
#. After every accepted point, the interval to the previous point is searched for a target point and for a limit point. Special points are returned before the continuation point that revealed them: the target point first, then the limit point in the following call, then the continuation point.

The generator function :py:func:`~picont.solvers.continuation.continuator` wraps this into a ``for`` loop.
"""

from collections import deque
from collections.abc import Iterator
from copy import copy
from dataclasses import dataclass, field
from enum import Enum
import warnings
import numpy as np

from picont.equations.EquationSystem import EquationSystem
from picont.errors import (
    ContinuationError,
    ContinuationWarning,
    CorrectorDiverged,
    InvalidDimension,
    StepTooSmall,
    TooManyCorrectorSteps,
    UnclassifiedError,
)
from picont.math import JacobianReport, compare_jacobian
from picont.solvers.counters import Counters
from picont.solvers.events import (
    find_limit_point,
    find_target_point,
    limit_bracketed,
    target_bracketed,
)
from picont.solvers.linalg import DenseSolver
from picont.solvers.newton import NewtonSolver
from picont.solvers.stepsize import StepControl
from picont.solvers.tangent import (
    Tangent,
    compute_tangent,
    sanitize_index,
    select_parameter,
)


class State(Enum):
    UNCHECKED = 0
    """The starting point has not been corrected yet."""
    START_CORRECTED = 1
    """Only the corrected starting point exists."""
    TWO_POINTS_OLD_TANGENT = 2
    """Two points exist; the stored tangent belongs to the older one."""
    TWO_POINTS_NEW_TANGENT = 3
    """Two points exist; the stored tangent belongs to the newer one."""


class PointKind(Enum):
    START = "start"
    CONTINUATION = "continuation"
    TARGET = "target"
    LIMIT = "limit"


class Request(Enum):
    """Request codes for :py:meth:`Continuation.request`. Negative codes are diagnostics that leave the run state untouched."""

    STEP = 0
    CHECK_JACOBIAN = -1
    COMPARE_JACOBIAN = -2
    PRINT_JACOBIAN = -3


@dataclass
class ContinuationResult:
    x: np.ndarray
    kind: PointKind
    arclength: float
    parameter_index: int
    tangent: np.ndarray = None
    iterations: int = 0
    warnings: list[ContinuationWarning] = field(default_factory=list)


class Continuation:
    """
    Run state and driver of one continuation run.

    Parameters
    ----------

    system : :py:class:`~picont.equations.EquationSystem.EquationSystem`
        Underdetermined system with ``N`` unknowns and ``N - 1`` equations. Its current unknowns are the starting point, which need not be solved already.
    solver : :py:class:`~picont.solvers.newton.NewtonSolver`, optional
        Newton corrector. A default solver is created if ``None``.
    linear_solver : :py:class:`~picont.solvers.linalg.DenseSolver` or :py:class:`~picont.solvers.linalg.BandedSolver`, optional
        Solver for the bordered linear systems. Default is dense.
    stepsize : float, optional
        Initial step size. If ``None``, uses the lower bound of ``stepsize_range``.
    stepsize_range : tuple of float, optional
        Minimal and maximal step size. Default is ``(1e-4, 1e-1)``.
    growth_factor : float, optional
        Maximal change of the step size between two accepted points. Default is 3.
    initial_direction : int, optional
        Direction (+1 or -1) to start continuation along the branch: the local parameter initially increases if positive.
    parameter_index : int, optional
        Index of the unknown used as local parameter for the first point (and throughout, if ``pin_parameter``). Defaults to the last unknown. Out-of-range values are replaced by the last unknown.
    pin_parameter : bool, optional
        If ``True``, the local parameter is never reselected.
    target_index, target_value : int, float, optional
        Request target points where ``x[target_index] == target_value``.
    limit_index : int, optional
        Request limit points with respect to ``x[limit_index]``.
    limit_tolerance : float, optional
        Tolerance of the limit-point root finder on the interval fraction.
    max_limit_iterations : int, optional
        Maximum number of root-finder iterations for a limit point.
    verbose : bool, optional
        If ``True``, prints progress and diagnostic information.
    """

    def __init__(
        self,
        system: EquationSystem,
        solver: NewtonSolver = None,
        linear_solver=None,
        stepsize: float = None,
        stepsize_range: tuple[float, float] = (1e-4, 1e-1),
        growth_factor: float = 3.0,
        initial_direction: int = 1,
        parameter_index: int = None,
        pin_parameter: bool = False,
        target_index: int = None,
        target_value: float = None,
        limit_index: int = None,
        limit_tolerance: float = 1e-12,
        max_limit_iterations: int = 20,
        verbose: bool = False,
    ):
        if not system.underdetermined:
            raise InvalidDimension(
                f"Continuation requires exactly one unknown more than equations, "
                f"got {system.length_unknowns['total']} unknowns and {system.num_equations} equations"
            )
        self.system = system
        self.solver = NewtonSolver() if solver is None else solver
        self.linear_solver = DenseSolver() if linear_solver is None else linear_solver
        self.verbose = verbose

        self.x = system.vector_of_unknowns
        self.n = self.x.size
        self.previous_x = None
        self.tangent: Tangent = None
        self.previous_tangent: Tangent = None
        self.state = State.UNCHECKED

        self.pin_parameter = pin_parameter
        self.parameter_index = sanitize_index(parameter_index, self.n)
        self.fallback_index = self.parameter_index

        self.step_control = StepControl(
            min_step=stepsize_range[0],
            max_step=stepsize_range[1],
            step=stepsize,
            direction=initial_direction,
            growth_factor=growth_factor,
        )
        self.arclength = 0.0
        self.previous_arclength = None
        self.last_iterations = 0

        if target_index is not None:
            self._check_index(target_index, "target_index")
            if target_value is None:
                raise ValueError("target_value is required with target_index")
        if limit_index is not None:
            self._check_index(limit_index, "limit_index")
        self.target_index = target_index
        self.target_value = target_value
        self.limit_index = limit_index
        self.last_target_index_found = None
        self.limit_tolerance = limit_tolerance
        self.max_limit_iterations = max_limit_iterations

        self.counters = Counters()
        self.error: ContinuationError = None
        self._pending = deque()

    def _check_index(self, index, name):
        if not 0 <= index < self.n:
            raise InvalidDimension(
                f"{name} = {index} out of range for {self.n} unknowns"
            )

    def request(self, request: Request = Request.STEP):
        """Dispatch a request code: :py:attr:`Request.STEP` performs :py:meth:`step`, the negative codes perform Jacobian diagnostics at the current point."""
        match Request(request):
            case Request.STEP:
                return self.step()
            case Request.CHECK_JACOBIAN:
                report = self.check_jacobian()
                print(report)
                return report
            case Request.COMPARE_JACOBIAN:
                report = self.check_jacobian()
                print(f"Jacobian minus finite-difference approximation:\n{report.difference}")
                return report
            case Request.PRINT_JACOBIAN:
                jacobian = self.system.evaluate_jacobian(self.x)
                print(f"Jacobian at x = {self.x}:\n{jacobian}")
                return jacobian

    def check_jacobian(self, central: bool = True) -> JacobianReport:
        """Compare the Jacobian at the current point with a finite-difference approximation. The run state is not modified."""
        return compare_jacobian(self.system, self.x.copy(), central=central)

    def step(self) -> ContinuationResult:
        """
        Advance the run by exactly one point.

        Returns
        -------

        ContinuationResult
            The corrected starting point (first call), a continuation point, a target point or a limit point.

        Raises
        ------

        :py:class:`~picont.errors.ContinuationError`
            On any fatal error. The run state remains at its last good value and ``self.error`` holds the exception. Errors outside the :py:class:`~picont.errors.ContinuationError` hierarchy are re-raised as :py:class:`~picont.errors.UnclassifiedError` chained to the original.
        """
        self.counters.calls += 1
        if self._pending:
            return self._pending.popleft()

        try:
            if self.state is State.UNCHECKED:
                result = self._correct_start()
            else:
                results = self._continuation_step()
                result = results[0]
                self._pending.extend(results[1:])
        except ContinuationError as exc:
            self.error = exc
            if self.verbose:
                print(f"{type(exc).__name__}: {exc}")
            raise
        except Exception as exc:
            self.error = UnclassifiedError(
                f"Continuation step failed with {type(exc).__name__}: {exc}"
            )
            if self.verbose:
                print(f"UnclassifiedError: {self.error}")
            raise self.error from exc

        self.error = None
        for warning in result.warnings:
            warnings.warn(warning, stacklevel=2)
        return result

    def _correct_start(self) -> ContinuationResult:
        correction = self.solver.solve(
            self.system,
            self.x,
            self.parameter_index,
            linear_solver=self.linear_solver,
            start=True,
            counters=self.counters,
        )
        if self.verbose:
            print(f"Initial guess converged after {correction.iterations} steps.")

        self.x = correction.x
        self.last_iterations = correction.iterations
        self.state = State.START_CORRECTED
        return ContinuationResult(
            x=self.x.copy(),
            kind=PointKind.START,
            arclength=self.arclength,
            parameter_index=self.parameter_index,
            iterations=correction.iterations,
        )

    def _continuation_step(self) -> list[ContinuationResult]:
        """Compute the next continuation point and all special points it reveals. The run state is committed only at the very end."""
        step_control = copy(self.step_control)
        x = self.x
        parameter_index = self.parameter_index
        fallback_index = self.fallback_index

        match self.state:
            case State.START_CORRECTED:
                tangent_prev = None
                tangent = compute_tangent(
                    self.system,
                    x,
                    parameter_index,
                    self.linear_solver,
                    direction=step_control.direction,
                    counters=self.counters,
                )
            case State.TWO_POINTS_OLD_TANGENT:
                tangent_prev = self.tangent
                tangent = compute_tangent(
                    self.system,
                    x,
                    parameter_index,
                    self.linear_solver,
                    previous=tangent_prev,
                    counters=self.counters,
                )
            case State.TWO_POINTS_NEW_TANGENT:
                tangent_prev = self.previous_tangent
                tangent = self.tangent

        if tangent_prev is not None:
            step_control.adapt(tangent_prev.vector, tangent.vector, self.last_iterations)

        parameter_index, fallback_index = select_parameter(
            tangent.vector, self.parameter_index, pin=self.pin_parameter
        )

        while True:
            if self.verbose:
                print(
                    f"Continuation step {self.counters.accepted_points}, step size {step_control.step:.3g}, parameter x[{parameter_index}]:",
                    end=" ",
                )
            x_pred = x + step_control.step * tangent.vector
            try:
                correction = self.solver.solve(
                    self.system,
                    x_pred,
                    parameter_index,
                    linear_solver=self.linear_solver,
                    counters=self.counters,
                )
                break
            except (CorrectorDiverged, TooManyCorrectorSteps) as exc:
                if self.verbose:
                    print("no success. Retry.")
                self.counters.step_reductions += 1
                step_control.reduce(cause=exc)

        if self.verbose:
            print(f"success after {correction.iterations} steps.")

        x_new = correction.x
        secant = np.linalg.norm(x_new - x)
        arclength_new = self.arclength + secant
        step_control.record_secant(secant)

        results = []
        found_warnings = []
        last_target_index_found = self.last_target_index_found

        if self.target_index is not None:
            target = self._search_target(x, x_new, arclength_new, found_warnings)
            if target is not None:
                results.append(target)
                last_target_index_found = self.target_index
            else:
                last_target_index_found = None

        tangent_new = None
        if self.limit_index is not None:
            tangent_new = compute_tangent(
                self.system,
                x_new,
                parameter_index,
                self.linear_solver,
                previous=tangent,
                counters=self.counters,
            )
            limit = self._search_limit(
                x,
                x_new,
                tangent,
                tangent_new,
                arclength_new,
                parameter_index,
                fallback_index,
                found_warnings,
            )
            if limit is not None:
                results.append(limit)

        results.append(
            ContinuationResult(
                x=x_new.copy(),
                kind=PointKind.CONTINUATION,
                arclength=arclength_new,
                parameter_index=parameter_index,
                tangent=None if tangent_new is None else tangent_new.vector.copy(),
                iterations=correction.iterations,
            )
        )
        results[0].warnings.extend(found_warnings)

        # commit
        self.previous_x, self.x = x, x_new
        self.previous_arclength, self.arclength = self.arclength, arclength_new
        if tangent_new is None:
            self.previous_tangent, self.tangent = tangent_prev, tangent
            self.state = State.TWO_POINTS_OLD_TANGENT
        else:
            self.previous_tangent, self.tangent = tangent, tangent_new
            self.state = State.TWO_POINTS_NEW_TANGENT
        self.parameter_index = parameter_index
        self.fallback_index = fallback_index
        self.step_control = step_control
        self.last_iterations = correction.iterations
        self.last_target_index_found = last_target_index_found
        self.counters.accepted_points += 1

        return results

    def _search_target(self, x, x_new, arclength_new, found_warnings):
        index, value = self.target_index, self.target_value
        if not target_bracketed(x, x_new, index, value):
            return None
        if (
            self.last_target_index_found == index
            and abs(x[index] - value) <= self.solver.abs_tolerance
        ):
            # the previous point is the target point that was just reported
            return None

        try:
            event = find_target_point(
                self.system,
                self.solver,
                x,
                x_new,
                self.arclength,
                arclength_new,
                index,
                value,
                linear_solver=self.linear_solver,
                counters=self.counters,
            )
        except ContinuationWarning as warning:
            found_warnings.append(warning)
            return None

        if self.verbose:
            print(f"Target point x[{index}] = {value} found.")
        return ContinuationResult(
            x=event.x,
            kind=PointKind.TARGET,
            arclength=event.arclength,
            parameter_index=index,
            iterations=event.iterations,
        )

    def _search_limit(
        self,
        x,
        x_new,
        tangent,
        tangent_new,
        arclength_new,
        parameter_index,
        fallback_index,
        found_warnings,
    ):
        index = self.limit_index
        if not limit_bracketed(tangent.vector, tangent_new.vector, index):
            return None

        hold_index = parameter_index if parameter_index != index else fallback_index
        if hold_index == index:
            hold_index = int(np.argsort(-np.abs(tangent.vector), kind="stable")[1])

        try:
            event = find_limit_point(
                self.system,
                self.solver,
                x,
                x_new,
                tangent,
                tangent_new,
                self.arclength,
                arclength_new,
                index,
                hold_index,
                linear_solver=self.linear_solver,
                xtol=self.limit_tolerance,
                max_iterations=self.max_limit_iterations,
                counters=self.counters,
            )
        except ContinuationWarning as warning:
            found_warnings.append(warning)
            return None

        if self.verbose:
            print(f"Limit point with respect to x[{index}] found.")
        return ContinuationResult(
            x=event.x,
            kind=PointKind.LIMIT,
            arclength=event.arclength,
            parameter_index=hold_index,
            tangent=event.tangent.vector.copy(),
            iterations=event.iterations,
        )


def continuator(
    initial_system: EquationSystem,
    solver: NewtonSolver = None,
    num_steps: int = 1000,
    verbose: bool = False,
    **options,
) -> Iterator[ContinuationResult]:
    """
    Perform continuation of the solution curve of an underdetermined :py:class:`~picont.equations.EquationSystem.EquationSystem`.

    This generator first yields the corrected starting point and then one :py:class:`~picont.solvers.continuation.ContinuationResult` per call of :py:meth:`~picont.solvers.continuation.Continuation.step`, including target and limit points, until ``num_steps`` continuation points have been produced.

    Parameters
    ----------

    initial_system : :py:class:`~picont.equations.EquationSystem.EquationSystem`
        The system to follow. Its unknowns are the starting point.
    solver : :py:class:`~picont.solvers.newton.NewtonSolver`, optional
        Newton corrector.
    num_steps : int, optional
        Maximum number of continuation points. Default is 1000.
    verbose : bool, optional
        If ``True``, prints progress and diagnostic information. Default is ``False``.
    **options
        Further keyword arguments of :py:class:`~picont.solvers.continuation.Continuation`.

    Yields
    ------

    ContinuationResult
        The next point along the curve.

    Raises
    ------

    :py:class:`~picont.errors.ContinuationError`
        If the starting point does not converge or any other fatal error occurs.

    Notes
    -----
    * If the minimal step size does not converge, the generator stops.
    * Stopping criteria such as parameter bounds should be checked within the ``for`` loop over which the continuator is iterated.
    """
    continuation = Continuation(initial_system, solver, verbose=verbose, **options)
    yield continuation.step()

    stop_msg = "All steps finished successfully."
    k = 0
    while k < num_steps:
        try:
            result = continuation.step()
        except StepTooSmall:
            stop_msg = "Minimal step size did not converge."
            break
        yield result
        if result.kind is PointKind.CONTINUATION:
            k += 1

    if verbose:
        print(stop_msg)
