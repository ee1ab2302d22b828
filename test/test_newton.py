import pytest
import numpy as np

from picont.equations.Equation import Equation
from picont.equations.EquationSystem import EquationSystem
from picont.errors import CorrectorDiverged, TooManyCorrectorSteps, SingularJacobian
from picont.solvers.counters import Counters
from picont.solvers.newton import (
    JacobianUpdate,
    NewtonSolver,
    augmented_jacobian,
    augmented_residual,
)


@pytest.fixture
def arctan_system():
    equ = Equation(
        residual_function=lambda y: np.atleast_1d(np.arctan(y[0])),
        closed_form_derivative=lambda variable, y: np.array(
            [[1 / (1 + y[0] ** 2), 0.0]]
        ),
        y=np.array([10.0, 0.0]),
    )
    return EquationSystem([equ], ["y"])


@pytest.fixture
def stale_jacobian_system():
    """Under a chord iteration with the Jacobian of the initial guess, the residual of the second equation doubles in magnitude and flips sign."""

    def residual(y):
        return np.array([y[0] - np.log(3.0), y[1] * np.exp(y[0]) - 1.0])

    def derivative(variable, y):
        return np.array([[1.0, 0.0, 0.0], [y[1] * np.exp(y[0]), np.exp(y[0]), 0.0]])

    equ = Equation(
        residual_function=residual,
        closed_form_derivative=derivative,
        y=np.array([0.0, 0.6, 0.0]),
    )
    return EquationSystem([equ], ["y"])


def test_augmentation(circle_system):
    x = np.array([0.6, 0.8])
    residual = augmented_residual(circle_system, x, 1, 0.5)
    assert np.allclose(residual, [0.0, 0.3])

    jac = augmented_jacobian(circle_system, x, 0)
    assert np.allclose(jac, [[1.2, 1.6], [1.0, 0.0]])
    jac = augmented_jacobian(circle_system, x, np.array([0.8, -0.6]))
    assert np.allclose(jac, [[1.2, 1.6], [0.8, -0.6]])


@pytest.mark.parametrize("policy", list(JacobianUpdate))
def test_newton_circle(circle_system, solver, policy):
    solver.jacobian_update = policy
    correction = solver.solve(circle_system, np.array([1.0, 0.1]), index=1)

    assert solver.converged
    assert correction.x[1] == 0.1
    assert correction.x[0] == pytest.approx(np.sqrt(0.99), abs=1e-10)
    tolerance = solver.abs_tolerance + solver.rel_tolerance * np.linalg.norm(correction.x)
    assert correction.residual_norm <= tolerance
    assert correction.iterations == solver.num_iter


def test_value_differs_from_guess(circle_system, solver):
    correction = solver.solve(
        circle_system, np.array([1.2, 0.3]), index=1, value=0.1
    )
    assert correction.x[1] == pytest.approx(0.1, abs=1e-15)
    assert correction.x[0] == pytest.approx(np.sqrt(0.99), abs=1e-10)


def test_chord_method_evaluates_jacobian_once(circle_system, solver):
    solver.jacobian_update = JacobianUpdate.FIRST_AND_LAST
    counters = Counters()
    correction = solver.solve(
        circle_system, np.array([1.0, 0.1]), index=1, counters=counters
    )

    assert correction.iterations > 2
    assert counters.jacobian_evaluations == 1
    assert counters.factorizations == 1
    assert counters.solves == correction.iterations
    assert counters.corrector_steps == correction.iterations


def test_refresh_on_failure(stale_jacobian_system, solver):
    solver.jacobian_update = JacobianUpdate.FIRST_AND_ON_FAILURE
    counters = Counters()
    correction = solver.solve(
        stale_jacobian_system, np.array([0.0, 0.6, 0.0]), index=2, counters=counters
    )

    assert solver.converged
    assert np.allclose(correction.x, [np.log(3.0), 1 / 3, 0.0])
    # Newton step, rejected chord step, two steps with the refreshed Jacobian
    assert correction.iterations == 4
    assert counters.jacobian_evaluations == 2
    assert counters.factorizations == 2
    assert counters.solves == 4


def test_full_newton_evaluates_jacobian_every_step(circle_system, solver):
    counters = Counters()
    correction = solver.solve(
        circle_system, np.array([1.0, 0.1]), index=1, counters=counters
    )
    assert counters.jacobian_evaluations == correction.iterations
    # initial residual plus one per iteration
    assert counters.residual_evaluations == correction.iterations + 1


def test_at_least_one_iteration(circle_system, solver):
    correction = solver.solve(circle_system, np.array([1.0, 0.0]), index=1)
    assert correction.iterations == 1
    assert np.allclose(correction.x, [1.0, 0.0])


def test_start_mode_ignores_step_size(circle_system):
    solver = NewtonSolver(abs_tolerance=1e-2, rel_tolerance=0, max_iterations=20)
    x = np.array([1.1, 0.0])
    correction = solver.solve(circle_system, x, index=1, start=True)
    assert correction.residual_norm <= 1e-2
    assert not solver.check_converged(
        correction.x, correction.residual_norm, 1.0, start=False
    )
    assert solver.check_converged(correction.x, correction.residual_norm, 1.0, start=True)


def test_divergence(arctan_system, solver):
    with pytest.raises(CorrectorDiverged) as excinfo:
        solver.solve(arctan_system, np.array([10.0, 0.0]), index=1)
    assert excinfo.value.iterations == 1
    assert excinfo.value.residual_norm > np.arctan(10)
    assert not solver.converged


def test_too_many_steps(circle_system):
    solver = NewtonSolver(max_iterations=1)
    with pytest.raises(TooManyCorrectorSteps) as excinfo:
        solver.solve(circle_system, np.array([2.0, 0.0]), index=1)
    assert excinfo.value.iterations == 1


def test_singular_augmented_jacobian(circle_system, solver):
    # the circle cannot be parameterized by y[0] at (1, 0)
    with pytest.raises(SingularJacobian):
        solver.solve(circle_system, np.array([1.0, 0.0]), index=0)


@pytest.mark.parametrize(
    "kwargs",
    [{"abs_tolerance": -1}, {"rel_tolerance": -1e-3}, {"max_iterations": 0}],
)
def test_invalid_parameters(kwargs):
    with pytest.raises(ValueError):
        NewtonSolver(**kwargs)
