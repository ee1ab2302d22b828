import pytest
import numpy as np

from picont.equations.examples import FreudensteinRoth
from picont.errors import NullTangent, SingularJacobian
from picont.solvers.counters import Counters
from picont.solvers.linalg import BandedSolver
from picont.solvers.tangent import compute_tangent, sanitize_index, select_parameter


def on_circle(angle):
    return np.array([np.cos(angle), np.sin(angle)])


def test_tangent_circle(circle_system):
    x = np.array([0.6, 0.8])
    counters = Counters()
    tangent = compute_tangent(circle_system, x, 1, counters=counters)

    assert np.allclose(tangent.vector, [-0.8, 0.6])
    assert tangent.parameter_index == 1
    assert tangent.determinant_sign in (-1, 1)
    assert counters.jacobian_evaluations == 1
    assert counters.factorizations == 1
    assert counters.solves == 1


@pytest.mark.parametrize("x2", [-2.0, -0.5, 1.0, 3.5])
def test_tangent_in_null_space(freudenstein_roth_system, x2):
    x = FreudensteinRoth.curve(x2)
    tangent = compute_tangent(freudenstein_roth_system, x, 2)
    jacobian = freudenstein_roth_system.evaluate_jacobian(x)

    assert np.linalg.norm(tangent.vector) == pytest.approx(1.0)
    assert np.allclose(jacobian @ tangent.vector, 0, atol=1e-10)


def test_tangent_banded(bratu_system):
    n = bratu_system.length_unknowns["total"]
    x = np.append(np.full(n - 1, 0.1), 1.0)
    linear_solver = BandedSolver(lower=1, upper=1)
    tangent = compute_tangent(bratu_system, x, n - 1, linear_solver)
    dense = compute_tangent(bratu_system, x, n - 1)

    assert np.allclose(tangent.vector, dense.vector)
    assert tangent.determinant_sign == dense.determinant_sign


@pytest.mark.parametrize("direction", [1, -1])
def test_initial_direction(circle_system, direction):
    tangent = compute_tangent(circle_system, on_circle(0.3), 1, direction=direction)
    assert direction * tangent.vector[1] > 0


def test_orientation_is_continued(circle_system):
    first = compute_tangent(circle_system, on_circle(1.0), 1, direction=-1)
    # the local parameter switches from y[1] to y[0]
    second = compute_tangent(circle_system, on_circle(0.9), 0, previous=first)
    third = compute_tangent(circle_system, on_circle(0.8), 1, previous=second)

    assert np.dot(first.vector, second.vector) > 0.99
    assert np.dot(second.vector, third.vector) > 0.99
    assert first.determinant_sign == second.determinant_sign == third.determinant_sign
    # moving clockwise
    assert np.allclose(second.vector, [np.sin(0.9), -np.cos(0.9)])


def test_orientation_across_full_circle(circle_system):
    tangent = compute_tangent(circle_system, on_circle(0.0), 1)
    for angle in np.linspace(0.1, 2 * np.pi, 63):
        index = int(np.argmax(np.abs([np.sin(angle), np.cos(angle)])))
        tangent = compute_tangent(
            circle_system, on_circle(angle), index, previous=tangent
        )
        assert np.allclose(tangent.vector, [-np.sin(angle), np.cos(angle)])


def test_singular(circle_system):
    with pytest.raises(SingularJacobian):
        compute_tangent(circle_system, on_circle(0.0), 0)


def test_null_tangent(circle_system, degenerate_solver):
    counters = Counters()
    with pytest.raises(NullTangent):
        compute_tangent(
            circle_system, on_circle(0.3), 1, degenerate_solver, counters=counters
        )
    assert counters.solves == 1


@pytest.mark.parametrize(
    "vector, expected",
    [
        (np.array([0.1, -0.9, 0.3]), (1, 2)),
        (np.array([0.6, 0.0, -0.8]), (2, 0)),
        # ties are resolved by the lower index
        (np.array([0.5, 0.5, 0.5, 0.5]), (0, 1)),
    ],
)
def test_select_parameter(vector, expected):
    assert select_parameter(vector) == expected


def test_pinned_parameter():
    vector = np.array([0.1, -0.9, 0.3])
    assert select_parameter(vector, pinned_index=0, pin=True) == (0, 0)
    assert select_parameter(vector, pinned_index=7, pin=True) == (2, 2)
    # without pin, the preferred index is ignored
    assert select_parameter(vector, pinned_index=0) == (1, 2)


@pytest.mark.parametrize(
    "index, expected", [(None, 2), (-1, 2), (3, 2), (0, 0), (1, 1)]
)
def test_sanitize_index(index, expected):
    assert sanitize_index(index, 3) == expected
