import numpy as np
import pytest

from picont.equations.Equation import Equation
from picont.equations.examples import CircleEquation, FreudensteinRoth, BratuEquation


def my_function(x=np.array([0, 1]), a=1, b=2):
    x = np.atleast_1d(x)
    return np.concatenate(
        (x**2, np.atleast_1d(a * x[0]), np.atleast_1d(2 * b * x[-1]))
    )


def my_derivative(variable, x, a, b):
    x = np.atleast_1d(x)
    n = x.shape[0]
    match variable:
        case "x":
            jac = np.vstack((np.diag(2 * x), np.zeros((2, n))))
            jac[n, 0] = a
            jac[n + 1, -1] = 2 * b
            return jac
        case "a":
            return np.concatenate((np.zeros(n), [x[0], 0]))[:, np.newaxis]
        case "b":
            return np.concatenate((np.zeros(n), [0, 2 * x[-1]]))[:, np.newaxis]
        case _:
            raise NotImplementedError


@pytest.fixture
def equation():
    x = np.random.rand(3)
    return Equation(
        residual_function=my_function,
        closed_form_derivative=my_derivative,
        x=x,
        a=0.5,
        b=3.0,
    )


@pytest.mark.parametrize("central", [False, True])
@pytest.mark.parametrize("variable", ["x", "a", "b"])
def test_finite_differences(equation: Equation, variable, central):
    equation.residual(update=True)
    finite_diff = equation.finite_difference_derivative(variable, 1e-6, central)
    true_diff = np.atleast_2d(equation.closed_form_derivative(variable=variable))
    if true_diff.shape[0] == 1:
        true_diff = true_diff.T

    assert np.allclose(
        finite_diff, true_diff, 1e-4, 1e-4
    ), f"derivative w.r.t {variable} does not match!"


def test_finite_differences_restore_attribute(equation: Equation):
    x_before = equation.x.copy()
    equation.residual(update=True)
    equation.finite_difference_derivative("x")
    assert np.array_equal(equation.x, x_before)


def test_fallback_on_finite_differences():
    equ = Equation(residual_function=my_function, x=np.array([1.0, 2.0]), a=1.0, b=2.0)
    equ.residual(update=True)
    derivative = equ.derivative("x", update=True, central=True)
    expected = my_derivative("x", np.array([1.0, 2.0]), 1.0, 2.0)
    assert np.allclose(derivative, expected, atol=1e-5)


def test_derivative_cache(equation: Equation):
    equation.residual(update=True)
    first = equation.derivative("x", update=True)
    equation.x = equation.x + 1
    assert equation.derivative("x", update=False) is first
    assert not np.allclose(equation.derivative("x", update=True), first)


def test_residual_must_be_computed():
    equ = CircleEquation(y=np.array([1.0, 0.0]))
    with pytest.raises(RuntimeError):
        equ.residual(update=False)


@pytest.mark.parametrize(
    "equ, variable",
    [
        (CircleEquation(y=np.array([0.3, -1.2]), radius=2.0), "y"),
        (FreudensteinRoth(x=np.array([1.0, 0.5, -0.3])), "x"),
        (BratuEquation(u=np.linspace(0.1, 0.5, 5), lam=1.5), "u"),
        (BratuEquation(u=np.linspace(0.1, 0.5, 5), lam=1.5), "lam"),
    ],
)
def test_example_derivatives(equ, variable):
    equ.residual(update=True)
    finite_diff = equ.finite_difference_derivative(variable, 1e-6, central=True)
    true_diff = equ.derivative(variable, update=True)
    assert np.allclose(finite_diff, true_diff, rtol=1e-5, atol=1e-5)


def test_freudenstein_roth_curve():
    equ = FreudensteinRoth(x=np.zeros(3))
    for x2 in np.linspace(-3, 5, 9):
        equ.x = FreudensteinRoth.curve(x2)
        assert np.allclose(equ.residual_function(), 0, atol=1e-10)

    assert np.allclose(FreudensteinRoth.curve(4.0), [5.0, 4.0, 1.0])
    assert np.allclose(FreudensteinRoth.curve(-2.0), [15.0, -2.0, 0.0])


def test_missing_arguments():
    with pytest.raises(TypeError, match="'b'"):
        Equation(residual_function=my_function, closed_form_derivative=my_derivative, x=np.ones(2), a=1.0)

    # my_function has defaults for all of its arguments
    equ = Equation(residual_function=my_function, x=np.ones(2))
    assert equ.parameter_names == ("x",)


def test_scalar_residual():
    equ = Equation(
        residual_function=lambda y, radius: y[0] ** 2 + y[1] ** 2 - radius**2,
        y=np.array([0.6, 0.8]),
        radius=2.0,
    )
    residual = equ.residual(update=True)
    assert residual.shape == (1,)
    assert residual[0] == pytest.approx(-3.0)

    equ.radius = 1.0
    assert equ.residual(update=True)[0] == pytest.approx(0.0)
    assert np.allclose(equ.derivative("y", update=True, central=True), [[1.2, 1.6]], atol=1e-6)
