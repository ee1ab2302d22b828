"""This module collects exemplary underdetermined equations whose solution sets are curves. They are used in the examples and in the tests."""

import numpy as np

from picont.equations.AbstractEquation import AbstractEquation


class CircleEquation(AbstractEquation):
    """Has attributes ``y`` and ``radius``.
    The residual function::

        self.y[0] ** 2 + self.y[1] ** 2 - self.radius**2

    is zero when the point ``y`` lies on the circle with radius ``radius``. With ``y`` as the only unknown, the solutions form a closed curve whose coordinates both have two limit points.
    """

    def __init__(self, y: np.ndarray, radius=1):
        super().__init__()
        self.y = y
        self.radius = radius

    def residual_function(self):
        return np.atleast_1d(self.y[0] ** 2 + self.y[1] ** 2 - self.radius**2)

    def closed_form_derivative(self, variable):
        match variable:
            case "y":
                return np.atleast_2d(np.array([2 * self.y[0], 2 * self.y[1]]))
            case "radius":
                return np.atleast_2d(-2 * self.radius)
            case _:
                raise NotImplementedError


class FreudensteinRoth(AbstractEquation):
    """Freudenstein-Roth function, embedded into a homotopy with the unknown ``x = (x_1, x_2, x_3)``::

        x_1 - x_2**3 + 5 x_2**2 -  2 x_2 - 13 + 34 (x_3 - 1)
        x_1 + x_2**3 +   x_2**2 - 14 x_2 - 29 + 10 (x_3 - 1)

    For ``x_3 = 1``, the residual is the classical Freudenstein-Roth test problem with the root ``(5, 4, 1)``. The point ``(15, -2, 0)`` lies on the curve. The curve is a graph over ``x_2`` (see :py:meth:`curve`), and ``x_3`` has limit points at ``x_2 = (2 ± sqrt(22)) / 3``.
    """

    def __init__(self, x: np.ndarray):
        super().__init__()
        self.x = x

    def residual_function(self):
        x1, x2, x3 = self.x
        return np.array(
            [
                x1 - x2**3 + 5 * x2**2 - 2 * x2 - 13 + 34 * (x3 - 1),
                x1 + x2**3 + x2**2 - 14 * x2 - 29 + 10 * (x3 - 1),
            ]
        )

    def closed_form_derivative(self, variable):
        match variable:
            case "x":
                x2 = self.x[1]
                return np.array(
                    [
                        [1.0, -3 * x2**2 + 10 * x2 - 2, 34.0],
                        [1.0, 3 * x2**2 + 2 * x2 - 14, 10.0],
                    ]
                )
            case _:
                raise NotImplementedError

    @staticmethod
    def curve(x2):
        """Closed-form parameterization of the solution curve by ``x_2``."""
        x2 = np.asarray(x2, dtype=float)
        x3 = 1 + (x2**3 - 2 * x2**2 - 6 * x2 - 8) / 12
        x1 = -(x2**3 + x2**2 - 14 * x2 - 29) - 10 * (x3 - 1)
        return np.stack((x1, x2, x3), axis=-1)

    @staticmethod
    def limit_points_x3():
        """Values of ``x_2`` at which ``x_3`` is locally extremal along the curve."""
        return np.array([(2 - np.sqrt(22)) / 3, (2 + np.sqrt(22)) / 3])


class BratuEquation(AbstractEquation):
    """Finite-difference discretization of the one-dimensional Bratu problem::

        u'' + lambda * exp(u) = 0,    u(0) = u(1) = 0

    on ``m`` interior grid points. The unknowns are the grid values ``u`` and the load ``lam``; stacked as ``(u, lam)``, the Jacobian is tridiagonal in ``u`` with a full last column, i.e. banded with ``lower = upper = 1``. The curve starts at the trivial solution ``u = 0, lam = 0`` and has a limit point in ``lam`` near ``3.51``.
    """

    def __init__(self, u: np.ndarray, lam=0.0):
        super().__init__()
        self.u = u
        self.lam = lam

    def residual_function(self):
        u = np.atleast_1d(self.u)
        lam = np.squeeze(self.lam)
        h2 = 1 / (u.size + 1) ** 2
        u_ext = np.concatenate(([0.0], u, [0.0]))
        return (u_ext[:-2] - 2 * u + u_ext[2:]) / h2 + lam * np.exp(u)

    def closed_form_derivative(self, variable):
        u = np.atleast_1d(self.u)
        match variable:
            case "u":
                h2 = 1 / (u.size + 1) ** 2
                laplace = (
                    np.diag(-2 * np.ones(u.size))
                    + np.diag(np.ones(u.size - 1), 1)
                    + np.diag(np.ones(u.size - 1), -1)
                ) / h2
                return laplace + np.diag(np.squeeze(self.lam) * np.exp(u))
            case "lam":
                return np.exp(u)[:, np.newaxis]
            case _:
                raise NotImplementedError
