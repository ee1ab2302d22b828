import pytest
import numpy as np

from picont.equations.EquationSystem import EquationSystem
from picont.equations.examples import CircleEquation, FreudensteinRoth, BratuEquation
from picont.solvers.linalg import Factorization
from picont.solvers.newton import NewtonSolver


class DegenerateFactorization(Factorization):
    def __init__(self, n, value):
        super().__init__(n, 1)
        self.value = value

    def _solve(self, rhs):
        return np.full(rhs.shape, self.value)


class DegenerateSolver:
    """Linear solver whose every solution entry is ``value``."""

    def __init__(self, value):
        self.value = value

    def factor(self, matrix):
        return DegenerateFactorization(matrix.shape[0], self.value)


@pytest.fixture
def solver():
    return NewtonSolver(
        abs_tolerance=1e-10, rel_tolerance=1e-10, max_iterations=20, verbose=False
    )


@pytest.fixture
def circle_system():
    equ = CircleEquation(y=np.array([1.0, 0.0]), radius=1.0)
    return EquationSystem([equ], ["y"])


@pytest.fixture
def freudenstein_roth_system():
    equ = FreudensteinRoth(x=np.array([15.0, -2.0, 0.0]))
    return EquationSystem([equ], ["x"])


@pytest.fixture(params=[6, 10])
def bratu_system(request):
    equ = BratuEquation(u=np.zeros(request.param), lam=0.0)
    return EquationSystem([equ], ["u", "lam"])


@pytest.fixture(params=[0.0, np.nan, np.inf])
def degenerate_solver(request):
    return DegenerateSolver(request.param)
