"""Continuation of the discretized Bratu problem with a banded linear solver.

The Jacobian of :py:class:`~picont.equations.examples.BratuEquation` is tridiagonal in the grid values ``u`` and full only in the column of the load ``lam``. With ``lam`` as the last unknown, the :py:class:`~picont.solvers.linalg.BandedSolver` factors the bordered systems at a cost linear in the number of grid points. The load has a limit point near ``lam = 3.51``; the curve turns back there towards ``lam = 0``.
"""

import numpy as np
import matplotlib.pyplot as plt

from picont.equations.examples import BratuEquation
from picont.equations.EquationSystem import EquationSystem
from picont.solvers.continuation import PointKind, continuator
from picont.solvers.linalg import BandedSolver
from picont.solvers.newton import NewtonSolver


def main(num_points=50):
    solver = NewtonSolver(abs_tolerance=1e-9, rel_tolerance=1e-9)
    equ = BratuEquation(u=np.zeros(num_points), lam=0.0)
    equ_sys = EquationSystem([equ], unknowns=["u", "lam"])

    lam = []
    u_max = []
    limit = None

    for branch_point in continuator(
        initial_system=equ_sys,
        solver=solver,
        linear_solver=BandedSolver(lower=1, upper=1),
        stepsize=0.1,
        stepsize_range=(1e-4, 1.0),
        limit_index=num_points,  # limit points w.r.t. lam
        num_steps=500,
    ):
        if branch_point.kind is PointKind.LIMIT:
            limit = branch_point
            print(f"Limit point at lam = {branch_point.x[-1]:.6f}")
            continue

        lam.append(branch_point.x[-1])
        u_max.append(np.max(branch_point.x[:-1]))

        # Stop after the curve has turned back
        if branch_point.x[-1] < 0.5 and u_max[-1] > 5:
            break

    plt.figure()
    plt.plot(lam, u_max, "k.-")
    if limit is not None:
        plt.plot(limit.x[-1], np.max(limit.x[:-1]), "bo", fillstyle="none")
    plt.xlabel("lam")
    plt.ylabel("max u")
    plt.title(f"Bratu problem, {num_points} grid points")


if __name__ == "__main__":
    main()
    plt.show()
