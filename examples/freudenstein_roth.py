"""Solves the Freudenstein-Roth test problem by homotopy continuation.

Newton's method started at ``(x_1, x_2) = (15, -2)`` fails for the classical Freudenstein-Roth problem. Embedding it into a homotopy with the additional unknown ``x_3`` (see :py:class:`~picont.equations.examples.FreudensteinRoth`), the curve through the trivial point ``(15, -2, 0)`` is followed until the target point ``x_3 = 1`` is reached. On the way, ``x_3`` passes through two limit points, where a natural-parameter continuation in ``x_3`` would fail.
"""

import numpy as np
import matplotlib.pyplot as plt

from picont.equations.examples import FreudensteinRoth
from picont.equations.EquationSystem import EquationSystem
from picont.solvers.continuation import Continuation, PointKind
from picont.solvers.newton import NewtonSolver, JacobianUpdate


def main(jacobian_update=JacobianUpdate.EVERY_STEP, verbose=False):
    solver = NewtonSolver(
        abs_tolerance=1e-10,
        rel_tolerance=1e-10,
        max_iterations=20,
        jacobian_update=jacobian_update,
    )
    equ = FreudensteinRoth(x=np.array([15.0, -2.0, 0.0]))
    equ_sys = EquationSystem([equ], unknowns=["x"])

    continuation = Continuation(
        equ_sys,
        solver,
        stepsize=0.1,
        stepsize_range=(1e-4, 1.0),
        initial_direction=1,
        target_index=2,
        target_value=1.0,
        limit_index=2,
        verbose=verbose,
    )

    # Check the user-provided Jacobian before starting
    print(continuation.check_jacobian())

    branch = []
    limit_points = []
    while True:
        result = continuation.step()
        branch.append(result)
        if result.kind is PointKind.LIMIT:
            limit_points.append(result)
            print(f"Limit point of x_3 at x = {result.x}")
        elif result.kind is PointKind.TARGET:
            print(f"Root of the Freudenstein-Roth problem: x = {result.x}")
            break

    print(
        f"Limit points expected at x_2 = {FreudensteinRoth.limit_points_x3()}, "
        f"found at x_2 = {[point.x[1] for point in limit_points]}"
    )
    print(f"Work statistics: {continuation.counters.as_dict()}")

    plot_branch(branch)


def plot_branch(branch):
    x = np.array([point.x for point in branch if point.kind is PointKind.CONTINUATION])
    x2 = np.linspace(-2.5, 4.5, 200)

    fig, axs = plt.subplots(1, 2)
    axs[0].plot(x2, FreudensteinRoth.curve(x2)[:, 2], "c-", label="exact")
    axs[0].plot(x[:, 1], x[:, 2], "k.", label="continuation")
    axs[1].plot(np.arange(len(x)), x[:, 1], "k.-")

    for point in branch:
        if point.kind is PointKind.LIMIT:
            axs[0].plot(point.x[1], point.x[2], "bo", fillstyle="none")
        elif point.kind is PointKind.TARGET:
            axs[0].plot(point.x[1], point.x[2], "rx")

    axs[0].set_xlabel("x_2")
    axs[0].set_ylabel("x_3")
    axs[0].legend()
    axs[1].set_xlabel("continuation step")
    axs[1].set_ylabel("x_2")


if __name__ == "__main__":
    main()
    plt.show()
