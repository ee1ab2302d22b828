"""Demonstrates the complete continuation workflow on the circle equation.

* Use of the :py:class:`~picont.equations.examples.CircleEquation` class as a concrete subclass of :py:class:`~picont.equations.AbstractEquation.AbstractEquation` for a problem formulation.
* Collecting the equation into an underdetermined :py:class:`~picont.equations.EquationSystem.EquationSystem` with the unknown ``y``.
* Stepping through the closed curve with a :py:class:`~picont.solvers.continuation.Continuation` object, requesting target points and limit points.
* The same with the :py:func:`~picont.solvers.continuation.continuator` generator and a user-defined stopping criterion in the ``for`` loop.

"""

import numpy as np
import matplotlib.pyplot as plt

from picont.solvers.newton import NewtonSolver
from picont.solvers.continuation import Continuation, PointKind, continuator
from picont.equations.examples import CircleEquation
from picont.equations.EquationSystem import EquationSystem


def main():
    """
    Runs a demonstration of predictor-corrector continuation on the circle equation.
    The process includes:

    #. Instantiating a :py:class:`~picont.solvers.newton.NewtonSolver` with the solver configuration
    #. Instantiating a :py:class:`~picont.equations.examples.CircleEquation` object with an initial guess that is not on the circle
    #. Constructing an :py:class:`~picont.equations.EquationSystem.EquationSystem` for the unknown ``y`` and stepping along the circle, reporting target points where ``y[0] = 0`` and limit points of ``y[1]``
    #. Iterating along the circle with the :py:func:`~picont.solvers.continuation.continuator` and enlarging the radius after every full turn
    #. Plotting the results.

    Returns
    -------
    None
    """
    print("Circle example.")

    # Instantiate solver
    solver = NewtonSolver(abs_tolerance=1e-10, rel_tolerance=1e-10)

    # Instantiate equation to be solved
    radius = 2
    equ = CircleEquation(y=np.array([0.9 * radius, 0]), radius=radius)

    # Instantiate EquationSystem encoding the circle eq. and the unknown
    equ_sys = EquationSystem([equ], unknowns=["y"])
    print(
        f"{equ_sys.num_equations} equation(s), {equ_sys.length_unknowns['total']} unknowns: underdetermined = {equ_sys.underdetermined}"
    )

    special_points(equ_sys, solver)

    equ_sys.vector_of_unknowns = np.array([0.9 * radius, 0])
    continuation_and_plot(equ_sys, solver)


def special_points(equ_sys, solver, num_calls=200):
    """Step once around the circle and mark target and limit points."""
    continuation = Continuation(
        equ_sys,
        solver,
        stepsize=0.1,
        stepsize_range=(1e-3, 0.2),
        target_index=0,
        target_value=0.0,
        limit_index=1,
    )

    plt.figure()
    plt.title("Target points y[0] = 0 (x) and limit points of y[1] (o)")
    arclength_full_turn = 2 * np.pi * equ_sys.equations[0].radius

    for _ in range(num_calls):
        result = continuation.step()
        match result.kind:
            case PointKind.TARGET:
                print(f"Target point at y = {result.x}, s = {result.arclength:.4f}")
                plt.plot(result.x[0], result.x[1], "rx", markersize=10)
            case PointKind.LIMIT:
                print(f"Limit point at y = {result.x}, tangent = {result.tangent}")
                plt.plot(result.x[0], result.x[1], "bo", fillstyle="none", markersize=10)
            case _:
                plt.plot(result.x[0], result.x[1], "k.")

        if result.arclength > arclength_full_turn:
            break

    print(f"Work statistics: {continuation.counters.as_dict()}")
    plt.axis("equal")


def continuation_and_plot(equ_sys, solver):
    """Perform continuation on the equation system and plot the results.

    Parameters
    ----------

    equ_sys : EquationSystem
        The equation system to be continued.
    solver : NewtonSolver
        The solver to be used for the continuation.
    """
    # Set up the plot
    plt.figure()
    plt.title("Continuation with growing radius")
    y1_prev = 0

    # Iterate through points on the circle
    for branch_point in continuator(
        initial_system=equ_sys,  # must be of type EquationSystem
        solver=solver,
        initial_direction=1,  # direction of tangent in x[-1] direction
        verbose=False,  # prints after every continuation step
        num_steps=300,
        stepsize=0.1,  # initial stepsize
        stepsize_range=(0.05, 0.15),
    ):
        # Plot the point
        plt.plot(branch_point.x[0], branch_point.x[1], "k.")

        if y1_prev < 0 and branch_point.x[1] >= 0:
            # Modify constant parameter of the equation and keep going
            equ_sys.equations[0].radius += 2

        y1_prev = branch_point.x[1]

    plt.axis("equal")


if __name__ == "__main__":
    main()
    plt.show()
