from dataclasses import dataclass
import numpy as np

from picont.equations.EquationSystem import EquationSystem


@dataclass
class JacobianReport:
    """Comparison of the Jacobian used by the solvers with a finite-difference approximation."""

    jacobian: np.ndarray
    approximation: np.ndarray
    difference: np.ndarray
    max_difference: float
    location: tuple[int, int]

    def __str__(self):
        row, col = self.location
        return (
            f"Largest Jacobian discrepancy {self.max_difference:.3e} in row {row}, column {col}: "
            f"{self.jacobian[row, col]:.6g} vs. finite differences {self.approximation[row, col]:.6g}"
        )


def compare_jacobian(
    system: EquationSystem, x: np.ndarray, central: bool = True
) -> JacobianReport:
    """
    Evaluate the Jacobian of ``system`` at ``x`` and compare it with a finite-difference approximation.

    The Jacobian is assembled as during continuation, i.e., from closed-form derivatives where available. The approximation ignores all closed-form derivatives. With ``central=True``, central differences are used for the approximation, which reduces the truncation error of the comparison.
    """
    jacobian = system.evaluate_jacobian(x)
    approximation = system.finite_difference_jacobian(central=central)
    difference = jacobian - approximation
    location = np.unravel_index(np.argmax(np.abs(difference)), difference.shape)
    return JacobianReport(
        jacobian=jacobian,
        approximation=approximation,
        difference=difference,
        max_difference=float(np.abs(difference[location])),
        location=(int(location[0]), int(location[1])),
    )
