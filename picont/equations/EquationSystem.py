from collections.abc import Iterable
import numpy as np

from picont.equations.AbstractEquation import AbstractEquation, DEFAULT_FD_STEP
from picont.errors import UserFunctionError


class EquationSystem:
    """Encodes (one or multiple) :py:class:`~picont.equations.AbstractEquation.AbstractEquation` objects, together with a matching set of ``unknowns`` (names of attributes of one or more ``equations``).

    All unknowns are attributes of the :py:class:`~picont.equations.EquationSystem.EquationSystem` and of all its collected :py:class:`~picont.equations.AbstractEquation.AbstractEquation` objects. If the unknown is updated in the :py:class:`~picont.equations.EquationSystem.EquationSystem`, it is also updated in all equations.

    The unknowns, stacked in the order given by ``unknowns``, form the vector ``X`` of length ``N``. The continuation requires an ``underdetermined`` system with ``N - 1`` residual entries.

    Parameters
    ----------

    equations : Iterable[AbstractEquation]
        The equations whose residuals are stacked.
    unknowns : Iterable[str]
        Names of the attributes which form the vector of unknowns.
    h_fd : float, optional
        Relative perturbation for finite-difference derivatives. Default is the fourth root of the machine epsilon.
    central_differences : bool, optional
        Use central instead of forward differences where no closed-form derivative is available.
    """

    def __init__(
        self,
        equations: Iterable[AbstractEquation],
        unknowns: Iterable[str],
        h_fd: float = DEFAULT_FD_STEP,
        central_differences: bool = False,
    ):
        self.equations = list(equations)
        self.unknowns = list(unknowns)
        self.h_fd = h_fd
        self.central_differences = central_differences
        self._init_unknowns()

        # Initial residual evaluation
        self.residual_function(update=True)

    def _init_unknowns(self):
        """Collect the initial value of every unknown and distribute it to all equations (and to ``self``)."""
        self.length_unknowns = {}
        for unk in self.unknowns:
            value = self._initial_value(unk)
            self.length_unknowns[unk] = value.size
            # the custom setter distributes the value to all equations
            setattr(self, unk, value)
        self.length_unknowns["total"] = sum(self.length_unknowns.values())

    def _initial_value(self, unk: str) -> np.ndarray:
        """Value of the unknown ``unk`` as 1-D float array. All equations that share ``unk`` must agree on it."""
        owners = [equ for equ in self.equations if hasattr(equ, unk)]
        if not owners:
            raise ValueError(f"Unknown '{unk}' is not an attribute of any equation")

        value = np.atleast_1d(np.asarray(getattr(owners[0], unk), dtype=float))
        if value.ndim > 1:
            raise ValueError(
                f"Unknown '{unk}' of {owners[0]} has shape {value.shape}; only scalars and 1-D arrays are admissible"
            )

        for other in owners[1:]:
            other_value = np.atleast_1d(getattr(other, unk))
            if not np.array_equal(value, other_value):
                raise ValueError(
                    f"Conflicting initial values of the shared unknown '{unk}': "
                    f"{value} in {owners[0]} vs. {other_value} in {other}"
                )
        return value

    @property
    def num_equations(self) -> int:
        return self.residual_function(update=False).size

    @property
    def well_posed(self):
        """Checks if the total number of equations matches the total number of unknowns."""
        return self.num_equations == self.length_unknowns["total"]

    @property
    def underdetermined(self):
        """Checks if there is exactly one unknown more than equations, i.e., if the solutions form a curve."""
        return self.num_equations == self.length_unknowns["total"] - 1

    @property
    def vector_of_unknowns(self) -> np.ndarray:
        """
        All individual unknowns, stacked into a single 1-D numpy array in the order given by ``self.unknowns``. This property can also be set to update all unknowns in the system.
        """
        return np.concatenate(
            [np.atleast_1d(getattr(self.equations[0], unk)) for unk in self.unknowns]
        ).astype(float)

    @vector_of_unknowns.setter
    def vector_of_unknowns(self, x: np.ndarray) -> None:
        unknowns_parsed = self.parse_vector_of_unknowns(np.asarray(x, dtype=float))
        for unk, value in unknowns_parsed.items():
            # custom setter also sets the attribute in all equations
            setattr(self, unk, value)

    def parse_vector_of_unknowns(self, x=None) -> dict[str, np.ndarray]:
        """Split a 1-D array into a dictionary of individual unknowns. The pieces are copies of ``x``."""
        if x is None:
            x = self.vector_of_unknowns

        if x.ndim != 1:
            raise ValueError(f"Vector of unknowns must be 1-D, got {x.ndim}-D")
        if x.size != self.length_unknowns["total"]:
            raise ValueError(
                f"Expected {self.length_unknowns['total']} unknowns, got {x.size}"
            )

        sizes = [self.length_unknowns[unk] for unk in self.unknowns]
        pieces = np.split(x.copy(), np.cumsum(sizes)[:-1])
        return dict(zip(self.unknowns, pieces))

    def _is_unknown(self, name) -> bool:
        # during __init__, "unknowns" and "equations" may not be set yet
        return (
            "unknowns" in self.__dict__
            and "equations" in self.__dict__
            and name in self.unknowns
        )

    def __getattr__(self, name):
        """Unknowns that are not (yet) attributes of ``self`` are looked up in the first equation."""
        if self._is_unknown(name):
            return getattr(self.equations[0], name)
        raise AttributeError(
            f"'{type(self).__name__}' object has no attribute '{name}'"
        )

    def __setattr__(self, name, value) -> None:
        """Setting an unknown also sets it in every equation."""
        if self._is_unknown(name):
            for equ in self.equations:
                setattr(equ, name, value)
        super().__setattr__(name, value)

    def residual_function(self, update=False) -> np.ndarray:
        """
        Assembles one overall residual (1-D numpy array) by stacking the residuals of ``self.equations``.

        Raises
        ------

        :py:class:`~picont.errors.UserFunctionError`
            If any equation raises during evaluation or returns non-finite values.
        """
        try:
            res = np.concatenate([equ.residual(update=update) for equ in self.equations])
        except Exception as exc:
            raise UserFunctionError(f"Residual evaluation failed: {exc}") from exc

        if update and not np.all(np.isfinite(res)):
            raise UserFunctionError(
                f"Residual evaluation returned non-finite values: {res}"
            )
        return res

    def jacobian(self, update=False) -> np.ndarray:
        """Assemble the derivative of the overall residual w.r.t. all the unknowns (2-D numpy array), with the ordering given by the ordering of ``self.equations`` and ``self.unknowns``, respectively.

        The result has ``self.num_equations`` rows and ``N`` columns. Raises :py:class:`~picont.errors.UserFunctionError` on failure.
        """
        try:
            jac = np.vstack(
                [
                    np.hstack(
                        [
                            equ.derivative(
                                unk, update, self.h_fd, self.central_differences
                            )
                            for unk in self.unknowns
                        ]
                    )
                    for equ in self.equations
                ]
            )
        except Exception as exc:
            raise UserFunctionError(f"Jacobian evaluation failed: {exc}") from exc

        if not np.all(np.isfinite(jac)):
            raise UserFunctionError("Jacobian evaluation returned non-finite values")

        return jac

    def finite_difference_jacobian(self, central=None) -> np.ndarray:
        """Approximate the Jacobian at the current unknowns with finite differences, ignoring all closed-form derivatives."""
        if central is None:
            central = self.central_differences
        try:
            return np.vstack(
                [
                    np.hstack(
                        [
                            equ.finite_difference_derivative(
                                unk, h_step=self.h_fd, central=central
                            )
                            for unk in self.unknowns
                        ]
                    )
                    for equ in self.equations
                ]
            )
        except Exception as exc:
            raise UserFunctionError(f"Jacobian evaluation failed: {exc}") from exc

    def evaluate(self, x: np.ndarray) -> np.ndarray:
        """Set the unknowns to ``x`` and return the updated residual."""
        self.vector_of_unknowns = x
        return self.residual_function(update=True)

    def evaluate_jacobian(self, x: np.ndarray) -> np.ndarray:
        """Set the unknowns to ``x`` and return the updated Jacobian."""
        self.evaluate(x)
        return self.jacobian(update=True)
