from abc import ABC, abstractmethod
import numpy as np

DEFAULT_FD_STEP = np.finfo(float).eps ** 0.25


class AbstractEquation(ABC):
    """
    Abstract base class for the algebraic equations whose solution curves are continued.

    A subclass stores everything its residual depends on as attributes and implements :py:meth:`residual_function`, which returns a 1-D numpy array. When equations are collected in an :py:class:`~picont.equations.EquationSystem.EquationSystem`, some of the attributes are declared as unknowns; the continuation overwrites them with every new point.

    Derivatives of the residual with respect to an attribute come from :py:meth:`closed_form_derivative` if the subclass implements it, and from finite differences otherwise.
    """

    def __init__(self):

        super().__init__()
        self._derivative_dict = {}
        self.residual_value = None

    def residual(self, update=False) -> np.ndarray:
        """Return the residual. With ``update=True``, it is recomputed from the current attributes; otherwise, the cached value is returned."""
        if update:
            value = np.atleast_1d(np.asarray(self.residual_function(), dtype=float))
            if value.ndim > 1:
                raise ValueError(
                    f"Residual of {type(self).__name__} must be 1-D, got shape {value.shape}"
                )
            self.residual_value = value
        elif self.residual_value is None:
            raise RuntimeError(
                f"Residual of {type(self).__name__} was requested before it was computed"
            )
        return self.residual_value

    @abstractmethod
    def residual_function(self) -> np.ndarray:
        """Evaluate the residual at the current attributes. To be implemented in subclasses."""

    def derivative(
        self, variable: str, update=False, h_fd=DEFAULT_FD_STEP, central=False
    ) -> np.ndarray:
        """
        Partial derivative of the residual with respect to the attribute ``variable``.

        Derivatives are cached per variable. Unless ``update`` is ``True``, a cached derivative is returned without evaluation. A ``NotImplementedError`` from :py:meth:`closed_form_derivative` selects :py:meth:`finite_difference_derivative` instead.

        Parameters
        ----------

        variable : str
            Name of the attribute.
        update : bool, optional
            Recompute the derivative at the current attributes and replace the cached one. Default is ``False``.
        h_fd : float, optional
            Relative perturbation for finite differences. Default is the fourth root of the machine epsilon.
        central : bool, optional
            Use central instead of forward finite differences. Default is ``False``.

        Returns
        -------

        np.ndarray
            2-D array with one row per residual entry and one column per entry of ``variable``.

        """

        if not update and variable in self._derivative_dict:
            return self._derivative_dict[variable]

        try:
            derivative = self.closed_form_derivative(variable)
        except NotImplementedError:
            derivative = self.finite_difference_derivative(
                variable, h_step=h_fd, central=central
            )

        derivative = np.atleast_2d(np.asarray(derivative, dtype=float))

        expected_shape = (
            self.residual(update=False).size,
            np.atleast_1d(getattr(self, variable)).size,
        )
        if derivative.shape != expected_shape:
            raise ValueError(
                f"Derivative of {type(self).__name__} w.r.t. '{variable}' has shape {derivative.shape}, expected {expected_shape}"
            )

        self._derivative_dict[variable] = derivative
        return derivative

    def closed_form_derivative(self, variable: str) -> np.ndarray:
        """
        Closed-form partial derivative of the residual with respect to ``variable``, as a 2-D array even for scalar residuals or variables.

        Subclasses override this method for the variables whose derivative they know and raise ``NotImplementedError`` for all others.

        Raises
        ------
        NotImplementedError
            Always in the base class, which requests finite differences.
        """
        raise NotImplementedError(
            f"No closed-form derivative of {type(self).__name__} w.r.t. '{variable}'"
        )

    def finite_difference_derivative(
        self, variable, h_step=DEFAULT_FD_STEP, central=False
    ) -> np.ndarray:
        """Approximate the partial derivative with respect to ``variable`` by finite differences.

        Entry ``k`` is perturbed by ``h_step * max(|x_k|, 1)``. The attribute is restored afterwards, also if the residual raises.

        Parameters
        ----------

        variable : str
            Name of the attribute.
        h_step : float, optional
            Relative perturbation. Default is the fourth root of the machine epsilon.
        central : bool, optional
            Use central differences ``(f(x+h) - f(x-h)) / 2h`` instead of forward differences.

        Returns
        -------

        np.ndarray
            2-D array with one row per residual entry and one column per entry of ``variable``.
        """

        x_orig = getattr(self, variable)
        x = np.atleast_1d(np.asarray(x_orig, dtype=float))
        f = self.residual(update=True)
        derivative = np.zeros((f.size, x.size))

        def perturbed_residual(k, h):
            x_pert = x.copy()
            x_pert[k] += h
            setattr(self, variable, x_pert)
            return np.atleast_1d(self.residual_function())

        try:
            for k in range(x.size):
                h = h_step * max(abs(x[k]), 1.0)
                if central:
                    derivative[:, k] = (
                        perturbed_residual(k, h) - perturbed_residual(k, -h)
                    ) / (2 * h)
                else:
                    derivative[:, k] = (perturbed_residual(k, h) - f) / h
        finally:
            setattr(self, variable, x_orig)

        return derivative
