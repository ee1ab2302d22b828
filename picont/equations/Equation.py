from collections.abc import Callable
from inspect import Parameter, signature
from typing_extensions import override

import numpy as np

from picont.equations.AbstractEquation import AbstractEquation


def _missing_arguments(function: Callable, names, skip: int = 0) -> list[str]:
    """Required keyword arguments of ``function`` that are not in ``names``. The first ``skip`` positional parameters are supplied by the caller."""
    params = list(signature(function).parameters.values())[skip:]
    if any(param.kind is Parameter.VAR_KEYWORD for param in params):
        return []
    return [
        param.name
        for param in params
        if param.default is Parameter.empty
        and param.kind in (Parameter.POSITIONAL_OR_KEYWORD, Parameter.KEYWORD_ONLY)
        and param.name not in names
    ]


class Equation(AbstractEquation):
    """Equation defined by a plain residual function and, optionally, its closed-form derivative.

    Every keyword in ``parameters`` becomes an attribute of the equation. Both functions receive all of them by name whenever they are called, so a parameter that is declared as unknown of an :py:class:`~picont.equations.EquationSystem.EquationSystem` is passed with its current value.

    The residual function may return a scalar for a single equation. The derivative function receives the name of the variable as first argument and may raise ``NotImplementedError`` to request finite differences; without a derivative function, finite differences are always used.

    Raises
    ------
    TypeError
        If a function requires an argument that is not among ``parameters``.
    """

    def __init__(
        self,
        residual_function: Callable,
        closed_form_derivative: Callable = None,
        **parameters,
    ):
        super().__init__()
        missing = _missing_arguments(residual_function, parameters)
        if closed_form_derivative is not None:
            missing += _missing_arguments(closed_form_derivative, parameters, skip=1)
        if missing:
            raise TypeError(
                f"No value given for the argument(s) {sorted(set(missing))} of the equation functions"
            )

        self._residual_function = residual_function
        self._closed_form_derivative = closed_form_derivative
        self.parameter_names = tuple(parameters)
        self.__dict__.update(parameters)

    def _arguments(self) -> dict:
        return {name: getattr(self, name) for name in self.parameter_names}

    @override
    def residual_function(self):
        return np.atleast_1d(self._residual_function(**self._arguments()))

    @override
    def closed_form_derivative(self, variable):
        if self._closed_form_derivative is None:
            raise NotImplementedError(f"No derivative function given for '{variable}'")
        return self._closed_form_derivative(variable, **self._arguments())
