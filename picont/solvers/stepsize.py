import numpy as np

from picont.errors import StepTooSmall


class StepControl:
    """
    Step-size control of the predictor.

    After every accepted point, :py:meth:`adapt` proposes the next step from the secant length between the last two points, scaled by a factor that grows when the corrector converged quickly and the curve bends little, and shrinks otherwise. The factor is limited to ``[1/growth_factor, growth_factor]`` relative to the previous step, and the result is clipped to ``[min_step, max_step]``.

    After a failed correction, :py:meth:`reduce` halves the step.

    Parameters
    ----------

    min_step, max_step : float
        Admissible range of the step size.
    step : float, optional
        Initial step size. If ``None``, the lower bound ``min_step`` is used.
    direction : int, optional
        Initial direction (+1 or -1) along the curve with respect to the initial local parameter.
    growth_factor : float, optional
        Maximal factor by which the step may change between two accepted points. Must exceed 1.
    target_angle : float, optional
        Angle (in radians) between successive tangents that the step size aims at.
    ideal_iterations : int, optional
        Number of corrector iterations that leaves the step unchanged.
    """

    def __init__(
        self,
        min_step: float = 1e-4,
        max_step: float = 1e-1,
        step: float = None,
        direction: int = 1,
        growth_factor: float = 3.0,
        target_angle: float = 0.1,
        ideal_iterations: int = 3,
    ):
        if not 0 < min_step <= max_step:
            raise ValueError(
                f"Step range must satisfy 0 < min_step <= max_step, got ({min_step}, {max_step})"
            )
        if growth_factor <= 1:
            raise ValueError(f"growth_factor must exceed 1, got {growth_factor}")
        if direction == 0:
            raise ValueError("direction must be +1 or -1")
        if target_angle <= 0 or ideal_iterations < 1:
            raise ValueError("target_angle and ideal_iterations must be positive")

        self.min_step = min_step
        self.max_step = max_step
        self.growth_factor = growth_factor
        self.direction = 1 if direction > 0 else -1
        self.target_angle = target_angle
        self.ideal_iterations = ideal_iterations

        self.step = self.clamp(min_step if step is None else step)
        self.secant = None
        self.previous_secant = None
        self.angle = 0.0
        self.curvature = 0.0

    def clamp(self, step: float) -> float:
        return min(max(step, self.min_step), self.max_step)

    def record_secant(self, secant: float) -> None:
        """Store the distance between the last two accepted points."""
        self.previous_secant = self.secant
        self.secant = secant

    def adapt(self, tangent_old: np.ndarray, tangent_new: np.ndarray, iterations: int):
        """
        Propose the step after an accepted point.

        Parameters
        ----------

        tangent_old, tangent_new : np.ndarray
            Unit tangents at the last two accepted points.
        iterations : int
            Number of corrector iterations needed for the last accepted point.

        Returns
        -------

        float
            The new step size, also stored in ``self.step``.
        """
        if self.secant is None or self.secant == 0:
            return self.step

        cos_angle = np.clip(np.dot(tangent_old, tangent_new), -1.0, 1.0)
        self.angle = float(np.arccos(cos_angle))
        self.curvature = 2 * np.sin(self.angle / 2) / self.secant

        if self.angle > 0:
            factor_angle = self.target_angle / self.angle
        else:
            factor_angle = self.growth_factor
        factor_newton = self.ideal_iterations / max(iterations, 1)

        proposal = self.secant * min(factor_angle, factor_newton)
        proposal = min(
            max(proposal, self.step / self.growth_factor),
            self.step * self.growth_factor,
        )
        self.step = self.clamp(proposal)
        return self.step

    def reduce(self, cause: Exception = None) -> float:
        """Halve the step after a failed correction.

        Raises
        ------

        :py:class:`~picont.errors.StepTooSmall`
            If the failed step already was the minimal step.
        """
        if self.step <= self.min_step:
            raise StepTooSmall(
                f"Corrector failed with the minimal step size {self.min_step}"
            ) from cause
        self.step = max(0.5 * self.step, self.min_step)
        return self.step
