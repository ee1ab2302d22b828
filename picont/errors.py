"""
Errors and warnings raised during continuation.

Fatal conditions derive from :py:class:`~picont.errors.ContinuationError` and abort the current call of :py:meth:`~picont.solvers.continuation.Continuation.step`. The run state stays at its last good value, so the caller may loosen tolerances or shrink the step bounds and call again.

Non-fatal conditions derive from :py:class:`~picont.errors.ContinuationWarning`. They are issued with ``warnings.warn`` and attached to the returned :py:class:`~picont.solvers.continuation.ContinuationResult`; the run continues.
"""


class ContinuationError(RuntimeError):
    """Base class of all fatal continuation errors."""


class InvalidDimension(ContinuationError, ValueError):
    """The equation system does not have exactly one unknown more than equations, or an array has the wrong size."""


class UserFunctionError(ContinuationError):
    """Evaluating the residual or the Jacobian of the user equations failed or returned non-finite values."""


class SingularJacobian(ContinuationError):
    """The augmented (bordered) Jacobian is numerically singular."""


class CorrectorDiverged(ContinuationError):
    """The residual of the Newton corrector increased instead of decreasing."""

    def __init__(self, message, iterations=None, residual_norm=None):
        super().__init__(message)
        self.iterations = iterations
        self.residual_norm = residual_norm


class TooManyCorrectorSteps(ContinuationError):
    """The Newton corrector did not converge within the maximum number of iterations."""

    def __init__(self, message, iterations=None, residual_norm=None):
        super().__init__(message)
        self.iterations = iterations
        self.residual_norm = residual_norm


class NullTangent(ContinuationError):
    """The tangent vector vanished or is not finite."""


class StepTooSmall(ContinuationError):
    """The corrector failed even with the minimal step size."""


class UnclassifiedError(ContinuationError):
    """Any other failure during a continuation step, e.g., a Jacobian that does not fit the band of a :py:class:`~picont.solvers.linalg.BandedSolver`. The original exception is the ``__cause__``."""


class ContinuationWarning(UserWarning):
    """Base class of all non-fatal continuation warnings."""


class TargetSearchFailed(ContinuationWarning):
    """A target value was bracketed, but the target point could not be corrected."""


class LimitSearchFailed(ContinuationWarning):
    """A limit point was bracketed, but the root finder could not evaluate or converge."""


class LimitSearchStepLimit(ContinuationWarning):
    """The root finder for a limit point exceeded its maximum number of iterations."""
