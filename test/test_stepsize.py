import pytest
import numpy as np

from picont.errors import StepTooSmall
from picont.solvers.stepsize import StepControl


@pytest.fixture
def step_control():
    control = StepControl(min_step=1e-3, max_step=1.0, step=0.1, growth_factor=3.0)
    control.record_secant(0.1)
    return control


def test_initial_step():
    assert StepControl(min_step=1e-3, max_step=1.0).step == 1e-3
    assert StepControl(min_step=1e-3, max_step=1.0, step=5.0).step == 1.0
    assert StepControl(direction=-3).direction == -1


def test_no_secant_keeps_step():
    control = StepControl(min_step=1e-3, max_step=1.0, step=0.1)
    t = np.array([1.0, 0.0])
    assert control.adapt(t, t, 1) == 0.1


def test_growth_is_limited(step_control):
    t = np.array([1.0, 0.0])
    assert step_control.adapt(t, t, 1) == pytest.approx(0.3)
    assert step_control.angle == 0
    assert step_control.curvature == 0


def test_shrinking_is_limited(step_control):
    step = step_control.adapt(np.array([1.0, 0.0]), np.array([0.0, 1.0]), 3)
    assert step == pytest.approx(0.1 / 3)
    assert step_control.angle == pytest.approx(np.pi / 2)


def test_corrector_iterations(step_control):
    t = np.array([0.0, 1.0])
    # six iterations instead of three halve the step
    assert step_control.adapt(t, t, 6) == pytest.approx(0.05)


def test_angle_factor(step_control):
    angle = 0.2
    step = step_control.adapt(
        np.array([1.0, 0.0]), np.array([np.cos(angle), np.sin(angle)]), 1
    )
    # the step aims at the target angle of 0.1
    assert step == pytest.approx(0.05)


def test_step_bounds():
    control = StepControl(min_step=1e-3, max_step=1.0, step=0.5)
    control.record_secant(0.5)
    t = np.array([1.0, 0.0])
    assert control.adapt(t, t, 1) == 1.0

    control = StepControl(min_step=1e-3, max_step=1.0, step=2e-3)
    control.record_secant(2e-3)
    assert control.adapt(t, -t, 20) == 1e-3


@pytest.mark.parametrize("radius", [0.5, 2.0])
def test_curvature(radius):
    angle = 0.05
    control = StepControl()
    control.record_secant(2 * radius * np.sin(angle / 2))
    control.adapt(np.array([0.0, 1.0]), np.array([-np.sin(angle), np.cos(angle)]), 3)
    assert control.curvature == pytest.approx(1 / radius)


def test_reduce():
    control = StepControl(min_step=0.03, max_step=1.0, step=0.1)
    assert control.reduce() == pytest.approx(0.05)
    assert control.reduce() == pytest.approx(0.03)

    cause = RuntimeError("corrector failed")
    with pytest.raises(StepTooSmall) as excinfo:
        control.reduce(cause)
    assert excinfo.value.__cause__ is cause
    assert control.step == 0.03


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_step": 0.0},
        {"min_step": 0.2, "max_step": 0.1},
        {"growth_factor": 1.0},
        {"direction": 0},
        {"target_angle": 0.0},
        {"ideal_iterations": 0},
    ],
)
def test_invalid_parameters(kwargs):
    with pytest.raises(ValueError):
        StepControl(**kwargs)
