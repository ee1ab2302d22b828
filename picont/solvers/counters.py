from dataclasses import dataclass, fields


@dataclass
class Counters:
    """Work statistics of one continuation run. All counts only increase; a new run starts from zero."""

    calls: int = 0
    residual_evaluations: int = 0
    jacobian_evaluations: int = 0
    factorizations: int = 0
    solves: int = 0
    corrector_steps: int = 0
    step_reductions: int = 0
    accepted_points: int = 0

    def as_dict(self) -> dict[str, int]:
        return {field.name: getattr(self, field.name) for field in fields(self)}
