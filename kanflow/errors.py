"""Exception hierarchy for the kanflow run engine."""

from __future__ import annotations


class KanflowError(Exception):
    """Base class for all kanflow errors."""


class ValidationError(KanflowError):
    """Bad caller input: malformed run id, admission ceiling, illegal resume."""


class NotFoundError(KanflowError):
    """A workflow, run, task or step reference could not be resolved."""


class StepExecutionError(KanflowError):
    """Raised when a single step fails; handled by the step's failure policy."""


class AcceptanceCriterionError(StepExecutionError):
    """Step output did not contain a required acceptance criterion."""

    def __init__(self, criterion: str) -> None:
        self.criterion = criterion
        super().__init__(f'Acceptance criterion not met: "{criterion}"')


class UnsupportedStepType(StepExecutionError):
    """Step kind is known but has no handler yet."""

    def __init__(self, step_type: str) -> None:
        self.step_type = step_type
        super().__init__(f"{step_type.capitalize()} steps not yet implemented")
