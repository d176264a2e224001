"""
Execution Pipeline: Errors

Raised only for caller mistakes: unknown ids and illegal state transitions.
Safety outcomes (warn, block, paused) are values, never exceptions.
"""


class ExecutionPipelineError(Exception):
    """Base class for execution pipeline errors."""


class PlanNotFoundError(ExecutionPipelineError, LookupError):
    def __init__(self, plan_id: str):
        super().__init__(f"Execution plan {plan_id} not found")
        self.plan_id = plan_id


class StepNotFoundError(ExecutionPipelineError, LookupError):
    def __init__(self, plan_id: str, step_id: str):
        super().__init__(f"Step {step_id} not found in plan {plan_id}")
        self.plan_id = plan_id
        self.step_id = step_id


class RollbackNotFoundError(ExecutionPipelineError, LookupError):
    def __init__(self, rollback_id: str):
        super().__init__(f"Rollback plan {rollback_id} not found")
        self.rollback_id = rollback_id


class InvalidTransitionError(ExecutionPipelineError, ValueError):
    def __init__(self, entity_id: str, current: str, target: str):
        super().__init__(f"Cannot move {entity_id} from {current} to {target}")
        self.entity_id = entity_id
        self.current = current
        self.target = target
