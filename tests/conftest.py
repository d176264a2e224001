import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Ensure repository root is on sys.path for package imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from execution_pipeline.execution_log import ExecutionLog  # noqa: E402
from execution_pipeline.execution_models import (  # noqa: E402
    EnvironmentLimits,
    ExecutionSource,
    ExecutionStepProposal,
    TelemetrySnapshot,
    TelemetryWatch,
)
from execution_pipeline.pipeline import ExecutionPipeline  # noqa: E402
from execution_pipeline.upstream_models import (  # noqa: E402
    ExecutionIngestInput,
    ScheduledTask,
    WorkflowGroup,
    WorkflowPlan,
)


BASE_TIME = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def log():
    """Fresh in-memory execution log."""
    return ExecutionLog()


@pytest.fixture
def make_step():
    """Factory for step proposals with a standard telemetry watch."""
    def _make(step_id="exec-step-000001", **overrides):
        fields = dict(
            step_id=step_id,
            source_type=ExecutionSource.WORKFLOW_PLAN,
            title=f"Step {step_id}",
            expected_duration_minutes=60,
            telemetry_watch=TelemetryWatch(
                contamination_risk_max=80,
                equipment_load_max=90,
                labor_utilization_max=90,
                environment=EnvironmentLimits(temperature_max=28, temperature_min=12),
            ),
            rollback_steps=("Return room to previous environmental setpoints",),
        )
        fields.update(overrides)
        return ExecutionStepProposal(**fields)
    return _make


@pytest.fixture
def telemetry():
    """Factory for telemetry snapshots (nominal unless overridden)."""
    def _make(**overrides):
        fields = dict(
            room_id="room-a",
            temperature_c=18.0,
            humidity_percent=90.0,
            co2_ppm=900.0,
            contamination_risk_score=10.0,
            equipment_load_percent=40.0,
            labor_utilization_percent=50.0,
        )
        fields.update(overrides)
        return TelemetrySnapshot(**fields)
    return _make


@pytest.fixture
def workflow_plan():
    """Two sequential tasks in one workflow group, on different equipment."""
    return WorkflowPlan(
        plan_id="wf-plan-1",
        scheduled_tasks=(
            ScheduledTask(
                task_id="task-inoculate",
                type="inoculation",
                sequence_order=1,
                scheduled_start=BASE_TIME,
                scheduled_end=BASE_TIME + timedelta(hours=1),
                room="room-a",
                species="oyster",
                assigned_labor=2,
                assigned_equipment=("flow-hood-1",),
            ),
            ScheduledTask(
                task_id="task-incubate",
                type="incubation",
                sequence_order=2,
                scheduled_start=BASE_TIME + timedelta(hours=1),
                scheduled_end=BASE_TIME + timedelta(hours=2),
                room="room-a",
                species="oyster",
                assigned_labor=1,
                assigned_equipment=("incubator-2",),
            ),
        ),
        grouped_workflows=(
            WorkflowGroup(workflow_name="oyster-spawn", tasks=("task-inoculate", "task-incubate")),
        ),
    )


@pytest.fixture
def workflow_input(workflow_plan):
    return ExecutionIngestInput(workflow_plan=workflow_plan)


@pytest.fixture
def pipeline(log):
    """Execution pipeline wired over the shared log fixture."""
    return ExecutionPipeline(log=log)
