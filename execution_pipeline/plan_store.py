"""
Execution Pipeline: Plan Store

Latest-version, in-memory store for execution plans and rollback plans.

Plans are immutable values, so the store only ever swaps references.
Races between operator actions and monitor ticks on the same plan are
serialized by the per-plan lock returned from lock_for(); save() refuses
any write that does not advance the version (lost update).
"""

import logging
import threading
from typing import Dict, List, Optional

from execution_pipeline.errors import InvalidTransitionError, PlanNotFoundError, RollbackNotFoundError
from execution_pipeline.execution_models import ExecutionPlan, RollbackPlan


logger = logging.getLogger(__name__)


class PlanStore:
    def __init__(self):
        self._plans: Dict[str, ExecutionPlan] = {}
        self._rollbacks: Dict[str, RollbackPlan] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, plan_id: str) -> threading.Lock:
        """Return the lock serializing work on one plan id."""
        with self._guard:
            lock = self._locks.get(plan_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[plan_id] = lock
            return lock

    def save(self, plan: ExecutionPlan) -> ExecutionPlan:
        """
        Store a plan version.

        Raises:
            InvalidTransitionError: version does not advance the stored one
        """
        with self._guard:
            current = self._plans.get(plan.plan_id)
            if current is not None and plan.version <= current.version:
                logger.warning(
                    "Stale write for %s: version %d <= stored %d",
                    plan.plan_id, plan.version, current.version,
                )
                raise InvalidTransitionError(
                    plan.plan_id, f"version {current.version}", f"version {plan.version}",
                )
            self._plans[plan.plan_id] = plan
        return plan

    def get(self, plan_id: str) -> Optional[ExecutionPlan]:
        with self._guard:
            return self._plans.get(plan_id)

    def require(self, plan_id: str) -> ExecutionPlan:
        plan = self.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    def list_plans(self) -> List[ExecutionPlan]:
        """Newest first."""
        with self._guard:
            plans = list(self._plans.values())
        return sorted(plans, key=lambda p: p.created_at, reverse=True)

    def save_rollback(self, rollback: RollbackPlan) -> RollbackPlan:
        with self._guard:
            self._rollbacks[rollback.rollback_id] = rollback
        return rollback

    def get_rollback(self, rollback_id: str) -> Optional[RollbackPlan]:
        with self._guard:
            return self._rollbacks.get(rollback_id)

    def require_rollback(self, rollback_id: str) -> RollbackPlan:
        rollback = self.get_rollback(rollback_id)
        if rollback is None:
            raise RollbackNotFoundError(rollback_id)
        return rollback

    def list_rollbacks(self, plan_id: Optional[str] = None) -> List[RollbackPlan]:
        with self._guard:
            rollbacks = list(self._rollbacks.values())
        if plan_id is not None:
            rollbacks = [r for r in rollbacks if r.plan_id == plan_id]
        return rollbacks
