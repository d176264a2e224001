"""
Execution Pipeline: Emergency Stop Controller

CORE PRINCIPLE:
"Only a named human engages or releases the emergency stop."

The controller is a LATCH, not a decision engine:
- Engaging requires an actor and a reason
- Releasing requires an actor and a reason
- Nothing releases the latch automatically
- Default is OFF (absence of activation means "proceed")

The latch feeds SafetyGateOptions.emergency_stop; while engaged every
gate evaluation is a BLOCK.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from execution_pipeline.execution_log import ExecutionLog
from execution_pipeline.execution_models import ExecutionLogCategory, _iso, utc_now


logger = logging.getLogger(__name__)


@dataclass
class EmergencyStopState:
    engaged: bool = False
    engaged_by: Optional[str] = None
    engaged_at: Optional[datetime] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engaged": self.engaged,
            "engaged_by": self.engaged_by,
            "engaged_at": _iso(self.engaged_at),
            "reason": self.reason,
        }


class EmergencyStopController:
    """
    Facility-wide emergency stop.

    get_history() is append-only: every engage/release is recorded with a
    snapshot of the resulting state.
    """

    def __init__(self, log: Optional[ExecutionLog] = None):
        self.log = log
        self.state = EmergencyStopState()
        self._history: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self._record_change("INIT", "Controller initialized")

    def engage(self, activated_by: str, reason: str) -> bool:
        """
        Engage the emergency stop.

        Args:
            activated_by: Operator identifier
            reason: Why execution must halt

        Returns:
            True if engaged, False if actor or reason is missing
        """
        if not activated_by or not reason:
            return False

        with self._lock:
            self.state = EmergencyStopState(
                engaged=True, engaged_by=activated_by, engaged_at=utc_now(), reason=reason,
            )
            self._record_change("ENGAGED", reason, activated_by, severity="CRITICAL")
        logger.critical("Emergency stop engaged by %s: %s", activated_by, reason)
        return True

    def release(self, released_by: str, reason: str) -> bool:
        """
        Release the emergency stop.

        Args:
            released_by: Operator identifier
            reason: Why it is safe to proceed

        Returns:
            True if released, False if actor or reason is missing
        """
        if not released_by or not reason:
            return False

        with self._lock:
            self.state = EmergencyStopState()
            self._record_change("RELEASED", reason, released_by)
        logger.warning("Emergency stop released by %s: %s", released_by, reason)
        return True

    def is_engaged(self) -> bool:
        return self.state.engaged

    def get_state(self) -> Dict[str, Any]:
        return self.state.to_dict()

    def get_history(self) -> List[Dict[str, Any]]:
        """State change records, oldest first."""
        with self._lock:
            return list(self._history)

    def _record_change(self, event_type: str, reason: str, actor: str = "system", severity: str = "INFO"):
        record = {
            "timestamp": utc_now().isoformat(),
            "event_type": event_type,
            "reason": reason,
            "actor": actor,
            "severity": severity,
            "state_snapshot": self.get_state(),
        }
        self._history.append(record)
        if self.log is not None and event_type != "INIT":
            self.log.record(
                ExecutionLogCategory.SAFETY_GATE,
                f"Emergency stop {event_type.lower()} by {actor}: {reason}",
                context={"user_id": actor},
                details=record["state_snapshot"],
            )
