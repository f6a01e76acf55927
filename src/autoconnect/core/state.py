"""Run state records owned by the automation controller."""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class WorkflowStep(str, Enum):
    """States of the automation state machine."""
    IDLE = "idle"
    LOGGING_IN = "logging_in"
    NAVIGATING = "navigating"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STEPS

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStep.COMPLETED, WorkflowStep.ERROR)


ACTIVE_STEPS = frozenset({
    WorkflowStep.LOGGING_IN,
    WorkflowStep.NAVIGATING,
    WorkflowStep.SCANNING,
    WorkflowStep.CONNECTING,
})

# Legal transitions; ERROR is reachable from every active step
TRANSITIONS = {
    WorkflowStep.IDLE: {WorkflowStep.LOGGING_IN},
    WorkflowStep.LOGGING_IN: {WorkflowStep.NAVIGATING, WorkflowStep.ERROR},
    WorkflowStep.NAVIGATING: {WorkflowStep.SCANNING, WorkflowStep.ERROR},
    WorkflowStep.SCANNING: {WorkflowStep.CONNECTING, WorkflowStep.ERROR},
    WorkflowStep.CONNECTING: {WorkflowStep.COMPLETED, WorkflowStep.ERROR},
    WorkflowStep.COMPLETED: {WorkflowStep.IDLE},
    WorkflowStep.ERROR: {WorkflowStep.IDLE},
}


@dataclass
class RunProgress:
    """Counters for the current run."""
    candidates_discovered: int = 0
    candidates_evaluated: int = 0
    connections_sent: int = 0
    skipped: int = 0
    max_connections: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.max_connections - self.connections_sent)

    @property
    def percent_complete(self) -> float:
        if self.max_connections <= 0:
            return 0.0
        return min(100.0, self.connections_sent / self.max_connections * 100)

    @property
    def success_rate(self) -> float:
        if self.candidates_evaluated == 0:
            return 0.0
        return self.connections_sent / self.candidates_evaluated * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidates_discovered": self.candidates_discovered,
            "candidates_evaluated": self.candidates_evaluated,
            "connections_sent": self.connections_sent,
            "skipped": self.skipped,
            "max_connections": self.max_connections,
            "remaining": self.remaining,
            "percent_complete": round(self.percent_complete, 1),
        }


@dataclass
class AutomationState:
    """Status of the (single) automation run of this process."""
    current_step: WorkflowStep = WorkflowStep.IDLE
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    last_error: Optional[str] = None
    cancelled: bool = False
    progress: RunProgress = field(default_factory=RunProgress)

    @property
    def is_running(self) -> bool:
        return self.current_step.is_active

    def snapshot(self) -> "AutomationState":
        return copy.deepcopy(self)

    def duration_seconds(self, now: Optional[datetime] = None) -> Optional[float]:
        if not self.started_at:
            return None
        end = self.finished_at or now or datetime.now(self.started_at.tzinfo)
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "current_step": self.current_step.value,
            "is_running": self.is_running,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "last_error": self.last_error,
            "cancelled": self.cancelled,
            "duration_seconds": self.duration_seconds(),
            "progress": self.progress.to_dict(),
        }


@dataclass(frozen=True)
class Candidate:
    """A person discovered in the suggestions list."""
    id: str
    name: str
    mutual_connections: int
    item_key: str
    profile_url: Optional[str] = None
    raw_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mutual_connections": self.mutual_connections,
            "profile_url": self.profile_url,
        }


@dataclass
class RunResult:
    """Outcome of AutomationController.start()."""
    success: bool
    status: AutomationState
    error: Optional[str] = None
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "cancelled": self.cancelled,
            "status": self.status.to_dict(),
        }
