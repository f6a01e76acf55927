"""Error taxonomy for the automation run.

Every failure a step can produce is an ``AutomationError``. The ``retryable``
flag is what the controller's retry loop looks at: retryable errors are
absorbed (and logged) until the step's attempt budget runs out, anything else
ends the run.
"""

from typing import Any, Dict, Optional


class AutomationError(Exception):
    """Base class for all automation failures."""

    code = "AUTOMATION_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        retryable: Optional[bool] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable
        self.context: Dict[str, Any] = dict(context or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
        }


class AlreadyRunningError(AutomationError):
    """start() was called while a run is in flight."""
    code = "ALREADY_RUNNING"


class ConfigurationError(AutomationError):
    """The run configuration is unusable."""
    code = "CONFIGURATION_ERROR"


class AuthenticationError(AutomationError):
    """Credentials rejected or a security challenge was shown."""
    code = "AUTHENTICATION_ERROR"


class NavigationError(AutomationError):
    """The target view or its list container could not be reached."""
    code = "NAVIGATION_ERROR"
    retryable = True


class StepTimeoutError(AutomationError, TimeoutError):
    """A step's own time budget ran out before its marker appeared."""
    code = "STEP_TIMEOUT"
    retryable = True


class ScrollDetectionError(AutomationError):
    """Scrolling moved the outer page instead of the list container."""
    code = "SCROLL_DETECTION"
    retryable = True


class InteractionError(AutomationError):
    """A page interaction failed (element detached, click intercepted)."""
    code = "INTERACTION_FAILED"
    retryable = True


class ActionSkipped(AutomationError):
    """A single candidate was not acted on. Never ends the run."""
    code = "ACTION_SKIPPED"

    def __init__(self, reason: str, candidate_id: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        context = dict(context or {})
        if candidate_id is not None:
            context.setdefault("candidate_id", candidate_id)
        super().__init__(reason, retryable=False, context=context)
        self.reason = reason
        self.candidate_id = candidate_id


class ActionBlockedError(AutomationError):
    """The platform signalled automation detection or a hard limit."""
    code = "ACTION_BLOCKED"


class DriverError(AutomationError):
    """The browser session crashed or was detached."""
    code = "DRIVER_ERROR"


class RunCancelled(AutomationError):
    """Raised from cancellable waits once stop() has been requested."""
    code = "RUN_CANCELLED"

    def __init__(self, message: str = "Run stopped by operator"):
        super().__init__(message, retryable=False)


def is_retryable(error: BaseException) -> bool:
    """Retry predicate shared by the controller's retry loop."""
    return isinstance(error, AutomationError) and error.retryable
