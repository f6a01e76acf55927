"""Core components of the autoconnect system."""

from .log_bus import LogBus, LogEntry, ErrorInfo, BusLogger
from .errors import (
    AutomationError,
    AlreadyRunningError,
    ConfigurationError,
    AuthenticationError,
    NavigationError,
    StepTimeoutError,
    ScrollDetectionError,
    InteractionError,
    ActionSkipped,
    ActionBlockedError,
    DriverError,
    RunCancelled,
)
from .state import WorkflowStep, RunProgress, AutomationState, Candidate, RunResult
from .driver import BrowserDriver, ScrollOffsets, ListItem
from .steps import LoginStep, NavigationStep, ScanStep, ConnectStep, StepContext, StepResult
from .controller import AutomationController
from .browser_controller import BrowserController, playwright_session

__all__ = [
    'LogBus',
    'LogEntry',
    'ErrorInfo',
    'BusLogger',
    'AutomationError',
    'AlreadyRunningError',
    'ConfigurationError',
    'AuthenticationError',
    'NavigationError',
    'StepTimeoutError',
    'ScrollDetectionError',
    'InteractionError',
    'ActionSkipped',
    'ActionBlockedError',
    'DriverError',
    'RunCancelled',
    'WorkflowStep',
    'RunProgress',
    'AutomationState',
    'Candidate',
    'RunResult',
    'BrowserDriver',
    'ScrollOffsets',
    'ListItem',
    'LoginStep',
    'NavigationStep',
    'ScanStep',
    'ConnectStep',
    'StepContext',
    'StepResult',
    'AutomationController',
    'BrowserController',
    'playwright_session'
]
