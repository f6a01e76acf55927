"""Automation controller: the state machine that drives a run."""

import asyncio
import io
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator, Callable, List, Optional, Set, Union

from PIL import Image
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from autoconnect.core.cancellation import CancellationToken
from autoconnect.core.driver import BrowserDriver, DriverFactory
from autoconnect.core.errors import (
    ActionSkipped,
    AlreadyRunningError,
    AutomationError,
    ConfigurationError,
    NavigationError,
    RunCancelled,
    ScrollDetectionError,
    is_retryable,
)
from autoconnect.core.log_bus import BusLogger, LogBus, Registration
from autoconnect.core.state import (
    TRANSITIONS,
    AutomationState,
    Candidate,
    RunProgress,
    RunResult,
    WorkflowStep,
)
from autoconnect.core.steps import (
    ConnectStep,
    LoginStep,
    NavigationStep,
    ScanStep,
    StepContext,
    StepExecutor,
    StepResult,
)
from autoconnect.utils import AutomationConfig, BrowserOptions, log

if TYPE_CHECKING:
    from autoconnect.adapters import BaseAdapter

StatusCallback = Callable[[AutomationState], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AutomationController:
    """
    Runs login, navigation, scanning and connecting in order against one
    browser session, and reports every state change.

    One run at a time: ``start()`` while running raises
    ``AlreadyRunningError``. State is only mutated on the run coroutine;
    observers get deep-copied snapshots.
    """

    def __init__(
        self,
        log_bus: LogBus,
        driver_factory: DriverFactory,
        adapter: "BaseAdapter",
        browser_options: Optional[BrowserOptions] = None,
        artifacts_dir: Optional[Union[str, Path]] = None,
        login_step: Optional[StepExecutor] = None,
        navigation_step: Optional[StepExecutor] = None,
        scan_step: Optional[StepExecutor] = None,
        connect_step: Optional[StepExecutor] = None
    ):
        """
        Initialize the controller.

        Args:
            log_bus: Bus that receives every run log entry
            driver_factory: Opens a browser session for a run
            adapter: Site selectors and URLs
            browser_options: Launch options handed to the driver factory
            artifacts_dir: Where failure screenshots go (None disables them)
        """
        self.log_bus = log_bus
        self.logger = BusLogger(log_bus, "controller")
        self.driver_factory = driver_factory
        self.adapter = adapter
        self.browser_options = browser_options or BrowserOptions()
        self.artifacts_dir = Path(artifacts_dir) if artifacts_dir else None

        self.login_step = login_step or LoginStep()
        self.navigation_step = navigation_step or NavigationStep()
        self.scan_step = scan_step or ScanStep()
        self.connect_step = connect_step or ConnectStep()

        self._state = AutomationState()
        self._status_callbacks: List[Registration] = []
        self._token: Optional[CancellationToken] = None
        self._finished: Optional[asyncio.Event] = None
        self._seen: Set[str] = set()
        self._last_action_started: Optional[float] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    def get_status(self) -> AutomationState:
        """Get a snapshot of the current state."""
        return self._state.snapshot()

    def duration(self) -> Optional[float]:
        """Seconds the current (or last) run has taken, None before the first run."""
        return self._state.duration_seconds()

    def on_status_change(self, callback: StatusCallback) -> Callable[[], None]:
        """
        Register a callback that receives a state snapshot after every change.

        Returns:
            Unsubscribe handle for this registration only; calling it again is a no-op
        """
        token = Registration(callback)
        self._status_callbacks.append(token)

        def unsubscribe():
            if token.active:
                token.active = False
                self._status_callbacks.remove(token)

        return unsubscribe

    def reset(self):
        """Return a finished run to idle."""
        if self.is_running:
            raise AlreadyRunningError("Cannot reset while a run is in progress")
        self._state = AutomationState()
        self._notify()
        self.logger.info("Automation state reset")

    async def stop(self):
        """
        Request a cooperative stop and wait for the run to wind down.

        The browser call in flight (if any) is allowed to finish; the run
        ends at the next step boundary or cancellable wait. No-op when idle.
        """
        if not self.is_running or self._token is None:
            return

        self.logger.info("Stop requested, waiting for the current step to finish")
        self._token.cancel("Run stopped by operator")
        if self._finished is not None:
            await self._finished.wait()

    async def start(self, run_config: AutomationConfig) -> RunResult:
        """
        Execute a complete run.

        Args:
            run_config: Settings for this run

        Returns:
            RunResult holding the terminal state snapshot

        Raises:
            AlreadyRunningError: a run is already in flight (state untouched)
            ConfigurationError: the settings are unusable (state untouched)
        """
        if self.is_running:
            raise AlreadyRunningError("Automation is already running")

        errors = run_config.validate_settings()
        if errors:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(errors)}",
                context={"errors": errors}
            )

        # Everything up to the first await happens synchronously so a second
        # start() in the same loop iteration already sees is_running.
        self._token = CancellationToken()
        self._finished = asyncio.Event()
        self._seen = set()
        self._last_action_started = None
        self._state = AutomationState(
            current_step=WorkflowStep.LOGGING_IN,
            started_at=_now(),
            progress=RunProgress(max_connections=run_config.max_connections),
        )
        self._notify()

        self.logger.info(
            "Starting LinkedIn automation",
            max_connections=run_config.max_connections,
            min_mutual_connections=run_config.min_mutual_connections,
            min_action_delay=run_config.min_action_delay,
        )

        try:
            async with self.driver_factory(self.browser_options) as driver:
                try:
                    await self._run_steps(driver, run_config)
                except AutomationError as e:
                    if not isinstance(e, RunCancelled):
                        await self._capture_failure(driver, e)
                    raise
        except RunCancelled as e:
            self._finish(WorkflowStep.ERROR, error=e.message, cancelled=True)
        except AutomationError as e:
            self._finish(WorkflowStep.ERROR, error=e.message)
        except asyncio.CancelledError:
            self._finish(WorkflowStep.ERROR, error="Run task cancelled", cancelled=True)
            raise
        except Exception as e:
            self.logger.error(f"Unexpected failure: {e}", error=e, step=self._state.current_step.value)
            self._finish(WorkflowStep.ERROR, error=f"Unexpected error: {e}")
        else:
            self._finish(WorkflowStep.COMPLETED)
        finally:
            self._finished.set()

        status = self.get_status()
        return RunResult(
            success=status.current_step == WorkflowStep.COMPLETED,
            status=status,
            error=status.last_error,
            cancelled=status.cancelled,
        )

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    async def _run_steps(self, driver: BrowserDriver, run_config: AutomationConfig):
        await self._run_step(self.login_step, run_config.login_attempts, driver, run_config)

        self._transition(WorkflowStep.NAVIGATING)
        navigation = await self._run_step(
            self.navigation_step, run_config.navigation_attempts, driver, run_config
        )
        if not navigation.detail.get("container"):
            raise NavigationError("Navigation finished without reaching the list container", retryable=False)

        self._transition(WorkflowStep.SCANNING)
        scan = await self._run_step(self.scan_step, run_config.scan_attempts, driver, run_config)
        if scan.candidates is None:
            raise ScrollDetectionError("Scan finished without a candidate list", retryable=False)
        self._state.progress.candidates_discovered = int(scan.detail.get("items", 0))
        self.logger.info(
            f"Found {self._state.progress.candidates_discovered} suggestions in the list",
            step=self.scan_step.name, scrolls=scan.detail.get("scrolls", 0)
        )

        self._transition(WorkflowStep.CONNECTING)
        await self._connect_all(driver, run_config, scan.candidates)

    async def _connect_all(
        self,
        driver: BrowserDriver,
        run_config: AutomationConfig,
        candidates: AsyncIterator[Candidate]
    ):
        progress = self._state.progress
        try:
            async for candidate in candidates:
                if progress.connections_sent >= run_config.max_connections:
                    break
                self._token.raise_if_cancelled()

                if candidate.id in self._seen:
                    self.logger.debug(f"Already processed {candidate.name}", candidate_id=candidate.id)
                    continue
                self._seen.add(candidate.id)

                progress.candidates_evaluated += 1
                await self._pace(run_config)

                try:
                    await self._run_step(self.connect_step, 1, driver, run_config, candidate=candidate)
                except ActionSkipped:
                    progress.skipped += 1
                    self._notify()
                    continue

                progress.connections_sent += 1
                self.logger.action(
                    f"Sent connection request to {candidate.name}",
                    candidate_id=candidate.id,
                    mutual_connections=candidate.mutual_connections,
                )
                self.logger.info(
                    f"Progress: {progress.connections_sent}/{run_config.max_connections} "
                    f"({progress.percent_complete:.1f}%) - connections sent",
                    connections_sent=progress.connections_sent,
                    remaining=progress.remaining,
                )
                self._notify()
        finally:
            aclose = getattr(candidates, "aclose", None)
            if aclose is not None:
                await aclose()

        if progress.connections_sent >= run_config.max_connections:
            self.logger.info(f"Reached maximum connections limit ({run_config.max_connections})")
        else:
            self.logger.info("No more candidates in the list")

    async def _pace(self, run_config: AutomationConfig):
        """Keep consecutive connection actions at least min_action_delay apart."""
        loop = asyncio.get_running_loop()
        if self._last_action_started is not None:
            wait = run_config.min_action_delay - (loop.time() - self._last_action_started)
            if wait > 0:
                self.logger.debug(f"Waiting {wait:.1f}s before next connection action")
                await self._token.sleep(wait)
        self._last_action_started = loop.time()

    async def _run_step(
        self,
        executor: StepExecutor,
        attempts: int,
        driver: BrowserDriver,
        run_config: AutomationConfig,
        candidate: Optional[Candidate] = None
    ) -> StepResult:
        """Run one executor with the retry policy for its step."""
        token = self._token
        token.raise_if_cancelled()

        result: Optional[StepResult] = None
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=run_config.retry_backoff, max=run_config.retry_backoff_max),
            retry=retry_if_exception(is_retryable),
            sleep=token.sleep,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                context = {"step": executor.name, "attempt": number}
                if candidate is not None:
                    context["candidate_id"] = candidate.id

                if candidate is None:
                    self.logger.info(f"Running {executor.name} step (attempt {number}/{attempts})", **context)
                else:
                    self.logger.debug(f"Evaluating {candidate.name}", **context)

                step_context = StepContext(
                    driver=driver,
                    config=run_config,
                    adapter=self.adapter,
                    token=token,
                    logger=BusLogger(self.log_bus, executor.name),
                    attempt=number,
                    candidate=candidate,
                )
                try:
                    result = await executor.execute(step_context)
                except AutomationError as e:
                    self._log_step_error(e, number, attempts, context)
                    raise
                except Exception as e:
                    self.logger.error(f"{executor.name} step crashed: {e}", error=e, **context)
                    raise

        token.raise_if_cancelled()
        return result

    def _log_step_error(self, error: AutomationError, number: int, attempts: int, context: dict):
        if isinstance(error, RunCancelled):
            self.logger.info(error.message, **context)
        elif isinstance(error, ActionSkipped):
            self.logger.warning(f"Skipped: {error.reason}", **context)
        elif error.retryable and number < attempts:
            self.logger.warning(f"{error.message} (attempt {number}/{attempts}, will retry)", error=error, **context)
        else:
            self.logger.error(error.message, error=error, code=error.code, **context)

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _transition(self, step: WorkflowStep):
        current = self._state.current_step
        if step not in TRANSITIONS[current]:
            raise RuntimeError(f"Illegal transition {current.value} -> {step.value}")
        self._state.current_step = step
        self.logger.debug(f"State: {current.value} -> {step.value}")
        self._notify()

    def _finish(self, step: WorkflowStep, error: Optional[str] = None, cancelled: bool = False):
        self._state.current_step = step
        self._state.finished_at = _now()
        self._state.last_error = error
        self._state.cancelled = cancelled
        self._notify()

        if step == WorkflowStep.COMPLETED:
            self.logger.info("Automation completed successfully")
        elif cancelled:
            self.logger.warning(f"Automation stopped: {error}")
        else:
            self.logger.error(f"Automation failed: {error}")
        self._log_summary()

    def _log_summary(self):
        progress = self._state.progress
        duration = self._state.duration_seconds() or 0.0
        self.logger.info(
            f"Automation summary: {progress.candidates_evaluated} processed, "
            f"{progress.connections_sent} successful, {progress.skipped} skipped "
            f"({progress.success_rate:.1f}% success) in {duration:.1f}s",
            duration_seconds=round(duration, 1),
            processed=progress.candidates_evaluated,
            successful=progress.connections_sent,
            skipped=progress.skipped,
            success_rate=round(progress.success_rate, 1),
        )

    def _notify(self):
        if not self._status_callbacks:
            return
        snapshot = self._state.snapshot()
        for callback in list(self._status_callbacks):
            try:
                callback(snapshot)
            except Exception as e:
                log.warning(f"Status callback {callback!r} failed: {e}")

    async def _capture_failure(self, driver: BrowserDriver, error: AutomationError):
        """Save a screenshot of the page that caused a fatal error."""
        if self.artifacts_dir is None:
            return
        try:
            png = await driver.screenshot()
            image = Image.open(io.BytesIO(png))
            self.artifacts_dir.mkdir(parents=True, exist_ok=True)
            stamp = _now().strftime("%Y%m%d-%H%M%S")
            path = self.artifacts_dir / f"failure-{self._state.current_step.value}-{stamp}.png"
            image.save(path)
            self.logger.info(f"Saved failure screenshot to {path}", code=error.code)
        except Exception as e:
            self.logger.warning(f"Could not save failure screenshot: {e}")
