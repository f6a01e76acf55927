"""Step executors: one externally-timed browser operation each.

Executors are stateless between invocations. They either return a
``StepResult`` or raise an ``AutomationError`` subclass; classifying the
error (retry, skip, abort) is the controller's job.
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Iterable, List, Optional

from autoconnect.core.cancellation import CancellationToken
from autoconnect.core.driver import BrowserDriver, ListItem
from autoconnect.core.errors import (
    ActionBlockedError,
    ActionSkipped,
    AuthenticationError,
    InteractionError,
    NavigationError,
    ScrollDetectionError,
    StepTimeoutError,
)
from autoconnect.core.log_bus import BusLogger
from autoconnect.core.state import Candidate
from autoconnect.utils import AutomationConfig

if TYPE_CHECKING:
    from autoconnect.adapters import BaseAdapter

# Upper bound for a single poll interval while waiting on page markers
POLL_INTERVAL = 0.5


@dataclass
class StepContext:
    """What an executor needs for one invocation."""
    driver: BrowserDriver
    config: AutomationConfig
    adapter: "BaseAdapter"
    token: CancellationToken
    logger: BusLogger
    attempt: int = 1
    candidate: Optional[Candidate] = None


@dataclass
class StepResult:
    """Successful outcome of a step."""
    step: str
    detail: Dict[str, Any] = field(default_factory=dict)
    candidates: Optional[AsyncIterator[Candidate]] = None


async def first_visible(driver: BrowserDriver, selectors: Iterable[str]) -> Optional[str]:
    """Return the first selector that currently matches a visible element."""
    for selector in selectors:
        if await driver.is_visible(selector):
            return selector
    return None


class StepExecutor:
    """Base class for the workflow steps."""

    name = "step"

    async def execute(self, context: StepContext) -> StepResult:
        raise NotImplementedError


class LoginStep(StepExecutor):
    """Sign in and confirm the post-login page marker appears."""

    name = "login"

    async def execute(self, context: StepContext) -> StepResult:
        driver, adapter, config = context.driver, context.adapter, context.config

        if not config.linkedin_username or not config.linkedin_password:
            raise AuthenticationError("Credentials not configured")

        await driver.goto(adapter.login_url)
        url = driver.current_url()

        # A persistent browser profile may already hold a session
        if adapter.is_authenticated_url(url):
            context.logger.info("Session already authenticated, skipping credential entry", step=self.name, url=url)
            return StepResult(self.name, {"already_authenticated": True, "url": url})

        if adapter.is_challenge_url(url):
            raise AuthenticationError("Security challenge shown before login", context={"url": url})

        if not await driver.wait_for(adapter.username_selector, timeout_ms=config.timeout_ms):
            raise StepTimeoutError("Login form did not appear", context={"url": url})

        await driver.fill(adapter.username_selector, config.linkedin_username)
        await driver.fill(adapter.password_selector, config.linkedin_password)

        submit = await first_visible(driver, adapter.submit_selectors)
        if not submit:
            raise StepTimeoutError("Login submit button not found", context={"url": url})
        await driver.click(submit)

        url = await self._wait_for_marker(context)
        return StepResult(self.name, {"already_authenticated": False, "url": url})

    async def _wait_for_marker(self, context: StepContext) -> str:
        driver, adapter = context.driver, context.adapter
        loop = asyncio.get_running_loop()
        deadline = loop.time() + context.config.login_timeout

        while True:
            url = driver.current_url()
            if adapter.is_challenge_url(url):
                raise AuthenticationError("Security challenge after submitting credentials", context={"url": url})

            failure = await first_visible(driver, adapter.login_failure_selectors)
            if failure:
                raise AuthenticationError("Login rejected: invalid credentials", context={"indicator": failure})

            if adapter.is_authenticated_url(url) or await first_visible(driver, adapter.login_success_selectors):
                return url

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise StepTimeoutError(
                    f"Post-login marker did not appear within {context.config.login_timeout}s",
                    context={"url": url}
                )
            await context.token.sleep(min(POLL_INTERVAL, remaining))


class NavigationStep(StepExecutor):
    """Open the suggestions view and its full-list container."""

    name = "navigation"

    async def execute(self, context: StepContext) -> StepResult:
        driver, adapter, config = context.driver, context.adapter, context.config

        await driver.goto(adapter.network_url)
        url = driver.current_url()
        if not adapter.is_network_url(url):
            raise NavigationError(f"Expected network page, got {url}", context={"url": url})

        await context.token.sleep(config.settle_delay)

        clicked = await first_visible(driver, adapter.show_all_selectors)
        if not clicked:
            raise NavigationError(
                "Could not find the 'show all' control with any locator",
                context={"url": url, "locators_tried": len(adapter.show_all_selectors)}
            )
        context.logger.debug(f"Clicking list opener {clicked}", step=self.name, attempt=context.attempt)
        await driver.click(clicked)

        container = await self._wait_for_container(context)
        if not container:
            raise NavigationError(
                "List container absent after exhausting fallback locators",
                context={"url": driver.current_url(), "locators_tried": len(adapter.list_container_selectors)}
            )

        return StepResult(self.name, {"url": driver.current_url(), "opener": clicked, "container": container})

    async def _wait_for_container(self, context: StepContext) -> Optional[str]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + context.config.timeout_ms / 1000

        while True:
            container = await first_visible(context.driver, context.adapter.list_container_selectors)
            if container:
                return container
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            await context.token.sleep(min(POLL_INTERVAL, remaining))


class ScanStep(StepExecutor):
    """
    Reveal list items by scrolling the list's own container until the item
    count stops changing, then hand out the cards as candidates.

    Each scroll is checked against the outer page offset: if the page moved,
    the wrong element was targeted and the scan fails, whatever happened to
    the item count.
    """

    name = "scan"

    async def execute(self, context: StepContext) -> StepResult:
        driver, adapter, config = context.driver, context.adapter, context.config

        container = await first_visible(driver, adapter.scroll_container_selectors)
        if not container:
            raise ScrollDetectionError("No scrollable list container found")

        item_selector = f"{container} {adapter.item_selector}"
        if not await driver.wait_for(item_selector, timeout_ms=config.timeout_ms):
            raise StepTimeoutError("No list items appeared in the container", context={"container": container})

        count = await driver.count(item_selector)
        stable_rounds = 0
        scrolls = 0

        while scrolls < config.max_scroll_attempts and stable_rounds < config.scroll_stable_rounds:
            context.token.raise_if_cancelled()

            before = await driver.scroll_offsets(container)
            if not before.can_scroll_more:
                context.logger.debug("List container is at the bottom", step=self.name, items=count)
                break

            await driver.scroll_container(container, config.scroll_amount)
            scrolls += 1
            await context.token.sleep(config.settle_delay)

            after = await driver.scroll_offsets(container)
            new_count = await driver.count(item_selector)

            if after.page != before.page:
                raise ScrollDetectionError(
                    "Outer page scrolled instead of the list container",
                    context={
                        "container": container,
                        "page_before": before.page,
                        "page_after": after.page,
                        "items_before": count,
                        "items_after": new_count,
                    }
                )

            if new_count == count or after.container == before.container:
                stable_rounds += 1
            else:
                stable_rounds = 0

            context.logger.debug(
                f"Scrolled list container: {count} -> {new_count} items",
                step=self.name, scroll=scrolls, offset=after.container
            )
            count = new_count

        items = await driver.collect_items(container, adapter.item_selector)
        return StepResult(
            self.name,
            {"container": container, "items": len(items), "scrolls": scrolls},
            candidates=self._iter_candidates(context, items)
        )

    async def _iter_candidates(self, context: StepContext, items: List[ListItem]) -> AsyncIterator[Candidate]:
        for item in items:
            context.token.raise_if_cancelled()
            candidate = context.adapter.parse_card(item)
            if candidate is None:
                context.logger.debug("Ignoring list item without a readable name", step=self.name, item_key=item.key)
                continue
            yield candidate


class ConnectStep(StepExecutor):
    """
    Check one candidate's eligibility, send the invitation, verify it took.

    A flaky page interaction anywhere after the eligibility check only
    skips this candidate. ``ActionBlockedError`` and ``DriverError`` still
    end the run.
    """

    name = "connect"

    async def execute(self, context: StepContext) -> StepResult:
        config = context.config
        candidate = context.candidate
        if candidate is None:
            raise ValueError("ConnectStep needs a candidate")

        if candidate.mutual_connections < config.min_mutual_connections:
            raise ActionSkipped(
                f"Only {candidate.mutual_connections} mutual connections "
                f"(minimum: {config.min_mutual_connections})",
                candidate.id
            )

        try:
            verified_by = await self._send_invitation(context, candidate)
        except (InteractionError, StepTimeoutError) as e:
            raise ActionSkipped(
                f"Connect interaction failed: {e.message}",
                candidate.id,
                context={"code": e.code}
            ) from e
        return StepResult(self.name, {"candidate_id": candidate.id, "verified_by": verified_by})

    async def _send_invitation(self, context: StepContext, candidate: Candidate) -> str:
        driver, adapter, config = context.driver, context.adapter, context.config

        await self._check_blocked(context)

        connect_selectors = [adapter.within_card(candidate.item_key, s) for s in adapter.connect_button_selectors]
        button = await first_visible(driver, connect_selectors)
        if not button:
            raise ActionSkipped("No Connect button available", candidate.id)

        await driver.click(button)
        # Short settle; the invitation is already on its way so this wait is not interruptible
        await asyncio.sleep(config.settle_delay / 2)

        confirm = await first_visible(driver, adapter.confirm_selectors)
        if confirm:
            context.logger.debug("Confirming invitation", step=self.name, candidate_id=candidate.id)
            await driver.click(confirm)
            await asyncio.sleep(config.settle_delay / 2)

        await self._check_blocked(context)

        pending = await first_visible(
            driver, [adapter.within_card(candidate.item_key, s) for s in adapter.pending_selectors]
        )
        if pending:
            return "pending"
        if not await first_visible(driver, connect_selectors):
            return "button_gone"

        raise ActionSkipped("Connect click had no visible effect", candidate.id)

    async def _check_blocked(self, context: StepContext):
        url = context.driver.current_url()
        if context.adapter.is_challenge_url(url):
            raise ActionBlockedError("Security checkpoint shown during connection", context={"url": url})
        indicator = await first_visible(context.driver, context.adapter.block_indicator_selectors)
        if indicator:
            raise ActionBlockedError("Platform signalled an invitation limit or automation check",
                                     context={"indicator": indicator})
