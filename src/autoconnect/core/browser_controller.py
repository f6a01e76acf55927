"""Browser automation controller using Playwright."""

from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Type

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Locator,
    Page,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from autoconnect.core.driver import ListItem, ScrollOffsets
from autoconnect.core.errors import (
    AutomationError,
    DriverError,
    InteractionError,
    NavigationError,
    StepTimeoutError,
)
from autoconnect.utils import BrowserOptions, log

# Tags every item with a stable key so later lookups can find the same card.
_TAG_ITEMS_SCRIPT = """
(elements) => {
    window.__autoconnectSeq = window.__autoconnectSeq || 0;
    return elements.map((el) => {
        let key = el.getAttribute('data-autoconnect-key');
        if (!key) {
            window.__autoconnectSeq += 1;
            key = `item-${window.__autoconnectSeq}`;
            el.setAttribute('data-autoconnect-key', key);
        }
        const link = el.querySelector('a[href*="/in/"]');
        return {
            key: key,
            text: el.innerText || '',
            href: link ? link.href : null,
            ariaLabel: el.getAttribute('aria-label') || ''
        };
    });
}
"""

_SCROLL_OFFSETS_SCRIPT = """
(el) => ({
    page: window.scrollY || document.documentElement.scrollTop || 0,
    container: el.scrollTop,
    height: el.scrollHeight,
    client: el.clientHeight
})
"""

# Scrolls to the bottom when no pixel amount is given
_SCROLL_CONTAINER_SCRIPT = """
(el, pixels) => {
    el.scrollTop = pixels === null ? el.scrollHeight : el.scrollTop + pixels;
}
"""

_CLOSED_MARKERS = ("has been closed", "target closed", "browser closed", "crashed")


class BrowserController:
    """Drives a single Playwright page; implements ``BrowserDriver``."""

    def __init__(self, options: BrowserOptions):
        """
        Initialize the browser controller.

        Args:
            options: Launch options (browser type, profile, viewport)
        """
        self.options = options
        self.browser_type = options.browser_type
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.action_timeout = min(options.timeout_ms, 10000)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Start the browser."""
        self.playwright = await async_playwright().start()

        profile_dir = self._profile_dir()
        if profile_dir:
            await self._launch_persistent(profile_dir)
        else:
            self.browser = await self._launch_browser(self.browser_type)
            self.context = await self.browser.new_context(viewport=self._viewport(), locale='en-US')
            self.page = await self.context.new_page()

        self.context.set_default_timeout(self.options.timeout_ms)
        log.info(f"Browser started ({self.browser_type}, headless={self.options.headless})")

    async def close(self):
        """Close the browser and cleanup."""
        log.info("Closing browser")
        for resource in (self.context, self.browser):
            if resource is None:
                continue
            try:
                await resource.close()
            except PlaywrightError as e:
                log.debug(f"Ignoring error while closing browser: {e}")
        if self.playwright:
            await self.playwright.stop()
        self.page = self.context = self.browser = self.playwright = None

    def _profile_dir(self) -> Optional[str]:
        if self.options.use_existing_profile and self.options.chrome_user_data_dir:
            return self.options.chrome_user_data_dir
        return self.options.user_data_dir

    def _viewport(self) -> Dict[str, int]:
        return {'width': self.options.viewport_width, 'height': self.options.viewport_height}

    def _launcher(self, browser_type: str):
        browser_map = {
            "chromium": self.playwright.chromium,
            "firefox": self.playwright.firefox,
            "webkit": self.playwright.webkit,
        }
        launcher = browser_map.get(browser_type.lower())
        if not launcher:
            log.warning(f"Unknown browser_type '{browser_type}', defaulting to Chromium")
            self.browser_type = "chromium"
            launcher = self.playwright.chromium
        return launcher

    async def _launch_persistent(self, profile_dir: str):
        """Launch with a user-data directory so sessions survive between runs."""
        Path(profile_dir).mkdir(parents=True, exist_ok=True)
        kwargs: Dict[str, Any] = {
            "headless": self.options.headless,
            "viewport": self._viewport(),
        }
        if self.options.chrome_executable_path:
            kwargs["executable_path"] = self.options.chrome_executable_path
            self.browser_type = "chromium"
        if self.browser_type == "chromium":
            kwargs["args"] = ["--disable-blink-features=AutomationControlled"]

        log.info(f"Launching {self.browser_type} with profile {profile_dir}")
        self.context = await self._launcher(self.browser_type).launch_persistent_context(profile_dir, **kwargs)
        self.page = self.context.pages[0] if self.context.pages else await self.context.new_page()

    async def _launch_browser(self, browser_type: str) -> Browser:
        """Launch the requested browser type, falling back to WebKit if Chromium fails."""
        launcher = self._launcher(browser_type)
        try:
            log.info(f"Launching Playwright browser: {self.browser_type}")
            return await launcher.launch(headless=self.options.headless)
        except PlaywrightError as launch_error:
            log.error(f"Failed to launch {self.browser_type}: {launch_error}")
            if self.browser_type == "chromium":
                log.info("Attempting fallback to WebKit")
                self.browser_type = "webkit"
                return await self.playwright.webkit.launch(headless=self.options.headless)
            raise

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    def _is_closed(self, error: Exception) -> bool:
        if self.page is None or self.page.is_closed():
            return True
        message = str(error).lower()
        return any(marker in message for marker in _CLOSED_MARKERS)

    @contextmanager
    def _mapped_errors(
        self,
        action: str,
        selector: Optional[str] = None,
        failure: Type[AutomationError] = InteractionError
    ):
        """Translate Playwright exceptions into automation errors."""
        if self.page is None or self.page.is_closed():
            raise DriverError(f"Cannot {action}: browser page is not open")
        try:
            yield
        except PlaywrightTimeoutError as e:
            raise StepTimeoutError(f"{action} timed out", context={"selector": selector, "detail": str(e)}) from e
        except PlaywrightError as e:
            if self._is_closed(e):
                raise DriverError(f"Browser session lost during {action}: {e}") from e
            raise failure(f"{action} failed: {e}", context={"selector": selector}) from e

    def _locator(self, selector: str) -> Locator:
        return self.page.locator(selector).first

    # ------------------------------------------------------------------
    # BrowserDriver
    # ------------------------------------------------------------------

    async def goto(self, url: str, wait_until: str = "domcontentloaded"):
        log.info(f"Navigating to: {url}")
        with self._mapped_errors("navigate", url, failure=NavigationError):
            await self.page.goto(url, wait_until=wait_until, timeout=self.options.timeout_ms)

    def current_url(self) -> str:
        if self.page is None or self.page.is_closed():
            raise DriverError("Browser page is not open")
        return self.page.url

    async def is_visible(self, selector: str) -> bool:
        with self._mapped_errors("check visibility", selector):
            return await self._locator(selector).is_visible()

    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        try:
            with self._mapped_errors("wait for element", selector):
                await self._locator(selector).wait_for(state="visible", timeout=timeout_ms)
        except StepTimeoutError:
            return False
        return True

    async def click(self, selector: str):
        """Click the first match, retrying once with force if the normal click times out."""
        locator = self._locator(selector)
        with self._mapped_errors("click", selector):
            try:
                await locator.scroll_into_view_if_needed(timeout=self.action_timeout)
            except PlaywrightTimeoutError as e:
                log.debug(f"Scroll into view skipped ({selector}): {e}")
            try:
                await locator.click(timeout=self.action_timeout)
            except PlaywrightTimeoutError as e:
                log.warning(f"Click timed out ({selector}), retrying with force: {e}")
                await locator.click(timeout=self.action_timeout, force=True)

    async def fill(self, selector: str, text: str):
        with self._mapped_errors("fill", selector):
            await self._locator(selector).fill(text, timeout=self.action_timeout)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        with self._mapped_errors("evaluate script"):
            return await self.page.evaluate(script, arg)

    async def count(self, selector: str) -> int:
        with self._mapped_errors("count elements", selector):
            return await self.page.locator(selector).count()

    async def collect_items(self, container_selector: str, item_selector: str) -> List[ListItem]:
        """Read every item in the container, tagging each with a stable key."""
        items = self._locator(container_selector).locator(item_selector)
        with self._mapped_errors("collect list items", container_selector):
            raw = await items.evaluate_all(_TAG_ITEMS_SCRIPT)

        result = []
        for data in raw:
            attributes = {"aria-label": data["ariaLabel"]} if data.get("ariaLabel") else {}
            result.append(ListItem(key=data["key"], text=data["text"], href=data.get("href"), attributes=attributes))
        log.debug(f"Collected {len(result)} items from {container_selector}")
        return result

    async def scroll_offsets(self, container_selector: str) -> ScrollOffsets:
        with self._mapped_errors("read scroll offsets", container_selector):
            data = await self._locator(container_selector).evaluate(_SCROLL_OFFSETS_SCRIPT)
        return ScrollOffsets(
            page=data["page"],
            container=data["container"],
            container_height=data["height"],
            container_client_height=data["client"],
        )

    async def scroll_container(self, container_selector: str, pixels: Optional[int] = None):
        with self._mapped_errors("scroll container", container_selector):
            await self._locator(container_selector).evaluate(_SCROLL_CONTAINER_SCRIPT, pixels)

    async def screenshot(self) -> bytes:
        with self._mapped_errors("take screenshot"):
            return await self.page.screenshot(full_page=False)


@asynccontextmanager
async def playwright_session(options: BrowserOptions) -> AsyncIterator[BrowserController]:
    """Open a browser for one run and close it afterwards."""
    controller = BrowserController(options)
    try:
        await controller.start()
    except PlaywrightError as e:
        await controller.close()
        raise DriverError(f"Could not launch browser: {e}") from e
    try:
        yield controller
    finally:
        await controller.close()
