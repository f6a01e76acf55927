"""Narrow browser capability the automation steps depend on.

The Playwright-backed ``BrowserController`` implements this protocol; tests
use an in-memory fake that satisfies the same contract.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional, Protocol, runtime_checkable

from autoconnect.utils import BrowserOptions


@dataclass(frozen=True)
class ScrollOffsets:
    """Vertical scroll positions of the outer page and of a container."""
    page: float
    container: float
    container_height: float = 0.0
    container_client_height: float = 0.0

    @property
    def can_scroll_more(self) -> bool:
        return self.container < self.container_height - self.container_client_height - 10


@dataclass(frozen=True)
class ListItem:
    """A list entry as read from the page, tagged so it can be found again."""
    key: str
    text: str
    href: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)


@runtime_checkable
class BrowserDriver(Protocol):
    """Browser primitives used by the step executors."""

    async def goto(self, url: str, wait_until: str = "domcontentloaded") -> None:
        ...

    def current_url(self) -> str:
        ...

    async def is_visible(self, selector: str) -> bool:
        ...

    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        ...

    async def click(self, selector: str) -> None:
        ...

    async def fill(self, selector: str, text: str) -> None:
        ...

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        ...

    async def count(self, selector: str) -> int:
        ...

    async def collect_items(self, container_selector: str, item_selector: str) -> List[ListItem]:
        ...

    async def scroll_offsets(self, container_selector: str) -> ScrollOffsets:
        ...

    async def scroll_container(self, container_selector: str, pixels: Optional[int] = None) -> None:
        ...

    async def screenshot(self) -> bytes:
        ...


# Opens a browser session for one run and closes it afterwards
DriverFactory = Callable[[BrowserOptions], AsyncContextManager[BrowserDriver]]
