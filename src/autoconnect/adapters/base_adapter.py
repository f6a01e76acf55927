"""Base adapter interface for the target site."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from autoconnect.adapters.card_parser import (
    candidate_id,
    extract_connection_name,
    extract_mutual_line,
    parse_mutual_connection_count,
)
from autoconnect.core.driver import ListItem
from autoconnect.core.state import Candidate


class BaseAdapter(ABC):
    """
    Site-specific knowledge used by the step executors: URLs, prioritized
    selector lists and how to read a suggestion card.

    Selector lists are tried in order; the first match wins.
    """

    name = "base"

    # Login
    username_selector = "#username"
    password_selector = "#password"
    submit_selectors: List[str] = ['button[type="submit"]']
    login_success_selectors: List[str] = []
    login_failure_selectors: List[str] = []
    challenge_url_fragments: List[str] = []

    # Navigation
    show_all_selectors: List[str] = []
    list_container_selectors: List[str] = ['[role="dialog"]']

    # Scanning
    scroll_container_selectors: List[str] = []
    item_selector = '[role="listitem"]'

    # Connecting (relative to a card)
    connect_button_selectors: List[str] = ['button:has-text("Connect")']
    pending_selectors: List[str] = ['button:has-text("Pending")']
    confirm_selectors: List[str] = []
    block_indicator_selectors: List[str] = []

    @property
    @abstractmethod
    def login_url(self) -> str:
        """URL of the login form."""

    @property
    @abstractmethod
    def network_url(self) -> str:
        """URL of the view holding the suggestions list."""

    @abstractmethod
    def is_authenticated_url(self, url: str) -> bool:
        """Whether the browser landed on a page only signed-in users see."""

    def is_network_url(self, url: str) -> bool:
        return url.startswith(self.network_url)

    def is_challenge_url(self, url: str) -> bool:
        return any(fragment in url for fragment in self.challenge_url_fragments)

    def card_selector(self, item_key: str) -> str:
        """Selector that finds a tagged card again."""
        return f'[data-autoconnect-key="{item_key}"]'

    def within_card(self, item_key: str, selector: str) -> str:
        return f"{self.card_selector(item_key)} {selector}"

    def parse_card(self, item: ListItem) -> Optional[Candidate]:
        """
        Turn a raw list item into a candidate record.

        Returns:
            Candidate, or None when no name can be read from the card
        """
        name = extract_connection_name(item.text)
        if not name:
            return None

        mutual_line = extract_mutual_line(item.text)
        return Candidate(
            id=candidate_id(name, item.href),
            name=name,
            mutual_connections=parse_mutual_connection_count(mutual_line),
            item_key=item.key,
            profile_url=item.href,
            raw_text=item.text,
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "login_url": self.login_url,
            "network_url": self.network_url,
        }
