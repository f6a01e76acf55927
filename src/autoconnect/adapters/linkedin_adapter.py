"""Adapter for LinkedIn (linkedin.com)."""

from autoconnect.adapters.base_adapter import BaseAdapter


class LinkedInAdapter(BaseAdapter):
    """Selectors and URLs for the "People you may know" workflow."""

    name = "linkedin"

    username_selector = "#username"
    password_selector = "#password"
    submit_selectors = [
        'button[type="submit"]',
        'button[data-id="sign-in-form__submit-btn"]',
        '.btn__primary--large',
        'button:has-text("Sign in")',
    ]
    login_success_selectors = [
        '.global-nav',
        '[data-test-id="nav-top-bar"]',
        '.feed-container',
        '.global-nav__me',
    ]
    login_failure_selectors = [
        '.form__input--error',
        '#error-for-username',
        '#error-for-password',
        '.alert-content',
    ]
    challenge_url_fragments = ["/checkpoint/", "/challenge/", "/uas/captcha"]

    show_all_selectors = [
        'button[data-view-name="cohort-section-see-all"]',
        'a[data-view-name="cohort-section-see-all"]',
        'button[aria-label*="Show all suggestions"]',
        'button[aria-label*="Show all"]',
        'button:has-text("Show all")',
        'button:has-text("See all")',
        'a:has-text("Show all")',
        'a:has-text("See all")',
        '.mn-pymk-list__footer button',
        '[data-control-name*="see_all"]',
    ]
    list_container_selectors = [
        '[data-testid="dialog"]',
        '[role="dialog"]',
        '.artdeco-modal',
    ]

    scroll_container_selectors = [
        '[data-testid="dialog"] .scaffold-finite-scroll__content',
        '[data-testid="dialog"] .artdeco-modal__content',
        '[role="dialog"] .artdeco-modal__content',
        '[data-testid="dialog"] [style*="overflow-y: auto"]',
        '[data-testid="dialog"]',
    ]
    item_selector = '[role="listitem"]'

    connect_button_selectors = [
        'button:has-text("Connect")',
        'button[aria-label*="Invite"][aria-label*="connect"]',
        'button[aria-label*="Connect"]',
        '.artdeco-button:has-text("Connect")',
    ]
    pending_selectors = [
        'button:has-text("Pending")',
        'button[aria-label*="Pending"]',
        'button[aria-label*="Withdraw"]',
    ]
    confirm_selectors = [
        'button[aria-label="Send without a note"]',
        'button:has-text("Send without a note")',
        'button:has-text("Send now")',
        'button[aria-label*="Send"]',
    ]
    block_indicator_selectors = [
        '.ip-fuse-limit-alert',
        'h2:has-text("You\'ve reached the weekly invitation limit")',
        'div:has-text("reached the weekly invitation limit")',
        'iframe[src*="captcha"]',
    ]

    @property
    def login_url(self) -> str:
        return "https://www.linkedin.com/login"

    @property
    def network_url(self) -> str:
        return "https://www.linkedin.com/mynetwork/grow/"

    def is_authenticated_url(self, url: str) -> bool:
        if "linkedin.com" not in url:
            return False
        if "/login" in url or "/uas/" in url or self.is_challenge_url(url):
            return False
        return any(part in url for part in ("/feed", "/mynetwork", "/in/"))

    def is_network_url(self, url: str) -> bool:
        return "/mynetwork" in url
