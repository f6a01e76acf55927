"""Tests for the step executors against the fake browser."""

import pytest

from autoconnect.core import (
    ActionBlockedError,
    ActionSkipped,
    AuthenticationError,
    BusLogger,
    ConnectStep,
    DriverError,
    InteractionError,
    ListItem,
    LoginStep,
    NavigationError,
    NavigationStep,
    RunCancelled,
    ScanStep,
    ScrollDetectionError,
    StepContext,
    StepTimeoutError,
)
from autoconnect.core.cancellation import CancellationToken

from fakes import (
    ADAPTER,
    CONFIRM,
    CONNECT,
    DIALOG,
    FEED_URL,
    PENDING,
    SCROLLER,
    SHOW_ALL,
    linkedin_driver,
    make_config,
    person,
)


def context_for(driver, log_bus, candidate=None, **overrides):
    return StepContext(
        driver=driver,
        config=make_config(**overrides),
        adapter=ADAPTER,
        token=CancellationToken(),
        logger=BusLogger(log_bus, "test"),
        candidate=candidate,
    )


PEOPLE = [
    person(0, "Ada Lovelace", 5),
    person(1, "Grace Hopper", 1),
    person(2, "Alan Turing", 12),
    person(3, "Edsger Dijkstra", 0),
    person(4, "Barbara Liskov", 3),
]


# Login ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_login_reuses_existing_session(log_bus):
    driver = linkedin_driver(PEOPLE, logged_in=True)

    result = await LoginStep().execute(context_for(driver, log_bus))

    assert result.detail["already_authenticated"] is True
    assert driver.fills == {}


@pytest.mark.asyncio
async def test_login_with_credentials(log_bus):
    driver = linkedin_driver(PEOPLE, logged_in=False)

    result = await LoginStep().execute(context_for(driver, log_bus))

    assert result.detail == {"already_authenticated": False, "url": FEED_URL}
    assert driver.fills[ADAPTER.username_selector] == "tester@example.com"
    assert driver.fills[ADAPTER.password_selector] == "hunter2"
    assert driver.clicks[-1][1] == ADAPTER.submit_selectors[0]


@pytest.mark.asyncio
async def test_login_rejected_credentials_is_fatal(log_bus):
    driver = linkedin_driver(PEOPLE, logged_in=False)
    driver.click_effects[ADAPTER.submit_selectors[0]] = lambda d: d.visible.add(ADAPTER.login_failure_selectors[0])

    with pytest.raises(AuthenticationError) as exc_info:
        await LoginStep().execute(context_for(driver, log_bus))

    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_login_security_challenge_is_fatal(log_bus):
    driver = linkedin_driver(PEOPLE, logged_in=False)

    def challenge(d):
        d.url = "https://www.linkedin.com/checkpoint/challenge/abc"
    driver.click_effects[ADAPTER.submit_selectors[0]] = challenge

    with pytest.raises(AuthenticationError, match="challenge"):
        await LoginStep().execute(context_for(driver, log_bus))


@pytest.mark.asyncio
async def test_login_marker_never_appears_times_out(log_bus):
    driver = linkedin_driver(PEOPLE, logged_in=False)
    driver.click_effects.pop(ADAPTER.submit_selectors[0])

    with pytest.raises(StepTimeoutError) as exc_info:
        await LoginStep().execute(context_for(driver, log_bus, login_timeout=0.05))

    assert exc_info.value.retryable is True
    assert isinstance(exc_info.value, TimeoutError)


@pytest.mark.asyncio
async def test_login_without_credentials(log_bus):
    driver = linkedin_driver(PEOPLE, logged_in=False)

    with pytest.raises(AuthenticationError, match="Credentials"):
        await LoginStep().execute(context_for(driver, log_bus, linkedin_password=""))

    assert driver.visits == []


# Navigation ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_navigation_opens_list(log_bus):
    driver = linkedin_driver(PEOPLE)

    result = await NavigationStep().execute(context_for(driver, log_bus))

    assert driver.visits == [ADAPTER.network_url]
    assert result.detail["opener"] == SHOW_ALL
    assert result.detail["container"] == DIALOG


@pytest.mark.asyncio
async def test_navigation_without_show_all_control(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.visible.discard(SHOW_ALL)

    with pytest.raises(NavigationError, match="show all") as exc_info:
        await NavigationStep().execute(context_for(driver, log_bus))

    assert exc_info.value.retryable is True
    assert exc_info.value.context["locators_tried"] == len(ADAPTER.show_all_selectors)


@pytest.mark.asyncio
async def test_navigation_container_never_appears(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.click_effects.pop(SHOW_ALL)

    with pytest.raises(NavigationError, match="List container absent"):
        await NavigationStep().execute(context_for(driver, log_bus, timeout_ms=30))


@pytest.mark.asyncio
async def test_navigation_redirected_away(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.routes[ADAPTER.network_url] = ADAPTER.login_url

    with pytest.raises(NavigationError, match="Expected network page"):
        await NavigationStep().execute(context_for(driver, log_bus))


# Scanning --------------------------------------------------------------------

def _scan_driver(people, **kwargs):
    driver = linkedin_driver(people, **kwargs)
    driver.visible.update({DIALOG, SCROLLER})
    return driver


@pytest.mark.asyncio
async def test_scan_scrolls_container_until_all_loaded(log_bus):
    driver = _scan_driver(PEOPLE, loaded=1, items_per_scroll=2)

    result = await ScanStep().execute(context_for(driver, log_bus))
    candidates = [c async for c in result.candidates]

    assert driver.scrolls == 2
    assert driver.page_offset == 0
    assert result.detail["items"] == 5
    assert [c.name for c in candidates] == [
        "Ada Lovelace", "Grace Hopper", "Alan Turing", "Edsger Dijkstra", "Barbara Liskov"
    ]
    assert [c.mutual_connections for c in candidates] == [5, 1, 12, 0, 3]
    assert candidates[0].id == "in-ada-lovelace"


@pytest.mark.asyncio
async def test_scan_stops_when_count_is_stable(log_bus):
    driver = _scan_driver(PEOPLE)
    driver.always_scrollable = True

    result = await ScanStep().execute(context_for(driver, log_bus, scroll_stable_rounds=2))

    assert driver.scrolls == 2
    assert result.detail["items"] == 5


@pytest.mark.asyncio
async def test_scan_respects_max_scroll_attempts(log_bus):
    people = [person(i, f"Person {i}", i) for i in range(20)]
    driver = _scan_driver(people, loaded=1, items_per_scroll=1)

    result = await ScanStep().execute(context_for(driver, log_bus, max_scroll_attempts=3))

    assert driver.scrolls == 3
    assert result.detail["items"] == 4


@pytest.mark.asyncio
async def test_scan_detects_outer_page_scroll_even_when_items_grow(log_bus):
    driver = _scan_driver(PEOPLE, loaded=1, items_per_scroll=2)
    driver.scroll_moves_page = True

    with pytest.raises(ScrollDetectionError) as exc_info:
        await ScanStep().execute(context_for(driver, log_bus))

    error = exc_info.value
    assert error.retryable is True
    assert error.context["items_after"] > error.context["items_before"]
    assert error.context["page_after"] != error.context["page_before"]


@pytest.mark.asyncio
async def test_scan_without_container(log_bus):
    driver = linkedin_driver(PEOPLE)

    with pytest.raises(ScrollDetectionError, match="No scrollable list container"):
        await ScanStep().execute(context_for(driver, log_bus))


@pytest.mark.asyncio
async def test_scan_without_items_times_out(log_bus):
    driver = _scan_driver([])

    with pytest.raises(StepTimeoutError):
        await ScanStep().execute(context_for(driver, log_bus))


@pytest.mark.asyncio
async def test_scan_candidates_skip_nameless_cards(log_bus):
    people = [person(0, "Ada Lovelace", 2), ListItem(key="item-1", text="  \n "), person(2, "Alan Turing", 4)]
    driver = _scan_driver(people)

    result = await ScanStep().execute(context_for(driver, log_bus))

    assert [c.name async for c in result.candidates] == ["Ada Lovelace", "Alan Turing"]


@pytest.mark.asyncio
async def test_scan_candidates_stop_when_cancelled(log_bus):
    driver = _scan_driver(PEOPLE)
    context = context_for(driver, log_bus)

    result = await ScanStep().execute(context)
    first = await result.candidates.__anext__()
    context.token.cancel()

    assert first.name == "Ada Lovelace"
    with pytest.raises(RunCancelled):
        await result.candidates.__anext__()


# Connecting --------------------------------------------------------------------

def _candidate(index=0):
    return ADAPTER.parse_card(PEOPLE[index])


@pytest.mark.asyncio
async def test_connect_sends_invitation(log_bus):
    driver = linkedin_driver(PEOPLE)
    candidate = _candidate(0)

    result = await ConnectStep().execute(context_for(driver, log_bus, candidate=candidate))

    assert result.detail == {"candidate_id": candidate.id, "verified_by": "pending"}
    assert len(driver.connect_clicks()) == 1
    assert driver.cards["item-0"]["pending"] is True


@pytest.mark.asyncio
async def test_connect_below_threshold_is_skipped(log_bus):
    driver = linkedin_driver(PEOPLE)
    candidate = _candidate(1)

    with pytest.raises(ActionSkipped, match="Only 1 mutual connections") as exc_info:
        await ConnectStep().execute(context_for(driver, log_bus, candidate=candidate, min_mutual_connections=3))

    assert exc_info.value.candidate_id == candidate.id
    assert driver.clicks == []


@pytest.mark.asyncio
async def test_connect_without_button_is_skipped(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.cards["item-0"]["connect"] = False

    with pytest.raises(ActionSkipped, match="No Connect button"):
        await ConnectStep().execute(context_for(driver, log_bus, candidate=_candidate(0)))


@pytest.mark.asyncio
async def test_connect_handles_send_confirmation(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.cards["item-0"]["confirm"] = True

    result = await ConnectStep().execute(context_for(driver, log_bus, candidate=_candidate(0)))

    assert [selector for _, selector in driver.clicks][-1] == CONFIRM
    assert result.detail["verified_by"] == "pending"


@pytest.mark.asyncio
async def test_connect_without_visible_effect_is_skipped(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.cards["item-0"]["effect"] = False

    with pytest.raises(ActionSkipped, match="no visible effect"):
        await ConnectStep().execute(context_for(driver, log_bus, candidate=_candidate(0)))


@pytest.mark.asyncio
async def test_connect_blocked_by_invitation_limit(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.visible.add(ADAPTER.block_indicator_selectors[0])

    with pytest.raises(ActionBlockedError) as exc_info:
        await ConnectStep().execute(context_for(driver, log_bus, candidate=_candidate(0)))

    assert exc_info.value.retryable is False
    assert driver.clicks == []


@pytest.mark.asyncio
async def test_connect_click_failure_is_skipped(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.click_errors[ADAPTER.within_card("item-0", CONNECT)] = InteractionError("click intercepted")

    with pytest.raises(ActionSkipped, match="click intercepted") as exc_info:
        await ConnectStep().execute(context_for(driver, log_bus, candidate=_candidate(0)))

    assert exc_info.value.candidate_id == "in-ada-lovelace"
    assert exc_info.value.context["code"] == "INTERACTION_FAILED"
    assert isinstance(exc_info.value.__cause__, InteractionError)


@pytest.mark.asyncio
async def test_connect_confirm_failure_is_skipped(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.cards["item-0"]["confirm"] = True
    driver.click_errors[CONFIRM] = InteractionError("element detached")

    with pytest.raises(ActionSkipped, match="element detached"):
        await ConnectStep().execute(context_for(driver, log_bus, candidate=_candidate(0)))

    assert len(driver.connect_clicks()) == 1


@pytest.mark.asyncio
async def test_connect_verification_timeout_is_skipped(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.visibility_errors[ADAPTER.within_card("item-0", PENDING)] = StepTimeoutError("pending marker lookup timed out")

    with pytest.raises(ActionSkipped, match="timed out") as exc_info:
        await ConnectStep().execute(context_for(driver, log_bus, candidate=_candidate(0)))

    assert exc_info.value.context["code"] == "STEP_TIMEOUT"


@pytest.mark.asyncio
async def test_connect_block_check_failure_is_skipped(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.visibility_errors[ADAPTER.block_indicator_selectors[0]] = InteractionError("frame detached")

    with pytest.raises(ActionSkipped, match="frame detached"):
        await ConnectStep().execute(context_for(driver, log_bus, candidate=_candidate(0)))

    assert driver.clicks == []


@pytest.mark.asyncio
async def test_connect_driver_crash_is_not_skipped(log_bus):
    driver = linkedin_driver(PEOPLE)
    driver.click_errors[ADAPTER.within_card("item-0", CONNECT)] = DriverError("browser closed")

    with pytest.raises(DriverError, match="browser closed"):
        await ConnectStep().execute(context_for(driver, log_bus, candidate=_candidate(0)))
