"""Tests for the browser session driver, using a fake page instead of Chromium."""

import pytest

from conftest import FakeHandle, FakePage, launcher_for
from giverify.classifier import Outcome, classify, secondary_portal
from giverify.driver import PlaywrightDriver
from giverify.errors import NavigationFailure


def _driver(handle):
    return PlaywrightDriver(launcher_for(handle), selector_timeout_ms=50, result_timeout_ms=50)


@pytest.mark.asyncio
async def test_lookup_fills_submits_and_extracts(primary):
    """A lookup navigates, fills the form, submits and reads the table."""

    page = FakePage(primary)
    handle = FakeHandle(page)

    observation = await _driver(handle).observe("GI-123", primary)

    assert observation.table_found is True
    assert observation.rows == [["Color", "Red"]]
    assert observation.image_url == "https://portal.example/img/1.jpg"
    assert ("goto", primary.url, "domcontentloaded") in page.calls
    assert ("fill", "input[name='qrcode']", "GI-123") in page.calls
    assert ("click", "#locationsubmit") in page.calls
    assert handle.closed == 1


@pytest.mark.asyncio
async def test_rejection_heading_wins_the_race(primary):
    """The rejection heading settles the race when the table never shows."""

    page = FakePage(
        primary,
        result="rejected",
        extracted={"headings": ["This is not a Genuine Product !"], "tableFound": False, "rows": [], "imageUrl": None},
    )
    handle = FakeHandle(page)

    observation = await _driver(handle).observe("FAKE-1", primary)

    assert observation.headings == ["This is not a Genuine Product !"]
    assert observation.table_found is False
    assert ("wait_for_function", ("h3", "This is not a Genuine Product !")) in page.calls
    assert handle.closed == 1


@pytest.mark.asyncio
async def test_race_timeout_yields_empty_observation(primary):
    """Both waits timing out gives an empty observation."""

    page = FakePage(primary, result="timeout")
    handle = FakeHandle(page)

    observation = await _driver(handle).observe("SLOW-1", primary)

    assert observation.table_found is False
    assert observation.headings == []
    assert not any(call[0] == "evaluate" for call in page.calls)
    assert handle.closed == 1


@pytest.mark.asyncio
async def test_navigation_timeout_raises_navigation_failure(primary):
    """A page that never loads raises NavigationFailure."""

    page = FakePage(primary, goto_failures=1)
    handle = FakeHandle(page)

    with pytest.raises(NavigationFailure):
        await _driver(handle).observe("GI-1", primary)
    assert handle.closed == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("step", ["goto", "wait_for_selector", "fill", "click", "evaluate"])
async def test_browser_closed_exactly_once_whatever_step_fails(primary, step):
    """The browser is closed once whichever step fails."""

    page = FakePage(primary, fail_at=step)
    handle = FakeHandle(page)

    with pytest.raises(RuntimeError, match=step):
        await _driver(handle).observe("GI-1", primary)
    assert handle.closed == 1


@pytest.mark.asyncio
async def test_browser_closed_when_page_cannot_open(primary):
    """A page that cannot open still closes the browser."""

    handle = FakeHandle(FakePage(primary), fail_new_page=True)

    with pytest.raises(RuntimeError):
        await _driver(handle).observe("GI-1", primary)
    assert handle.closed == 1


@pytest.mark.asyncio
async def test_teardown_failure_does_not_mask_result(primary):
    """A close error is logged and the observation returned."""

    handle = FakeHandle(FakePage(primary), fail_close=True)

    observation = await _driver(handle).observe("GI-1", primary)

    assert observation.rows == [["Color", "Red"]]
    assert handle.closed == 1


@pytest.mark.asyncio
async def test_teardown_failure_does_not_mask_error(primary):
    """A close error never replaces the lookup's own error."""

    handle = FakeHandle(FakePage(primary, fail_at="click"), fail_close=True)

    with pytest.raises(RuntimeError, match="click"):
        await _driver(handle).observe("GI-1", primary)
    assert handle.closed == 1


@pytest.mark.asyncio
async def test_secondary_portal_retries_load_and_falls_back_to_generic_input():
    """The secondary portal retries a slow load and uses the generic input."""

    profile = secondary_portal()
    page = FakePage(profile, goto_failures=1, missing=["#verifyform input[type='text']"])
    handle = FakeHandle(page)

    await _driver(handle).observe("CARPET-9", profile)

    gotos = [call for call in page.calls if call[0] == "goto"]
    assert [call[2] for call in gotos] == ["networkidle", "domcontentloaded"]
    assert ("wait_for_selector", ".featured-content #verifyform") in page.calls
    assert ("fill", "#verifyform input", "CARPET-9") in page.calls
    assert ("evaluate", (".table-responsive table", "tbody tr", "td", "img", "h3.text-center.mb-4")) in page.calls


@pytest.mark.asyncio
async def test_empty_table_is_awaited_by_presence(primary):
    """A table with no rows has no size, yet still ends as valid without data."""

    page = FakePage(primary, extracted={"headings": [], "tableFound": True, "rows": [], "imageUrl": None})

    observation = await _driver(FakeHandle(page)).observe("GI-0", primary)

    assert page.selector_states[primary.table_selector] == "attached"
    assert classify(observation, primary) is Outcome.VALID_NO_DATA
