"""Browser automation against the verification portals.

Each lookup launches its own Chromium instance so no cookies or form state
carry over between products. The async context manager in
:meth:`PlaywrightDriver.session` is the single release point for that
browser; close failures are logged and dropped so they never replace the
lookup's own result or error.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .classifier import PortalObservation, PortalProfile
from .config import settings
from .errors import NavigationFailure, SessionTeardownFailure

logger = logging.getLogger(__name__)

# Resolves once a heading with the exact rejection phrase is on the page.
REJECTION_CHECK = """
([selector, phrase]) => Array.from(document.querySelectorAll(selector))
    .some((el) => (el.textContent || "").trim() === phrase)
"""

# Reads headings, usable table rows and the first table image in one pass.
EXTRACT_SCRIPT = """
([tableSel, rowSel, cellSel, imageSel, headingSel]) => {
    const headings = Array.from(document.querySelectorAll(headingSel))
        .map((el) => (el.textContent || "").trim());
    const table = document.querySelector(tableSel);
    if (!table) {
        return { headings, tableFound: false, rows: [], imageUrl: null };
    }
    const rows = [];
    table.querySelectorAll(rowSel).forEach((tr) => {
        const cells = Array.from(tr.querySelectorAll(cellSel))
            .map((td) => (td.textContent || "").trim())
            .filter(Boolean);
        if (cells.length >= 2) {
            rows.push(cells);
        }
    });
    const image = table.querySelector(imageSel);
    return { headings, tableFound: true, rows, imageUrl: image ? image.src || null : null };
}
"""


class BrowserHandle(Protocol):
    async def new_page(self) -> Any: ...

    async def close(self) -> None: ...


Launcher = Callable[[PortalProfile], Awaitable[BrowserHandle]]


@dataclass
class ChromiumHandle:
    playwright: Playwright
    browser: Browser
    profile: PortalProfile
    user_agent: str

    async def new_page(self) -> Page:
        options: dict[str, Any] = {"user_agent": self.user_agent}
        if self.profile.viewport:
            width, height = self.profile.viewport
            options["viewport"] = {"width": width, "height": height}
        context = await self.browser.new_context(**options)
        return await context.new_page()

    async def close(self) -> None:
        try:
            await self.browser.close()
        finally:
            await self.playwright.stop()


async def launch_chromium(profile: PortalProfile) -> ChromiumHandle:
    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(
            headless=settings.browser_headless,
            args=list(profile.launch_args),
        )
    except BaseException:
        await playwright.stop()
        raise
    return ChromiumHandle(playwright, browser, profile, settings.user_agent)


class PlaywrightDriver:
    def __init__(
        self,
        launcher: Optional[Launcher] = None,
        *,
        selector_timeout_ms: Optional[int] = None,
        result_timeout_ms: Optional[int] = None,
    ) -> None:
        self._launcher = launcher or launch_chromium
        self.selector_timeout_ms = selector_timeout_ms or settings.selector_timeout_ms
        self.result_timeout_ms = result_timeout_ms or settings.result_timeout_ms

    @asynccontextmanager
    async def session(self, profile: PortalProfile) -> AsyncIterator[Any]:
        handle = await self._launcher(profile)
        try:
            yield await handle.new_page()
        finally:
            try:
                await self._close(handle)
            except SessionTeardownFailure as exc:
                logger.warning("Failed to close browser cleanly: %s", exc)

    async def _close(self, handle: BrowserHandle) -> None:
        try:
            await handle.close()
        except Exception as exc:
            raise SessionTeardownFailure(str(exc)) from exc
        logger.debug("Browser closed")

    async def observe(self, product_id: str, profile: PortalProfile) -> PortalObservation:
        """Run one lookup on ``profile`` and return what the result page showed."""
        async with self.session(profile) as page:
            await self._navigate(page, profile)
            await self._submit(page, profile, product_id)
            if not await self._await_result(page, profile):
                logger.warning(
                    "No result marker for product_id=%s on %s portal within %sms",
                    product_id,
                    profile.name,
                    self.result_timeout_ms,
                )
                return PortalObservation()
            observation = await self._extract(page, profile)
            logger.info(
                "Observed product_id=%s portal=%s table=%s rows=%s image=%s",
                product_id,
                profile.name,
                observation.table_found,
                len(observation.rows),
                "present" if observation.image_url else "absent",
            )
            return observation

    async def _navigate(self, page: Any, profile: PortalProfile) -> None:
        logger.info("Navigating to %s (%s)", profile.url, profile.wait_until)
        try:
            await page.goto(profile.url, timeout=profile.navigation_timeout_ms, wait_until=profile.wait_until)
            return
        except PlaywrightError as exc:
            if profile.fallback_wait_until is None:
                raise NavigationFailure(f"{profile.name} portal did not load") from exc
            logger.warning(
                "Load with %s failed on %s portal, retrying with %s",
                profile.wait_until,
                profile.name,
                profile.fallback_wait_until,
            )
        try:
            await page.goto(
                profile.url,
                timeout=profile.navigation_timeout_ms,
                wait_until=profile.fallback_wait_until,
            )
        except PlaywrightError as exc:
            raise NavigationFailure(f"{profile.name} portal did not load") from exc

    async def _submit(self, page: Any, profile: PortalProfile, product_id: str) -> None:
        await page.wait_for_selector(profile.ready_selector or profile.input_selector, timeout=self.selector_timeout_ms)
        input_selector = profile.input_selector
        if profile.fallback_input_selector and await page.query_selector(input_selector) is None:
            logger.debug("%s not found, using %s", input_selector, profile.fallback_input_selector)
            input_selector = profile.fallback_input_selector
        await page.fill(input_selector, product_id)
        await page.click(profile.submit_selector)

    async def _await_result(self, page: Any, profile: PortalProfile) -> bool:
        """Race the results table against the rejection heading.

        Returns False when both waits time out; any other wait error is raised.
        """
        waits = {
            # An empty table has no size, so only DOM presence is awaited.
            asyncio.ensure_future(
                page.wait_for_selector(profile.table_selector, state="attached", timeout=self.result_timeout_ms)
            ),
            asyncio.ensure_future(
                page.wait_for_function(
                    REJECTION_CHECK,
                    arg=[profile.rejection_selector, profile.rejection_phrase],
                    timeout=self.result_timeout_ms,
                )
            ),
        }
        failure: Optional[BaseException] = None
        try:
            while waits:
                done, waits = await asyncio.wait(waits, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    exc = task.exception()
                    if exc is None:
                        return True
                    if not isinstance(exc, PlaywrightTimeoutError) and failure is None:
                        failure = exc
        finally:
            for task in waits:
                task.cancel()
            await asyncio.gather(*waits, return_exceptions=True)
        if failure is not None:
            raise failure
        return False

    async def _extract(self, page: Any, profile: PortalProfile) -> PortalObservation:
        raw = await page.evaluate(
            EXTRACT_SCRIPT,
            [
                profile.table_selector,
                profile.row_selector,
                profile.cell_selector,
                profile.image_selector,
                profile.rejection_selector,
            ],
        )
        return PortalObservation(
            table_found=bool(raw.get("tableFound")),
            headings=list(raw.get("headings") or []),
            rows=[list(row) for row in raw.get("rows") or []],
            image_url=raw.get("imageUrl") or None,
        )
