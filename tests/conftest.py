"""Shared fakes standing in for the browser and the portals."""
from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from giverify.cache import InMemoryCache
from giverify.classifier import PortalObservation, PortalProfile, primary_portal
from giverify.service import VerificationService

Scripted = Union[PortalObservation, Exception]


def table(rows: Sequence[Sequence[str]] = (), image: Optional[str] = None) -> PortalObservation:
    return PortalObservation(table_found=True, rows=[list(r) for r in rows], image_url=image)


def rejected(phrase: str = "This is not a Genuine Product !") -> PortalObservation:
    return PortalObservation(headings=[phrase])


class FakeDriver:
    """Replays scripted observations and records how sessions overlapped."""

    def __init__(self, script: Optional[Dict[Tuple[str, str], List[Scripted]]] = None, delay: float = 0.01) -> None:
        self.script = script or {}
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []
        self.spans: List[Tuple[float, float]] = []
        self.active = 0
        self.max_active = 0

    def on(self, product_id: str, *outcomes: Scripted, portal: str = "primary") -> "FakeDriver":
        self.script[(product_id, portal)] = list(outcomes)
        return self

    async def observe(self, product_id: str, profile: PortalProfile) -> PortalObservation:
        loop = asyncio.get_running_loop()
        self.calls.append((product_id, profile.name))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        start = loop.time()
        try:
            await asyncio.sleep(self.delay)
            outcomes = self.script.get((product_id, profile.name)) or [table([["Product", product_id]])]
            outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.active -= 1
            self.spans.append((start, loop.time()))


class FakePage:
    """Minimal async page; ``fail_at`` names the call that should blow up."""

    def __init__(
        self,
        profile: PortalProfile,
        *,
        result: str = "table",
        extracted: Optional[dict] = None,
        fail_at: Optional[str] = None,
        goto_failures: int = 0,
        missing: Sequence[str] = (),
    ) -> None:
        self.profile = profile
        self.result = result
        self.extracted = extracted if extracted is not None else {
            "headings": [],
            "tableFound": True,
            "rows": [["Color", "Red"]],
            "imageUrl": "https://portal.example/img/1.jpg",
        }
        self.fail_at = fail_at
        self.goto_failures = goto_failures
        self.missing = set(missing)
        self.calls: List[Tuple] = []
        self.selector_states: Dict[str, Optional[str]] = {}

    def _maybe_fail(self, step: str) -> None:
        if self.fail_at == step:
            raise RuntimeError(f"boom in {step}")

    async def goto(self, url: str, timeout: int, wait_until: str) -> None:
        self.calls.append(("goto", url, wait_until))
        if self.goto_failures:
            self.goto_failures -= 1
            raise PlaywrightTimeoutError("Timeout exceeded")
        self._maybe_fail("goto")

    async def wait_for_selector(self, selector: str, timeout: int, state: Optional[str] = None) -> object:
        self.calls.append(("wait_for_selector", selector))
        self.selector_states[selector] = state
        if selector == self.profile.table_selector:
            if self.result == "table":
                return object()
            if self.result == "rejected":
                await asyncio.sleep(3600)
            raise PlaywrightTimeoutError("Timeout exceeded")
        self._maybe_fail("wait_for_selector")
        return object()

    async def wait_for_function(self, expression: str, arg: list, timeout: int) -> object:
        self.calls.append(("wait_for_function", tuple(arg)))
        if self.result == "rejected":
            return object()
        if self.result == "table":
            await asyncio.sleep(3600)
        raise PlaywrightTimeoutError("Timeout exceeded")

    async def query_selector(self, selector: str) -> Optional[object]:
        self.calls.append(("query_selector", selector))
        return None if selector in self.missing else object()

    async def fill(self, selector: str, value: str) -> None:
        self.calls.append(("fill", selector, value))
        self._maybe_fail("fill")

    async def click(self, selector: str) -> None:
        self.calls.append(("click", selector))
        self._maybe_fail("click")

    async def evaluate(self, expression: str, arg: list) -> dict:
        self.calls.append(("evaluate", tuple(arg)))
        self._maybe_fail("evaluate")
        return self.extracted


class FakeHandle:
    def __init__(self, page: FakePage, *, fail_new_page: bool = False, fail_close: bool = False) -> None:
        self.page = page
        self.fail_new_page = fail_new_page
        self.fail_close = fail_close
        self.closed = 0

    async def new_page(self) -> FakePage:
        if self.fail_new_page:
            raise RuntimeError("context crashed")
        return self.page

    async def close(self) -> None:
        self.closed += 1
        if self.fail_close:
            raise RuntimeError("browser already gone")


def launcher_for(handle: FakeHandle):
    async def _launch(profile: PortalProfile) -> FakeHandle:
        return handle

    return _launch


@pytest.fixture
def primary() -> PortalProfile:
    return primary_portal()


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def service(driver: FakeDriver, cache: InMemoryCache) -> VerificationService:
    return VerificationService(driver=driver, cache=cache, secondary_enabled=False)
