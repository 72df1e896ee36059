from __future__ import annotations

from types import SimpleNamespace

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from crunchyscraper import Config

CLOSED = "Target page, context or browser has been closed"
DETACHED = "Element is not attached to the DOM"


class FakeElement:
    """Stand-in for a single-element Playwright Locator."""

    def __init__(
        self,
        text: str = "",
        tag: str = "div",
        attrs: dict | None = None,
        children: dict | None = None,
        error: str | None = None,
        on_click=None,
    ) -> None:
        self.text = text
        self.tag = tag
        self.attrs = attrs or {}
        self.children = children or {}
        self.error = error
        self.on_click = on_click
        self.clicks = 0
        self.value = None
        self.timeouts: list = []

    def _check(self) -> None:
        if self.error:
            raise PlaywrightError(self.error)

    def locator(self, selector: str) -> FakeLocator:
        self._check()
        found = self.children.get(selector, [])
        if isinstance(found, FakeElement):
            found = [found]
        return FakeLocator(found)

    @property
    def first(self) -> FakeElement:
        return self

    def inner_text(self, timeout=None) -> str:
        self.timeouts.append(timeout)
        self._check()
        return self.text

    def get_attribute(self, name: str, timeout=None) -> str | None:
        self._check()
        return self.attrs.get(name)

    def evaluate(self, expression: str, arg=None, timeout=None):
        self.timeouts.append(timeout)
        self._check()
        return self.tag.upper()

    def wait_for(self, state="attached", timeout=None) -> None:
        self._check()

    def click(self) -> None:
        self._check()
        self.clicks += 1
        if self.on_click:
            self.on_click()

    def fill(self, value: str) -> None:
        self._check()
        self.value = value


class FakeLocator:
    """Stand-in for a multi-element Playwright Locator."""

    def __init__(self, elements: list, error: str | None = None) -> None:
        self.elements = list(elements)
        self.error = error

    def _check(self) -> None:
        if self.error:
            raise PlaywrightError(self.error)

    def count(self) -> int:
        self._check()
        return len(self.elements)

    def all(self) -> list:
        self._check()
        return list(self.elements)

    @property
    def first(self):
        self._check()
        return self.elements[0] if self.elements else FakeLocator([])

    def wait_for(self, state="attached", timeout=None) -> None:
        self._single()

    def _single(self) -> FakeElement:
        self._check()
        if not self.elements:
            raise PlaywrightTimeoutError("Timeout exceeded.")
        if len(self.elements) > 1:
            raise PlaywrightError(
                f"strict mode violation: locator resolved to {len(self.elements)} elements",
            )
        return self.elements[0]

    def inner_text(self, timeout=None) -> str:
        return self._single().inner_text()

    def click(self) -> None:
        self._single().click()

    def fill(self, value: str) -> None:
        self._single().fill(value)


class FakePage:
    """
    Minimal sync Page: selector -> elements map, navigation log and
    optional markers that disappear after a number of lookups.
    """

    def __init__(self, url: str = "about:blank", elements: dict | None = None) -> None:
        self.url = url
        self.elements = elements or {}
        self.errors: dict[str, str] = {}
        self.vanish_after: dict[str, int] = {}
        self.redirects: dict[str, str] = {}
        self.closed = False
        self.goto_calls: list[str] = []
        self.waits: list[int] = []
        self.scripts: list[str] = []
        self.screenshots: list[str] = []
        self.context = SimpleNamespace(pages=[self])

    def locator(self, selector: str) -> FakeLocator:
        if self.closed:
            raise PlaywrightError(CLOSED)
        if selector in self.vanish_after:
            self.vanish_after[selector] -= 1
            if self.vanish_after[selector] <= 0:
                self.elements.pop(selector, None)
        return FakeLocator(self.elements.get(selector, []), self.errors.get(selector))

    def goto(self, url: str, wait_until=None) -> None:
        self.goto_calls.append(url)
        self.url = self.redirects.get(url, url)

    def evaluate(self, expression: str) -> None:
        if self.closed:
            raise PlaywrightError(CLOSED)
        self.scripts.append(expression)

    def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    def is_closed(self) -> bool:
        return self.closed

    def screenshot(self, path=None, full_page=False) -> None:
        self.screenshots.append(path)


@pytest.fixture
def fast_cfg(tmp_path) -> Config:
    """Default config with waits shrunk so failure paths return at once."""
    cfg = Config()
    s = cfg.session
    s.poll_ms = 5
    s.captcha_timeout_s = 1
    s.login_timeout_s = 1
    s.history_timeout_s = 0
    s.manual_timeout_s = 0
    s.screenshot_dir = tmp_path / "shots"
    return cfg
