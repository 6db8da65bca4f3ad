from __future__ import annotations

import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from bs4 import Tag

from ..utils.logging import get_logger
from .waiting import wait_for

logger = get_logger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/121.0.0.0 Safari/537.36"
)

CLICK_HANDLER_JS = """
el => {
    if (typeof el.onclick === 'function') {
        el.onclick();
        return true;
    }
    return false;
}
"""


class PageDriver(ABC):
    """The one live browser tab the crawler works in."""

    @property
    @abstractmethod
    def url(self) -> str: ...

    @abstractmethod
    def content(self) -> str: ...

    @abstractmethod
    def scroll_height(self) -> int: ...

    @abstractmethod
    def scroll_to(self, y: int) -> None: ...

    @abstractmethod
    def count(self, selector: str) -> int: ...

    @abstractmethod
    def goto(self, url: str) -> None: ...

    @abstractmethod
    def invoke_click_handler(self, selector: str) -> bool: ...

    @abstractmethod
    def dispatch_click(self, selector: str) -> None: ...

    @abstractmethod
    def click(self, selector: str) -> None: ...

    @abstractmethod
    def pause(self, seconds: float) -> None: ...

    def clock(self) -> float:
        return time.monotonic()

    def close(self) -> None:
        pass

    def wait_for_selector(self, selector: str, timeout: float) -> bool:
        return wait_for(
            lambda: self.count(selector) > 0,
            timeout,
            sleep=self.pause,
            clock=self.clock,
        )


class PlaywrightDriver(PageDriver):
    """Persistent-profile Chromium tab, so a logged-in session survives runs."""

    def __init__(
        self,
        profile_dir: Path,
        headless: bool = False,
        locale: str = "zh-CN",
        timeout_ms: int = 60000,
    ) -> None:
        self.profile_dir = Path(profile_dir)
        self.headless = headless
        self.locale = locale
        self.timeout_ms = timeout_ms
        self._pw = None
        self._context = None
        self._page = None

    def _ensure(self) -> None:
        if self._context:
            return
        from playwright.sync_api import sync_playwright

        self.profile_dir.mkdir(parents=True, exist_ok=True)
        self._pw = sync_playwright().start()
        self._context = self._pw.chromium.launch_persistent_context(
            user_data_dir=str(self.profile_dir),
            headless=self.headless,
            locale=self.locale,
            user_agent=DEFAULT_USER_AGENT,
        )
        self._page = self._context.pages[0] if self._context.pages else self._context.new_page()
        self._page.set_default_timeout(self.timeout_ms)

    def close(self) -> None:
        if self._context:
            self._context.close()
        if self._pw:
            self._pw.stop()
        self._context = None
        self._pw = None
        self._page = None

    def __enter__(self) -> "PlaywrightDriver":
        self._ensure()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def page(self):
        self._ensure()
        return self._page

    @property
    def url(self) -> str:
        return self.page.url

    def content(self) -> str:
        return self.page.content()

    def scroll_height(self) -> int:
        return int(self.page.evaluate("() => document.body ? document.body.scrollHeight : 0") or 0)

    def scroll_to(self, y: int) -> None:
        self.page.evaluate("y => window.scrollTo(0, y)", int(y))

    def count(self, selector: str) -> int:
        return self.page.locator(selector).count()

    def goto(self, url: str) -> None:
        logger.info("Navigating to %s", url)
        self.page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)

    def invoke_click_handler(self, selector: str) -> bool:
        return bool(self.page.locator(selector).first.evaluate(CLICK_HANDLER_JS))

    def dispatch_click(self, selector: str) -> None:
        self.page.locator(selector).first.dispatch_event("click")

    def click(self, selector: str) -> None:
        self.page.locator(selector).first.click(timeout=5000)

    def pause(self, seconds: float) -> None:
        # wait_for_timeout keeps Playwright's event loop serviced, unlike time.sleep
        self.page.wait_for_timeout(max(0.0, seconds) * 1000)


def css_path(tag: Tag) -> str:
    """Structural ``nth-of-type`` selector that addresses ``tag`` in the live page."""
    parts = []
    node: Optional[Tag] = tag
    while node is not None and node.name and node.name != "[document]":
        parent = node.parent
        if node.name == "html" or parent is None or parent.name == "[document]":
            parts.append(node.name)
            break
        position = 1
        for sibling in parent.find_all(node.name, recursive=False):
            if sibling is node:
                break
            position += 1
        parts.append(f"{node.name}:nth-of-type({position})")
        node = parent
    return " > ".join(reversed(parts))
