"""Next-page discovery and activation.

Discovery is a cascade over the parsed page, most specific first:
platform selectors, "next" wording, page-number links, pagination
containers and finally rewriting the page number in the URL itself.
Activation is a second cascade, because sites wire their pager
differently: some are plain links, some only react to their own click
handler, some need a real click.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from ..browser.driver import PageDriver, css_path
from ..config.rules import (
    CONTAINER_NEXT_PHRASES,
    NEXT_PHRASES,
    PAGE_LINK_SELECTORS,
    PAGE_PARAM_RE,
    PAGINATION_CONTAINER_SELECTORS,
    PlatformRules,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

PHRASE_CANDIDATES = "button, a, span, div, li"
CONTAINER_CANDIDATES = "a, button, span, li"
NEXT_TEXT = "下一页"


def random_delay_ms(min_delay: int, max_delay: int, rng=random) -> int:
    """Whole-second jitter in ``[min_delay, max_delay]``, returned in milliseconds."""
    return rng.randint(int(min_delay), int(max_delay)) * 1000


@dataclass
class NextControl:
    strategy: str
    selector: Optional[str] = None
    href: Optional[str] = None
    tag_name: Optional[str] = None
    text: str = ""
    ancestor_href: Optional[str] = None
    # set only by the URL-rewrite strategy
    url: Optional[str] = None


def _text(tag: Tag) -> str:
    return " ".join(tag.get_text(" ", strip=True).split())


def is_disabled(tag: Tag) -> bool:
    classes = " ".join(tag.get("class") or [])
    if "disabled" in classes.lower():
        return True
    if str(tag.get("aria-disabled") or "").lower() == "true":
        return True
    return tag.has_attr("disabled")


def is_followable(href: Optional[str]) -> bool:
    if not href:
        return False
    href = href.strip()
    return bool(href) and not href.startswith("#") and not href.lower().startswith("javascript")


def _control(tag: Tag, strategy: str) -> NextControl:
    ancestor = tag.find_parent("a", href=True)
    return NextControl(
        strategy=strategy,
        selector=css_path(tag),
        href=tag.get("href") if tag.name == "a" else None,
        tag_name=tag.name,
        text=_text(tag)[:40],
        ancestor_href=ancestor.get("href") if ancestor is not None else None,
    )


def _has_next_class(tag: Tag) -> bool:
    for token in tag.get("class") or []:
        token = token.lower()
        if token == "next" or token.endswith(("-next", "_next")):
            return True
        if "pager-next" in token or "pagination-next" in token or "pagination_next" in token:
            return True
    return False


def _says_next(tag: Tag) -> bool:
    text = _text(tag)
    if text in NEXT_PHRASES:
        return True
    # "下一页 >" and similar short labels; long texts are wrappers around the whole pager
    if NEXT_TEXT in text and len(text) <= len(NEXT_TEXT) + 3:
        return True
    aria = (tag.get("aria-label") or "").strip()
    if aria == NEXT_TEXT or "next" in aria.lower():
        return True
    return _has_next_class(tag)


# ---------------------------------------------------------------------------
# Discovery strategies
# ---------------------------------------------------------------------------

def from_selectors(soup: BeautifulSoup, next_page: int, rules: PlatformRules) -> Optional[NextControl]:
    for selector in rules.next_selectors:
        for tag in soup.select(selector):
            if is_disabled(tag):
                logger.debug("Next control %r is disabled", selector)
                continue
            logger.info("Found next button using selector: %s", selector)
            return _control(tag, "selector")
    return None


def _innermost(tag: Tag) -> Tag:
    for child in tag.select(PHRASE_CANDIDATES):
        if _says_next(child) and not is_disabled(child):
            return _innermost(child)
    return tag


def from_phrases(soup: BeautifulSoup, next_page: int, rules: PlatformRules) -> Optional[NextControl]:
    for tag in soup.select(PHRASE_CANDIDATES):
        if _says_next(tag) and not is_disabled(tag):
            return _control(_innermost(tag), "phrase")
    return None


def from_page_links(soup: BeautifulSoup, next_page: int, rules: PlatformRules) -> Optional[NextControl]:
    target = re.compile(rf"[?&](?:page|Page|p)={next_page}(?!\d)")
    for a in soup.select(", ".join(PAGE_LINK_SELECTORS)):
        if is_disabled(a):
            continue
        href = a.get("href") or ""
        text = _text(a)
        if target.search(href) or text == str(next_page) or text == NEXT_TEXT:
            return _control(a, "page_link")
    return None


def from_containers(soup: BeautifulSoup, next_page: int, rules: PlatformRules) -> Optional[NextControl]:
    for container in soup.select(", ".join(PAGINATION_CONTAINER_SELECTORS)):
        for btn in container.select(CONTAINER_CANDIDATES):
            if is_disabled(btn):
                continue
            text = _text(btn)
            if text in CONTAINER_NEXT_PHRASES or text == str(next_page):
                return _control(btn, "container")
    return None


def next_page_url(page_url: str, next_page: int, rules: PlatformRules) -> Optional[str]:
    """Rewrite the page number in ``page_url``; ``None`` when the URL carries none."""
    if not page_url:
        return None
    if PAGE_PARAM_RE.search(page_url):
        url = PAGE_PARAM_RE.sub(lambda m: f"{m.group(1)}{next_page}", page_url, count=1)
    elif urlparse(page_url).netloc in rules.page_param_hosts:
        separator = "&" if "?" in page_url else "?"
        url = f"{page_url}{separator}page={next_page}"
    else:
        return None
    return url if url != page_url else None


DOM_STRATEGIES: Tuple[Callable[[BeautifulSoup, int, PlatformRules], Optional[NextControl]], ...] = (
    from_selectors,
    from_phrases,
    from_page_links,
    from_containers,
)


def locate_next_control(
    soup: BeautifulSoup,
    page_url: str,
    next_page: int,
    rules: PlatformRules,
) -> Optional[NextControl]:
    for strategy in DOM_STRATEGIES:
        control = strategy(soup, next_page, rules)
        if control is not None:
            logger.info(
                "Next control via %s: <%s> %r", control.strategy, control.tag_name, control.text
            )
            return control

    url = next_page_url(page_url, next_page, rules)
    if url:
        logger.info("Using URL navigation to page %d: %s", next_page, url)
        return NextControl(strategy="url_rewrite", url=url)

    logger.warning("Next button not found on %s", page_url or "<unknown page>")
    return None


# ---------------------------------------------------------------------------
# Activation
# ---------------------------------------------------------------------------

def _activation_steps(driver: PageDriver, control: NextControl) -> List[Tuple[str, Callable[[], object]]]:
    if control.url:
        return [("url", lambda: driver.goto(control.url))]

    steps: List[Tuple[str, Callable[[], object]]] = []
    if is_followable(control.href):
        steps.append(("href", lambda: driver.goto(urljoin(driver.url, control.href.strip()))))
    if control.selector:
        steps.append(("onclick", lambda: driver.invoke_click_handler(control.selector)))
        steps.append(("dispatch", lambda: driver.dispatch_click(control.selector)))
        steps.append(("click", lambda: driver.click(control.selector)))
    if is_followable(control.ancestor_href):
        steps.append(
            ("ancestor_href", lambda: driver.goto(urljoin(driver.url, control.ancestor_href.strip())))
        )
    return steps


def advance(driver: PageDriver, control: NextControl) -> Optional[str]:
    """Trigger ``control``; returns the method that worked, or ``None``."""
    for name, step in _activation_steps(driver, control):
        try:
            result = step()
        except Exception as exc:
            logger.warning("Next page via %s failed: %s", name, exc)
            continue
        if result is False:
            logger.debug("No click handler on next control")
            continue
        logger.info("Advanced to next page via %s", name)
        return name
    logger.warning("Every activation method failed for the next control")
    return None
