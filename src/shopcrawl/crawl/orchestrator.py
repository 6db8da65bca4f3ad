"""One scrape pass per loaded page, plus the loop that chains passes.

A pass never trusts in-memory state from an earlier page: it starts by
reading the job back from the store, and it re-reads the store after every
wait long enough for the user to have started a different job.

    CheckLimit -> Locate -> Extract -> Persist -> CheckSignature -> AdvanceOrFinish
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

from ..browser.driver import PageDriver
from ..browser.scroll import stabilize_page
from ..config.rules import LAZY_IMAGE_SELECTOR, PlatformRules, get_rules
from ..config.settings import DEFAULT_SETTINGS, ScrapeSettings
from ..extraction.cards import CardScan, locate_cards, parse_document, rescan_cards
from ..extraction.fields import extract_items, page_signature
from ..storage.repository import accumulate_page
from ..storage.state import (
    KEY_CURRENT_PAGE,
    JobState,
    KeyValueStore,
    is_mid_job,
    load_items,
    start_job,
)
from ..utils.logging import get_logger
from .notify import Notifier
from .pagination import advance, locate_next_control, random_delay_ms

logger = get_logger(__name__)


class PassOutcome(Enum):
    FINISHED = "finished"
    ADVANCED = "advanced"
    HALTED = "halted"
    STALE = "stale"


@dataclass
class PassResult:
    outcome: PassOutcome
    page: int
    reason: str = ""
    page_items: int = 0
    added: int = 0
    total: int = 0
    method: Optional[str] = None


def _finish(
    store: KeyValueStore,
    state: JobState,
    notifier: Notifier,
    reason: str,
    page_items: int = 0,
    added: int = 0,
) -> PassResult:
    items = load_items(store, state.platform)
    notifier.finished(items, state.platform)
    logger.info("Job finished on page %d (%s)", state.current_page, reason)
    return PassResult(
        PassOutcome.FINISHED,
        state.current_page,
        reason=reason,
        page_items=page_items,
        added=added,
        total=len(items),
    )


def _is_same_job(store: KeyValueStore, state: JobState, expected_page: int) -> bool:
    fresh = JobState.load(store)
    if fresh.job_id != state.job_id or fresh.platform != state.platform:
        logger.info("A different job replaced %s; dropping this pass", (state.job_id or "?")[:8])
        return False
    if fresh.current_page != expected_page:
        logger.info(
            "Stored page moved to %d (expected %d); dropping this pass",
            fresh.current_page, expected_page,
        )
        return False
    return True


def wait_for_cards(driver: PageDriver, rules: PlatformRules, settings: ScrapeSettings) -> bool:
    for index, selector in enumerate(rules.card_selectors):
        timeout = settings.first_card_wait_timeout if index == 0 else settings.card_wait_timeout
        if driver.wait_for_selector(selector, timeout):
            return True
        logger.debug("No %r within %.1fs", selector, timeout)
    return False


def scan_page(
    driver: PageDriver,
    rules: PlatformRules,
    settings: ScrapeSettings,
    selectors=None,
) -> Tuple[BeautifulSoup, CardScan]:
    soup = parse_document(driver.content())
    scan = locate_cards(soup, rules, settings)
    return soup, rescan_cards(soup, rules, scan, settings, selectors)


def run_pass(
    driver: PageDriver,
    store: KeyValueStore,
    notifier: Optional[Notifier] = None,
    settings: ScrapeSettings = DEFAULT_SETTINGS,
    rng=random,
) -> PassResult:
    notifier = notifier or Notifier(echo=False)
    state = JobState.load(store)
    rules = get_rules(state.platform)
    page = state.current_page

    logger.info("[%s] Page %d/%d", rules.label, page, state.page_limit)
    notifier.status(f"正在检查第 {page} 页状态...")

    if page > state.page_limit:
        logger.info("Current page exceeds limit. Stopping.")
        return _finish(store, state, notifier, "page_limit")

    # Locate
    if not wait_for_cards(driver, rules, settings):
        logger.warning("No card selector appeared before the timeout")

    notifier.status("正在向下滚动加载更多商品...")
    stabilize_page(driver, rules, settings)
    notifier.status("滚动完成，开始提取商品数据...")
    driver.pause(settings.post_scroll_wait)

    soup, scan = scan_page(driver, rules, settings)
    lazy_images = len(soup.select(LAZY_IMAGE_SELECTOR))
    if scan.found and lazy_images:
        logger.info("Found %d lazy-loaded images, waiting for them to load", lazy_images)
        driver.pause(settings.extra_settle)
        soup, rescanned = scan_page(driver, rules, settings, selectors=rules.card_selectors)
        if len(rescanned) >= len(scan):
            scan = rescanned

    if not scan.found:
        if page == 1:
            notifier.status("未找到商品，请检查页面或联系开发者。")
            logger.error("No cards found on the first page; job halted")
            return PassResult(PassOutcome.HALTED, page, reason="no_cards")
        return _finish(store, state, notifier, "empty_page")

    logger.info("Total cards found: %d (%s, %s)", len(scan), scan.tier, scan.selector)

    # Extract
    page_url = driver.url
    items = extract_items(scan.cards, rules, page_url, settings)
    signature = page_signature(scan.cards, rules, page_url, settings)

    # Persist, unless a new job took over the store while this page loaded
    if not _is_same_job(store, state, page):
        return PassResult(PassOutcome.STALE, page, reason="job_changed", page_items=len(items))
    merged, added = accumulate_page(store, rules, items, signature)

    # CheckSignature: warn only, dedup absorbs a repeated page
    if state.last_signature and signature and state.last_signature == signature:
        logger.warning("Page signature matches last scraped page. Might be duplicate content.")
        notifier.status(f"注意：页面可能未刷新 (第 {page} 页)...")

    notifier.status(f"第 {page} 页完成。已获取 {len(merged)} 条。")

    # AdvanceOrFinish
    if page >= state.page_limit:
        logger.info("Reached page limit.")
        return _finish(store, state, notifier, "page_limit", len(items), len(added))

    next_page = page + 1
    control = locate_next_control(soup, page_url, next_page, rules)
    if control is None:
        return _finish(store, state, notifier, "no_next_control", len(items), len(added))

    delay_ms = random_delay_ms(state.min_delay, state.max_delay, rng)
    store.set({KEY_CURRENT_PAGE: next_page})
    logger.info("Waiting %dms before going to page %d", delay_ms, next_page)
    notifier.status(f"本页完成。正在随机等待 {delay_ms // 1000} 秒...")
    driver.pause(delay_ms / 1000)

    if not _is_same_job(store, state, next_page):
        return PassResult(
            PassOutcome.STALE, page, reason="job_changed", page_items=len(items), added=len(added)
        )

    notifier.status(f"正在跳转到第 {next_page} 页...")
    method = advance(driver, control)
    if method is None:
        return _finish(store, state, notifier, "activation_failed", len(items), len(added))

    driver.pause(rules.navigation_settle)
    return PassResult(
        PassOutcome.ADVANCED,
        page,
        reason=control.strategy,
        page_items=len(items),
        added=len(added),
        total=len(merged),
        method=method,
    )


def crawl(
    driver: PageDriver,
    store: KeyValueStore,
    notifier: Optional[Notifier] = None,
    settings: ScrapeSettings = DEFAULT_SETTINGS,
    rng=random,
) -> List[PassResult]:
    """Run passes until one does not advance.

    Each page load re-enters at CheckLimit, but only while the store still
    says a multi-page job is in progress.
    """
    notifier = notifier or Notifier(echo=False)
    results: List[PassResult] = []
    while True:
        result = run_pass(driver, store, notifier, settings, rng)
        results.append(result)
        if result.outcome is not PassOutcome.ADVANCED:
            break
        if not is_mid_job(JobState.load(store)):
            logger.info("Store is no longer mid-job; not continuing")
            break
    return results


def start_crawl(
    driver: PageDriver,
    store: KeyValueStore,
    platform: str,
    keyword: str,
    page_limit: int,
    min_delay: int,
    max_delay: int,
    notifier: Optional[Notifier] = None,
    settings: ScrapeSettings = DEFAULT_SETTINGS,
    rng=random,
) -> List[PassResult]:
    """Reset the job, open the search page and crawl it to the end."""
    rules = get_rules(platform)
    start_job(store, platform, keyword, page_limit, min_delay, max_delay)
    driver.goto(rules.build_search_url(keyword))
    driver.pause(settings.resume_delay)
    return crawl(driver, store, notifier, settings, rng)


def resume_crawl(
    driver: PageDriver,
    store: KeyValueStore,
    url: str,
    notifier: Optional[Notifier] = None,
    settings: ScrapeSettings = DEFAULT_SETTINGS,
    rng=random,
) -> List[PassResult]:
    state = JobState.load(store)
    if not is_mid_job(state):
        raise ValueError(
            f"No job in progress (page {state.current_page} of {state.page_limit}); use 'start'"
        )
    driver.goto(url)
    logger.info("Resuming %s job at page %d", state.platform, state.current_page)
    driver.pause(settings.resume_delay)
    return crawl(driver, store, notifier, settings, rng)
