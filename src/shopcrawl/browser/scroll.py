"""Scroll driver that forces lazy-loaded listing content into the DOM.

Phase one scrolls to the bottom until the page height stops growing. Some
lazy loaders fire on a scroll position crossing a threshold rather than on
reaching the bottom, so phase two sweeps top to bottom in fixed steps.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..config.rules import PlatformRules
from ..config.settings import DEFAULT_SETTINGS, ScrapeSettings
from ..utils.logging import get_logger
from .driver import PageDriver

logger = get_logger(__name__)


@dataclass
class LoadResult:
    iterations: int
    height: int
    swept: bool
    grew_at_end: bool


def scroll_until_stable(driver: PageDriver, settings: ScrapeSettings = DEFAULT_SETTINGS) -> tuple:
    last = -1
    height = driver.scroll_height()
    iterations = 0
    while height != last and iterations < settings.scroll_max_iterations:
        last = height
        driver.scroll_to(height)
        driver.pause(settings.scroll_settle)
        height = driver.scroll_height()
        iterations += 1
    if iterations >= settings.scroll_max_iterations and height != last:
        logger.warning("Page still growing after %d scrolls; continuing anyway", iterations)
    return iterations, height


def sweep(driver: PageDriver, step: int, interval: float, settings: ScrapeSettings = DEFAULT_SETTINGS) -> int:
    driver.scroll_to(0)
    driver.pause(settings.scroll_settle)
    position = 0
    max_scroll = driver.scroll_height()
    steps = 0
    while position < max_scroll:
        driver.scroll_to(position)
        position += step
        steps += 1
        driver.pause(interval)
    return steps


def stabilize_page(
    driver: PageDriver,
    rules: PlatformRules,
    settings: ScrapeSettings = DEFAULT_SETTINGS,
) -> LoadResult:
    """Block until the listing stops growing or the iteration cap is hit."""
    iterations, settled_height = scroll_until_stable(driver, settings)

    swept = False
    if rules.sweep_step:
        steps = sweep(driver, rules.sweep_step, rules.sweep_interval, settings)
        swept = True
        logger.debug("Swept page in %d steps of %dpx", steps, rules.sweep_step)

    driver.scroll_to(driver.scroll_height())
    driver.pause(settings.final_settle)

    final_height = driver.scroll_height()
    grew = final_height > settled_height
    if grew:
        logger.info("Additional content loaded (%d -> %d px), waiting more", settled_height, final_height)
        driver.pause(settings.extra_settle)

    logger.info("Scroll finished: %d iterations, height=%d", iterations, final_height)
    return LoadResult(iterations=iterations, height=final_height, swept=swept, grew_at_end=grew)
