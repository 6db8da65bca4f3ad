"""Card locator: find the DOM subtrees that represent product cards.

Three tiers, tried in order:
  1. the first candidate selector whose match count is inside the plausible band
  2. the first candidate with a small, nonzero count
  3. price indicators climbed to their nearest card-like container

Counts above the band usually mean the selector also hit page chrome or
navigation; counts of zero mean the markup changed under us.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from ..config.rules import PlatformRules
from ..config.settings import DEFAULT_SETTINGS, ScrapeSettings
from ..utils.logging import get_logger

logger = get_logger(__name__)

TIER_BAND = "band"
TIER_SMALL = "small"
TIER_PRICE = "price_fallback"
TIER_NONE = "none"


@dataclass
class CardScan:
    cards: List[Tag] = field(default_factory=list)
    selector: Optional[str] = None
    tier: str = TIER_NONE

    def __len__(self) -> int:
        return len(self.cards)

    @property
    def found(self) -> bool:
        return bool(self.cards)


def parse_document(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def in_band(count: int, settings: ScrapeSettings) -> bool:
    return settings.band_min <= count <= settings.band_max


def locate_cards(
    soup: BeautifulSoup,
    rules: PlatformRules,
    settings: ScrapeSettings = DEFAULT_SETTINGS,
) -> CardScan:
    small: Optional[CardScan] = None

    for selector in rules.card_selectors:
        found = soup.select(selector)
        count = len(found)
        logger.debug("Selector %r matched %d element(s)", selector, count)

        if in_band(count, settings):
            logger.info("Using card selector %r (%d cards)", selector, count)
            return refine_cards(soup, rules, settings, CardScan(found, selector, TIER_BAND))
        if 0 < count < settings.band_min and small is None:
            small = CardScan(found, selector, TIER_SMALL)
        elif count > settings.band_max:
            logger.warning(
                "Selector %r matched %d elements, above the plausible band; skipped",
                selector, count,
            )

    if small is not None:
        logger.info("No selector in band; using %r (%d cards)", small.selector, len(small))
        return small

    fallback = cards_from_price_indicators(soup, rules, settings)
    if fallback.found:
        logger.info("Found %d cards using price fallback", len(fallback))
    else:
        logger.warning("No product cards located")
    return fallback


def cards_from_price_indicators(
    soup: BeautifulSoup,
    rules: PlatformRules,
    settings: ScrapeSettings = DEFAULT_SETTINGS,
) -> CardScan:
    containers = ", ".join(rules.card_container_selectors)
    generic = ", ".join(rules.generic_container_selectors)

    parents: List[Tag] = []
    seen = set()
    for selector in rules.price_indicator_selectors:
        for el in soup.select(selector):
            parent = el.css.closest(containers) if containers else None
            if parent is None and generic:
                parent = el.css.closest(generic)
            if parent is not None and id(parent) not in seen:
                seen.add(id(parent))
                parents.append(parent)
        if 0 < len(parents) <= settings.band_max:
            break

    if not parents:
        return CardScan()
    if len(parents) <= settings.band_max:
        return CardScan(parents, None, TIER_PRICE)

    logger.warning(
        "Price fallback found %d containers (may include false positives)", len(parents)
    )
    with_id = [card for card in parents if has_id_attribute(card, rules)]
    if with_id:
        logger.info("Filtered to %d cards carrying a product id attribute", len(with_id))
        return CardScan(with_id, None, TIER_PRICE)
    if len(parents) <= settings.fallback_band_max:
        return CardScan(parents, None, TIER_PRICE)
    return CardScan()


def has_id_attribute(card: Tag, rules: PlatformRules) -> bool:
    for attr in rules.id_attributes:
        if card.get(attr) or card.select_one(f"[{attr}]") is not None:
            return True
    return False


def refine_cards(
    soup: BeautifulSoup,
    rules: PlatformRules,
    settings: ScrapeSettings,
    scan: CardScan,
) -> CardScan:
    """Prefer id-attribute elements that actually hold a price or title."""
    if not rules.card_marker_selectors or not rules.id_attributes:
        return scan

    id_elements = soup.select(f"[{rules.id_attributes[0]}]")
    if not 0 < len(id_elements) <= settings.band_max:
        return scan

    markers = ", ".join(rules.card_marker_selectors)
    valid = [el for el in id_elements if el.select_one(markers) is not None]
    if not valid:
        return scan
    if scan.selector == f"[{rules.id_attributes[0]}]" and len(valid) == len(scan.cards):
        return scan
    logger.info("Filtered to %d valid product cards with %s", len(valid), rules.id_attributes[0])
    return CardScan(valid, f"[{rules.id_attributes[0]}]", scan.tier)


def rescan_cards(
    soup: BeautifulSoup,
    rules: PlatformRules,
    current: CardScan,
    settings: ScrapeSettings = DEFAULT_SETTINGS,
    selectors: Optional[Sequence[str]] = None,
) -> CardScan:
    """Re-run the locator after lazy loading.

    A rescan only replaces ``current`` when it strictly increases the card
    count and stays inside the plausible band.
    """
    if not current.found:
        return locate_cards(soup, rules, settings)

    for selector in selectors or rules.rescan_selectors:
        found = soup.select(selector)
        if len(found) > len(current) and in_band(len(found), settings):
            logger.info("Found %d cards after scroll using %r", len(found), selector)
            return refine_cards(soup, rules, settings, CardScan(found, selector, TIER_BAND))
    return current
