"""Per-card field extraction.

Each field has an ordered tuple of strategies (card -> value or None) and
:func:`first_success` picks the first value that passes the field's
validity check. Strategies are built from :class:`PlatformRules`, so the
platform differences live in data, not in branches.
"""

from __future__ import annotations

import re
from typing import Callable, List, Optional, Sequence

from bs4 import Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

from ..config.rules import (
    PLACEHOLDER_TITLE,
    TITLE_NOISE_PATTERNS,
    UNKNOWN,
    PlatformRules,
)
from ..config.settings import DEFAULT_SETTINGS, ScrapeSettings
from ..models import Item
from ..utils.logging import get_logger
from .links import (
    build_item_url,
    extract_item_id,
    is_product_href,
    is_usable_href,
    normalize_link,
)

logger = get_logger(__name__)

Strategy = Callable[[Tag], Optional[str]]

PRICE_MARK_RE = re.compile(r"[¥￥\d]")
PRICE_IN_ELEMENT_RE = re.compile(r"[¥￥]?\s*(\d+\.?\d*)")
# currency glyph must open a line, so "满300减¥20" style coupons are skipped
PRICE_IN_CARD_RE = re.compile(r"(?:^|\n)[¥￥][ \t]*(\d+(?:\.\d+)?)")
SALES_MARK_RE = re.compile(r"\d+[万千百]")
SALES_IN_CARD_RE = re.compile(r"已售([\d万千百]+[+\-]?)")
RATING_PERCENT_RE = re.compile(r"(\d+%)")
RATING_IN_CARD_RE = re.compile(r"(\d+%)好评")
NUMERIC_HREF_RE = re.compile(r"/\d+\.html")
DIGITS_RE = re.compile(r"^\d+$")
WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def flat_text(el: Optional[Tag]) -> str:
    if el is None:
        return ""
    return " ".join(el.get_text(" ", strip=True).split())


def compact_text(el: Optional[Tag]) -> str:
    if el is None:
        return ""
    return el.get_text("", strip=True)


BLOCK_TAGS = frozenset((
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "figcaption", "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5",
    "h6", "header", "hr", "li", "main", "nav", "ol", "p", "pre", "section",
    "table", "tbody", "tfoot", "thead", "tr", "ul",
))
HIDDEN_TAGS = frozenset(("script", "style", "template", "noscript"))
_NON_TEXT = (Comment, Declaration, Doctype, ProcessingInstruction)


def rendered_text(el: Optional[Tag]) -> str:
    """Text of ``el`` laid out the way a browser renders it.

    Line breaks only come from block elements and ``<br>``; inline children
    such as ``<span>`` or ``<em>`` stay on their line. Whitespace runs inside
    a line collapse to one space and blank lines are dropped.
    """
    if el is None:
        return ""
    parts: List[str] = []

    def walk(node: Tag) -> None:
        for child in node.children:
            if isinstance(child, NavigableString):
                if not isinstance(child, _NON_TEXT):
                    # source newlines are plain whitespace, as in the browser
                    parts.append(WHITESPACE_RE.sub(" ", str(child)))
                continue
            if not isinstance(child, Tag) or child.name in HIDDEN_TAGS:
                continue
            if child.name == "br":
                parts.append("\n")
                continue
            block = child.name in BLOCK_TAGS
            if block:
                parts.append("\n")
            walk(child)
            if block:
                parts.append("\n")

    walk(el)
    lines = (" ".join(line.split()) for line in "".join(parts).split("\n"))
    return "\n".join(line for line in lines if line)


def text_lines(el: Tag) -> List[str]:
    return [ln for ln in rendered_text(el).split("\n") if ln]


def first_success(
    strategies: Sequence[Strategy],
    card: Tag,
    valid: Callable[[str], bool] = bool,
) -> Optional[str]:
    for strategy in strategies:
        value = strategy(card)
        if value is not None and valid(value):
            return value
    return None


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------

def title_strategies(rules: PlatformRules, settings: ScrapeSettings) -> tuple:
    min_len = settings.min_title_len

    def from_selectors(card: Tag) -> Optional[str]:
        for selector in rules.title_selectors:
            text = flat_text(card.select_one(selector))
            if len(text) > min_len:
                return text
        return None

    def from_attributes(card: Tag) -> Optional[str]:
        titled = card.select_one("[title]")
        img = card.select_one("img[alt], img[title]")
        candidates = (
            titled.get("title") if titled is not None else None,
            img.get("alt") if img is not None else None,
            img.get("title") if img is not None else None,
        )
        for value in candidates:
            if value and len(value.strip()) > min_len:
                return value.strip()
        return None

    def from_text_lines(card: Tag) -> Optional[str]:
        lines = [ln for ln in text_lines(card) if len(ln) > min_len]
        for line in lines:
            if not any(p.search(line) for p in TITLE_NOISE_PATTERNS):
                return line[: settings.title_max_len]
        # every line is noise: the first one still beats the placeholder
        return lines[0][: settings.title_max_len] if lines else None

    return (from_selectors, from_attributes, from_text_lines)


def extract_title(card: Tag, rules: PlatformRules, settings: ScrapeSettings = DEFAULT_SETTINGS) -> Optional[str]:
    """Best title for ``card`` or ``None``; callers substitute the placeholder."""
    return first_success(
        title_strategies(rules, settings),
        card,
        valid=lambda t: len(t) > settings.min_title_len,
    )


# ---------------------------------------------------------------------------
# Price
# ---------------------------------------------------------------------------

def clean_price(raw: Optional[str]) -> str:
    """'¥1,299.00' -> '1299.00'; multiple dots collapse into the first one."""
    if raw is None:
        return UNKNOWN
    price = re.sub(r"[^\d.]", "", str(raw))
    parts = price.split(".")
    if len(parts) > 2:
        price = parts[0] + "." + "".join(parts[1:])
    if not price or price == ".":
        return UNKNOWN
    return price


def price_strategies(rules: PlatformRules) -> tuple:
    def from_split_nodes(card: Tag) -> Optional[str]:
        for selector in rules.price_int_selectors:
            int_el = card.select_one(selector)
            if int_el is None:
                continue
            frac = ""
            for frac_selector in rules.price_float_selectors:
                frac_el = card.select_one(frac_selector)
                if frac_el is not None:
                    frac = compact_text(frac_el)
                    break
            return compact_text(int_el) + frac
        return None

    def from_selectors(card: Tag) -> Optional[str]:
        for selector in rules.price_selectors:
            text = compact_text(card.select_one(selector))
            if not PRICE_MARK_RE.search(text):
                continue
            m = PRICE_IN_ELEMENT_RE.search(text)
            if m:
                return m.group(1)
        return None

    def from_card_text(card: Tag) -> Optional[str]:
        m = PRICE_IN_CARD_RE.search(rendered_text(card))
        return m.group(1) if m else None

    return (from_split_nodes, from_selectors, from_card_text)


def extract_price(card: Tag, rules: PlatformRules) -> str:
    raw = first_success(
        price_strategies(rules),
        card,
        valid=lambda v: clean_price(v) != UNKNOWN,
    )
    return clean_price(raw)


# ---------------------------------------------------------------------------
# Shop / sales / rating
# ---------------------------------------------------------------------------

def extract_shop(card: Tag, rules: PlatformRules) -> str:
    for selector in rules.shop_selectors:
        text = flat_text(card.select_one(selector))
        if text:
            return text
    return UNKNOWN


def _sales_from_element(el: Tag) -> Optional[str]:
    title = el.get("title") or ""
    if "已售" in title:
        return title.replace("已售", "").strip()
    text = flat_text(el)
    if "已售" in text or "售" in text or SALES_MARK_RE.search(text):
        return text.replace("已售", "").strip()
    return None


def _rating_from_text(text: str) -> str:
    m = RATING_PERCENT_RE.search(text)
    return m.group(1) if m else text.replace("好评", "").strip()


def _rating_from_element(el: Tag) -> Optional[str]:
    title = el.get("title") or ""
    if "好评" in title:
        return _rating_from_text(title)
    text = flat_text(el)
    if "%" in text or "好评" in text:
        return _rating_from_text(text)
    return None


def _attribute_first(selectors: Sequence[str], read: Callable[[Tag], Optional[str]]) -> Strategy:
    def strategy(card: Tag) -> Optional[str]:
        for selector in selectors:
            el = card.select_one(selector)
            if el is None:
                continue
            value = read(el)
            if value:
                return value
        return None

    return strategy


def _card_regex(pattern: re.Pattern) -> Strategy:
    def strategy(card: Tag) -> Optional[str]:
        m = pattern.search(compact_text(card))
        return m.group(1) if m else None

    return strategy


def extract_sales(card: Tag, rules: PlatformRules) -> str:
    value = first_success(
        (_attribute_first(rules.sales_selectors, _sales_from_element), _card_regex(SALES_IN_CARD_RE)),
        card,
    )
    return value or UNKNOWN


def extract_rating(card: Tag, rules: PlatformRules) -> str:
    value = first_success(
        (_attribute_first(rules.rating_selectors, _rating_from_element), _card_regex(RATING_IN_CARD_RE)),
        card,
    )
    return value or UNKNOWN


# ---------------------------------------------------------------------------
# Link
# ---------------------------------------------------------------------------

def product_id_from_attributes(card: Tag, rules: PlatformRules) -> Optional[str]:
    """Numeric product id carried by ``card``, an ancestor or a descendant."""
    for attr in rules.id_attributes:
        holders = (card, card.css.closest(f"[{attr}]"), card.select_one(f"[{attr}]"))
        for holder in holders:
            if holder is None:
                continue
            value = str(holder.get(attr) or "").strip()
            if DIGITS_RE.match(value):
                return value
    return None


def link_strategies(rules: PlatformRules) -> tuple:
    def from_selectors(card: Tag) -> Optional[str]:
        for selector in rules.link_selectors:
            for a in card.select(selector):
                href = a.get("href")
                if is_usable_href(href, rules):
                    return href
        if card.name == "a" and is_product_href(card.get("href"), rules):
            return card.get("href")
        # inner card divs sit inside the product anchor on some layouts
        wrapper = card.find_parent("a", href=True)
        if wrapper is not None and is_product_href(wrapper.get("href"), rules):
            return wrapper.get("href")
        return None

    def from_numeric_href(card: Tag) -> Optional[str]:
        anchors = card.select("a[href]")
        if card.name == "a" and card.get("href"):
            anchors.insert(0, card)
        for a in anchors:
            href = a.get("href")
            if not is_usable_href(href, rules):
                continue
            if is_product_href(href, rules) or NUMERIC_HREF_RE.search(href):
                return href
            if rules.id_query_param and re.search(rf"[?&]{rules.id_query_param}=\d+", href):
                return href
        return None

    def from_id_attribute(card: Tag) -> Optional[str]:
        product_id = product_id_from_attributes(card, rules)
        if product_id and rules.item_url_template:
            return build_item_url(product_id, rules)
        return None

    return (from_selectors, from_numeric_href, from_id_attribute)


def extract_link(
    card: Tag,
    rules: PlatformRules,
    page_url: str = "",
    settings: ScrapeSettings = DEFAULT_SETTINGS,
) -> str:
    for strategy in link_strategies(rules):
        href = strategy(card)
        if not href:
            continue
        link = normalize_link(href, rules, page_url)
        if len(link) > settings.min_link_len:
            return link
    return ""


# ---------------------------------------------------------------------------
# Card -> Item
# ---------------------------------------------------------------------------

def extract_item(
    card: Tag,
    rules: PlatformRules,
    page_url: str = "",
    settings: ScrapeSettings = DEFAULT_SETTINGS,
) -> Optional[Item]:
    """Build an :class:`Item` from ``card`` or return ``None`` when nothing usable is there.

    Inclusion is permissive: a real title, a usable link or a product id
    attribute is enough; missing fields get the sentinel values.
    """
    title = extract_title(card, rules, settings)
    link = extract_link(card, rules, page_url, settings)
    product_id = product_id_from_attributes(card, rules)

    has_title = bool(title) and len(title) > settings.min_kept_title_len
    if not (has_title or link or product_id):
        return None

    if not has_title:
        title = PLACEHOLDER_TITLE
    if not link and product_id and rules.item_url_template:
        link = build_item_url(product_id, rules)
    if not link:
        # keeps link-less cards distinct from each other in the link-based dedup
        link = rules.build_search_url(title[:20])

    item = Item(
        title=title,
        price=extract_price(card, rules),
        shop=extract_shop(card, rules),
        link=link,
    )
    if "sales" in rules.optional_fields:
        item.sales = extract_sales(card, rules)
    if "rating" in rules.optional_fields:
        item.rating = extract_rating(card, rules)
    return item


def _describe(card: Tag) -> str:
    classes = " ".join(card.get("class") or [])
    return f"<{card.name} class={classes!r}> {flat_text(card)[:120]!r}"


def extract_items(
    cards: Sequence[Tag],
    rules: PlatformRules,
    page_url: str = "",
    settings: ScrapeSettings = DEFAULT_SETTINGS,
) -> List[Item]:
    items: List[Item] = []
    for index, card in enumerate(cards):
        try:
            item = extract_item(card, rules, page_url, settings)
        except Exception:
            logger.exception("Error scraping card %d", index)
            continue

        if item is None:
            if index < settings.debug_rejected:
                logger.debug("Skipped card %d: %s", index + 1, _describe(card))
            continue
        if index < settings.debug_cards:
            logger.debug("Card %d: %s", index + 1, item.to_dict())
        items.append(item)

    if cards and not items:
        logger.warning("No items extracted from %d cards; first card: %s", len(cards), _describe(cards[0]))
    return items


def page_signature(
    cards: Sequence[Tag],
    rules: PlatformRules,
    page_url: str = "",
    settings: ScrapeSettings = DEFAULT_SETTINGS,
) -> Optional[str]:
    """Item id of the first card, used to spot a page that did not refresh."""
    if not cards:
        return None
    return extract_item_id(extract_link(cards[0], rules, page_url, settings), rules)
