from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlparse, urlunparse

from ..config.rules import NUMERIC_TAIL_RE, PlatformRules


def is_usable_href(href: Optional[str], rules: PlatformRules) -> bool:
    if not href:
        return False
    href = href.strip()
    if not href or href.startswith("#"):
        return False
    return not any(marker in href for marker in rules.link_exclude_markers)


def is_product_href(href: Optional[str], rules: PlatformRules) -> bool:
    """True for hrefs that look like a product-detail page of the platform."""
    if not is_usable_href(href, rules):
        return False
    return any(marker in href for marker in rules.product_link_markers)


def normalize_link(href: str, rules: PlatformRules, page_url: str = "") -> str:
    """Resolve ``href`` to an absolute, canonical product URL.

    Protocol-relative links get ``https:``, root-relative links get the
    platform host and canonical item-detail links lose their tracking query
    (only the keys listed in ``canonical_query_keys`` survive).
    """
    link = (href or "").strip()
    if not link:
        return ""
    if link.startswith("//"):
        link = "https:" + link
    elif link.startswith("/"):
        link = rules.canonical_host.rstrip("/") + link
    elif not urlparse(link).scheme:
        link = urljoin(page_url, link) if page_url else rules.canonical_host.rstrip("/") + "/" + link

    return canonicalize_item_link(link, rules)


def canonicalize_item_link(link: str, rules: PlatformRules) -> str:
    p = urlparse(link)
    if p.netloc not in rules.canonical_item_hosts:
        return link
    kept = {}
    if rules.canonical_query_keys:
        query = parse_qs(p.query)
        for key in rules.canonical_query_keys:
            if query.get(key):
                kept[key] = query[key][0]
    return urlunparse((p.scheme, p.netloc, p.path, "", urlencode(kept), ""))


def extract_item_id(link: Optional[str], rules: PlatformRules) -> Optional[str]:
    """Parse the canonical product id out of ``link``; ``None`` when absent."""
    if not link:
        return None
    try:
        p = urlparse(link)
    except ValueError:
        return None

    if rules.id_query_param:
        values = parse_qs(p.query).get(rules.id_query_param)
        if values and values[0].strip():
            return values[0].strip()

    for pattern in rules.id_path_patterns:
        m = pattern.search(p.path)
        if m:
            return m.group(1)

    m = NUMERIC_TAIL_RE.search(p.path)
    if m:
        return m.group(1)
    return None


def build_item_url(item_id: str, rules: PlatformRules) -> str:
    return rules.item_url_template.format(id=item_id)
