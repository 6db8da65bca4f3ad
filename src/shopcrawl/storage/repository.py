from __future__ import annotations

from typing import List, Optional, Sequence, Set, Tuple

import pandas as pd

from ..config.rules import PlatformRules
from ..extraction.links import extract_item_id
from ..models import Item
from ..utils.logging import get_logger
from .state import KEY_SIGNATURE, KeyValueStore

logger = get_logger(__name__)


def _normalize_key_value(value) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def _build_item_key(link, rules: PlatformRules) -> str:
    link_norm = _normalize_key_value(link)
    item_id = extract_item_id(link_norm, rules)
    if item_id:
        return f"id||{item_id}"
    return f"link||{link_norm}"


def is_duplicate(new: Item, existing: Item, rules: PlatformRules) -> bool:
    """Ids decide when both links carry one; otherwise the links must match exactly."""
    new_id = extract_item_id(new.link, rules)
    existing_id = extract_item_id(existing.link, rules)
    if new_id and existing_id:
        return new_id == existing_id
    return new.link == existing.link


def merge_items(
    existing: Sequence[Item],
    incoming: Sequence[Item],
    rules: PlatformRules,
) -> Tuple[List[Item], List[Item]]:
    """Append the unseen part of ``incoming`` to ``existing``.

    Returns ``(merged, added)``. Existing entries are never dropped or
    changed; duplicates inside ``incoming`` itself are dropped too.
    """
    merged = list(existing)
    added: List[Item] = []
    for item in incoming:
        if any(is_duplicate(item, seen, rules) for seen in merged):
            continue
        merged.append(item)
        added.append(item)
    return merged, added


def accumulate_page(
    store: KeyValueStore,
    rules: PlatformRules,
    page_items: Sequence[Item],
    signature: Optional[str],
) -> Tuple[List[Item], List[Item]]:
    """Merge one page into the persisted list and save it with the page signature.

    The read and the write happen back to back with no wait in between, and
    both keys land in one store write.
    """
    raw = store.get([rules.items_key]).get(rules.items_key) or []
    existing = [Item.from_dict(d) for d in raw if isinstance(d, dict)]

    merged, added = merge_items(existing, page_items, rules)
    store.set(
        {
            rules.items_key: [item.to_dict() for item in merged],
            KEY_SIGNATURE: signature,
        }
    )
    logger.info(
        "Page items: %d, new unique: %d, total: %d", len(page_items), len(added), len(merged)
    )
    return merged, added


def dedupe_items(items: Sequence[Item], rules: PlatformRules) -> List[Item]:
    """Rebuild uniqueness from scratch, first occurrence wins."""
    seen: Set[str] = set()
    out: List[Item] = []
    for item in items:
        key = _build_item_key(item.link, rules)
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def dedupe_dataframe(df: pd.DataFrame, rules: PlatformRules) -> Tuple[pd.DataFrame, int]:
    if df.empty:
        return df, 0
    if "link" not in df.columns:
        df["link"] = ""

    keys = df["link"].map(lambda link: _build_item_key(link, rules))
    keep_mask = ~keys.duplicated(keep="first")
    deduped = int((~keep_mask).sum())
    return df.loc[keep_mask].copy(), deduped
