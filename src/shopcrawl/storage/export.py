from __future__ import annotations

import csv
import time
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from ..config.rules import UNKNOWN, get_rules
from ..config.settings import EXPORT_DIR
from ..models import Item
from ..utils.logging import get_logger
from .repository import dedupe_dataframe

logger = get_logger(__name__)

BOM = "\ufeff"

# field -> CSV header, in column order
BASE_COLUMNS = (("title", "标题"), ("price", "价格"), ("shop", "店铺"))
OPTIONAL_COLUMNS = (("sales", "销量"), ("rating", "好评率"))
LINK_COLUMN = ("link", "链接")


def export_columns(platform: str) -> List[tuple]:
    rules = get_rules(platform)
    columns = list(BASE_COLUMNS)
    columns += [col for col in OPTIONAL_COLUMNS if col[0] in rules.optional_fields]
    columns.append(LINK_COLUMN)
    return columns


def items_frame(items: Sequence[Item], platform: str) -> pd.DataFrame:
    """Deduplicated export table with the Chinese headers."""
    rules = get_rules(platform)
    columns = export_columns(platform)
    fields = [name for name, _ in columns]

    df = pd.DataFrame([item.to_dict() for item in items], columns=fields)
    df, deduped = dedupe_dataframe(df, rules)
    logger.info("Exporting %d unique items (filtered from %d total)", len(df), len(items))
    if deduped:
        logger.debug("Dropped %d duplicate rows at export", deduped)

    for name in fields:
        default = "" if name == "link" else UNKNOWN
        df[name] = df[name].fillna(default).astype(str)
    return df.rename(columns=dict(columns))


def csv_text(items: Sequence[Item], platform: str) -> str:
    """CSV document as text: BOM, header row, every field quoted."""
    df = items_frame(items, platform)
    body = df.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
    return BOM + body


def default_export_path(platform: str, export_dir: Optional[Path] = None) -> Path:
    stamp = int(time.time() * 1000)
    return Path(export_dir or EXPORT_DIR) / f"{platform}_{stamp}.csv"


def export_csv(items: Sequence[Item], platform: str, path: Optional[Path] = None) -> Path:
    target = Path(path) if path else default_export_path(platform)
    target.parent.mkdir(parents=True, exist_ok=True)
    # BOM is part of the text, so write plain utf-8 rather than utf-8-sig
    target.write_text(csv_text(items, platform), encoding="utf-8", newline="")
    logger.info("CSV written: %s", target)
    return target
