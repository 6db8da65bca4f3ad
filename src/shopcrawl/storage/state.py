"""Persisted job state.

The crawl survives page navigation (and process restarts) only through this
store: every pass starts by reading it back, never from in-memory state.
"""

from __future__ import annotations

import json
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..config.rules import get_rules
from ..config.settings import (
    DEFAULT_MAX_DELAY,
    DEFAULT_MIN_DELAY,
    DEFAULT_PAGE_LIMIT,
    STATE_FILE,
)
from ..models import Item
from ..utils.logging import get_logger

logger = get_logger(__name__)

KEY_PLATFORM = "platform"
KEY_KEYWORD = "targetKeyword"
KEY_JOB_ID = "jobId"
KEY_PAGE_LIMIT = "pageLimit"
KEY_CURRENT_PAGE = "currentPage"
KEY_MIN_DELAY = "minDelay"
KEY_MAX_DELAY = "maxDelay"
KEY_SIGNATURE = "lastPageSignatureId"


class KeyValueStore:
    """String-keyed, JSON-valued store backed by one file.

    ``set`` is a single read-merge-write that lands through ``os.replace``,
    so readers see either the old or the new file, never a torn one.
    """

    def __init__(self, path: Path = STATE_FILE) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("State file unreadable, starting empty: %s (%s)", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("State file does not hold an object, starting empty: %s", self.path)
            return {}
        return data

    def _write(self, data: Mapping[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        data = self._read()
        if keys is None:
            return data
        return {k: data[k] for k in keys if k in data}

    def set(self, values: Mapping[str, Any]) -> None:
        data = self._read()
        data.update(values)
        self._write(data)

    def remove(self, keys: Iterable[str]) -> None:
        data = self._read()
        for key in keys:
            data.pop(key, None)
        self._write(data)

    def snapshot(self) -> Dict[str, Any]:
        return self._read()


def _as_int(value: Any, default: int) -> int:
    # mirrors parseInt(x) || default: missing, garbage and 0 all fall back
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed or default


@dataclass
class JobState:
    platform: str = "taobao"
    keyword: str = ""
    job_id: Optional[str] = None
    page_limit: int = DEFAULT_PAGE_LIMIT
    current_page: int = 1
    min_delay: int = DEFAULT_MIN_DELAY
    max_delay: int = DEFAULT_MAX_DELAY
    last_signature: Optional[str] = None
    items: List[Item] = field(default_factory=list)

    @classmethod
    def load(cls, store: KeyValueStore) -> "JobState":
        data = store.snapshot()
        platform = data.get(KEY_PLATFORM) or "taobao"
        rules = get_rules(platform)

        min_delay = _as_int(data.get(KEY_MIN_DELAY), DEFAULT_MIN_DELAY)
        max_delay = max(min_delay, _as_int(data.get(KEY_MAX_DELAY), DEFAULT_MAX_DELAY))

        raw_items = data.get(rules.items_key) or []
        return cls(
            platform=platform,
            keyword=data.get(KEY_KEYWORD) or "",
            job_id=data.get(KEY_JOB_ID),
            page_limit=_as_int(data.get(KEY_PAGE_LIMIT), DEFAULT_PAGE_LIMIT),
            current_page=_as_int(data.get(KEY_CURRENT_PAGE), 1),
            min_delay=min_delay,
            max_delay=max_delay,
            last_signature=data.get(KEY_SIGNATURE) or None,
            items=[Item.from_dict(d) for d in raw_items if isinstance(d, dict)],
        )

    @property
    def items_key(self) -> str:
        return get_rules(self.platform).items_key


def load_items(store: KeyValueStore, platform: str) -> List[Item]:
    key = get_rules(platform).items_key
    raw = store.get([key]).get(key) or []
    return [Item.from_dict(d) for d in raw if isinstance(d, dict)]


def start_job(
    store: KeyValueStore,
    platform: str,
    keyword: str = "",
    page_limit: int = DEFAULT_PAGE_LIMIT,
    min_delay: int = DEFAULT_MIN_DELAY,
    max_delay: int = DEFAULT_MAX_DELAY,
) -> JobState:
    """Reset the store for a new search and return the fresh state."""
    rules = get_rules(platform)
    if page_limit < 1:
        raise ValueError(f"pageLimit must be >= 1, got {page_limit}")
    if min_delay < 0 or max_delay < 0:
        raise ValueError("Delays must be non-negative")
    if min_delay > max_delay:
        raise ValueError(f"minDelay ({min_delay}) must not exceed maxDelay ({max_delay})")

    job_id = uuid.uuid4().hex
    store.set(
        {
            KEY_PLATFORM: platform,
            KEY_KEYWORD: keyword,
            KEY_JOB_ID: job_id,
            KEY_PAGE_LIMIT: int(page_limit),
            KEY_CURRENT_PAGE: 1,
            KEY_MIN_DELAY: int(min_delay),
            KEY_MAX_DELAY: int(max_delay),
            KEY_SIGNATURE: None,
            rules.items_key: [],
        }
    )
    logger.info(
        "Started %s job %s: keyword=%r pages=%d delay=%d-%ds",
        platform, job_id[:8], keyword, page_limit, min_delay, max_delay,
    )
    return JobState.load(store)


def is_mid_job(state: JobState) -> bool:
    """A continuation is due when a multi-page job stopped past its first page."""
    return state.page_limit > 1 and 1 < state.current_page <= state.page_limit
