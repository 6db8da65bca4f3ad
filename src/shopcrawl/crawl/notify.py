"""Progress and completion messages sent to whoever drives the crawl."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..models import Item
from ..utils.console import safe_print
from ..utils.logging import get_logger

logger = get_logger(__name__)

STATUS_UPDATE = "statusUpdate"
SCRAPE_FINISHED = "scrapeFinished"


@dataclass
class Message:
    kind: str
    text: Optional[str] = None
    items: Optional[List[Dict[str, str]]] = None
    platform: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind}
        if self.kind == SCRAPE_FINISHED:
            data["items"] = list(self.items or [])
            data["platform"] = self.platform
        else:
            data["text"] = self.text
        return data


class Notifier:
    """Records every message and echoes status lines to the console."""

    def __init__(self, echo: bool = True, stream=None) -> None:
        self.echo = echo
        self.stream = stream
        self.messages: List[Message] = []

    def status(self, text: str) -> None:
        logger.info("[status] %s", text)
        self.messages.append(Message(STATUS_UPDATE, text=text))
        if self.echo:
            safe_print(text, file=self.stream, flush=True)

    def finished(self, items: Sequence[Item], platform: str) -> None:
        text = f"爬取完成！共爬取 {len(items)} 个商品。"
        logger.info("Scrape finished: %d items (%s)", len(items), platform)
        self.messages.append(
            Message(SCRAPE_FINISHED, items=[item.to_dict() for item in items], platform=platform)
        )
        if self.echo:
            safe_print(text, file=self.stream, flush=True)

    def statuses(self) -> List[str]:
        return [m.text for m in self.messages if m.kind == STATUS_UPDATE and m.text]

    def last_finished(self) -> Optional[Message]:
        for message in reversed(self.messages):
            if message.kind == SCRAPE_FINISHED:
                return message
        return None
