from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .config.rules import PLACEHOLDER_TITLE, UNKNOWN


@dataclass
class Item:
    title: str
    price: str
    shop: str
    link: str
    sales: Optional[str] = None
    rating: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        """JSON shape kept in the store and sent with ``scrapeFinished``."""
        data = {
            "title": self.title,
            "price": self.price,
            "shop": self.shop,
            "link": self.link,
        }
        if self.sales is not None:
            data["sales"] = self.sales
        if self.rating is not None:
            data["rating"] = self.rating
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Item":
        def _text(key: str, default: str) -> str:
            value = data.get(key)
            if value is None:
                return default
            value = str(value).strip()
            return value or default

        def _optional(key: str) -> Optional[str]:
            value = data.get(key)
            return None if value is None else str(value)

        return cls(
            title=_text("title", PLACEHOLDER_TITLE),
            price=_text("price", UNKNOWN),
            shop=_text("shop", UNKNOWN),
            link=_text("link", ""),
            sales=_optional("sales"),
            rating=_optional("rating"),
        )
