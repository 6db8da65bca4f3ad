"""Per-platform extraction rules.

Every list is ordered: most specific first, most generic last. The
extractors take the first candidate that yields a valid value, so adding a
new selector for a markup change means inserting it at the right rank.
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple
from urllib.parse import quote

UNKNOWN = "unknown"
PLACEHOLDER_TITLE = "商品"

PLATFORMS = ("taobao", "jd")

# Lines of card text that are never a product title
TITLE_NOISE_PATTERNS = (
    re.compile(r"[¥￥]\s*\d"),
    re.compile(r"^\d+$"),
    re.compile(r"已售|好评|券|包邮|关注|对比|搜同款"),
)

# Texts/aria-labels of a "next page" control, compared after strip()
NEXT_PHRASES = ("下一页", "Next >", "next", "Next", ">", "›")
# Looser phrases accepted inside a detected pagination container
CONTAINER_NEXT_PHRASES = ("下一页", ">", "›")

PAGINATION_CONTAINER_SELECTORS = (
    ".pager",
    ".pagination",
    '[class*="pager"]',
    '[class*="pagination"]',
    '[class*="page"]',
)

PAGE_LINK_SELECTORS = ('a[href*="page="]', 'a[href*="Page="]', 'a[href*="p="]')
PAGE_PARAM_RE = re.compile(r"([?&](?:page|Page|p)=)(\d+)")

LAZY_IMAGE_SELECTOR = "img[data-src], img[data-lazy]"

# Numeric last path segment, e.g. ".../123456" or ".../123456.html"
NUMERIC_TAIL_RE = re.compile(r"/(\d+)(?:\.html?)?/?$")


@dataclass(frozen=True)
class PlatformRules:
    name: str
    label: str
    url_markers: Tuple[str, ...]
    search_url: str
    canonical_host: str

    # card locator
    card_selectors: Tuple[str, ...]
    rescan_selectors: Tuple[str, ...]
    price_indicator_selectors: Tuple[str, ...]
    card_container_selectors: Tuple[str, ...]
    generic_container_selectors: Tuple[str, ...] = ("li", 'div[class*="gl-item"]', 'div[class*="item"]')
    # cards must contain one of these to survive refinement (empty: no refinement)
    card_marker_selectors: Tuple[str, ...] = ()

    # field extractor
    title_selectors: Tuple[str, ...] = ()
    price_int_selectors: Tuple[str, ...] = ()
    price_float_selectors: Tuple[str, ...] = ()
    price_selectors: Tuple[str, ...] = ()
    shop_selectors: Tuple[str, ...] = ()
    sales_selectors: Tuple[str, ...] = ()
    rating_selectors: Tuple[str, ...] = ()
    optional_fields: Tuple[str, ...] = ()

    # links and ids
    link_selectors: Tuple[str, ...] = ()
    product_link_markers: Tuple[str, ...] = ()
    link_exclude_markers: Tuple[str, ...] = ("javascript:",)
    id_query_param: Optional[str] = None
    id_path_patterns: Tuple[Pattern, ...] = ()
    id_attributes: Tuple[str, ...] = ()
    item_url_template: str = ""
    canonical_item_hosts: Tuple[str, ...] = ()
    canonical_query_keys: Tuple[str, ...] = ()

    # pagination
    next_selectors: Tuple[str, ...] = ()
    page_param_hosts: Tuple[str, ...] = ()

    # page loader, seconds/pixels
    sweep_step: Optional[int] = None
    sweep_interval: float = 0.2
    navigation_settle: float = 5.0

    @property
    def items_key(self) -> str:
        return f"accumulatedItems.{self.name}"

    def build_search_url(self, keyword: str) -> str:
        return self.search_url.format(keyword=quote(keyword.strip()))

    def matches_url(self, url: str) -> bool:
        return any(marker in (url or "") for marker in self.url_markers)


TAOBAO = PlatformRules(
    name="taobao",
    label="Taobao",
    url_markers=("s.taobao.com/search",),
    search_url="https://s.taobao.com/search?q={keyword}",
    canonical_host="https://www.taobao.com",
    card_selectors=(
        'a[class*="doubleCardWrapperAdapt--"]',
        'div[class*="doubleCard--"]',
        'div[class*="Card--"]',
    ),
    rescan_selectors=(
        'a[class*="doubleCardWrapperAdapt--"]',
        'div[class*="doubleCard--"]',
    ),
    price_indicator_selectors=('[class*="priceInt--"]', '[class*="PriceInt--"]'),
    card_container_selectors=(
        'a[class*="doubleCardWrapperAdapt--"]',
        'div[class*="doubleCard--"]',
    ),
    title_selectors=('[class*="title--"]', '[class*="Title--"]'),
    price_int_selectors=('[class*="priceInt--"]', '[class*="PriceInt--"]'),
    price_float_selectors=('[class*="priceFloat--"]', '[class*="PriceFloat--"]'),
    price_selectors=('[class*="price--"]', '[class*="Price--"]'),
    shop_selectors=('[class*="shopName--"]', '[class*="ShopName--"]', '[class*="shopInfo--"]'),
    link_selectors=('a[href*="item.taobao.com"]', 'a[href*="detail.tmall.com"]'),
    product_link_markers=("item.taobao.com", "detail.tmall.com"),
    link_exclude_markers=("javascript:", "s.taobao.com/search"),
    id_query_param="id",
    id_attributes=("data-nid", "data-item-id"),
    item_url_template="https://item.taobao.com/item.htm?id={id}",
    canonical_item_hosts=("item.taobao.com", "detail.tmall.com"),
    canonical_query_keys=("id",),
    next_selectors=('button[class*="next-next"]', '[class*="next-pagination-item next"]'),
    sweep_step=100,
    sweep_interval=0.1,
    navigation_settle=5.0,
)

JD = PlatformRules(
    name="jd",
    label="JD",
    url_markers=("search.jd.com", "list.jd.com", "re.m.jd.com"),
    search_url="https://search.jd.com/Search?keyword={keyword}&enc=utf-8",
    canonical_host="https://www.jd.com",
    card_selectors=(
        ".plugin_goodsCardWrapper",
        "[data-sku]",
        ".gl-item",
        ".item",
    ),
    rescan_selectors=(".plugin_goodsCardWrapper", "[data-sku]"),
    price_indicator_selectors=(
        "span._price_d0rf6_14",
        '[class*="_price_d0rf6"]',
        ".p-price",
        ".J_price",
        '[class*="p-price"]',
    ),
    card_container_selectors=(
        "[data-sku]",
        ".plugin_goodsCardWrapper",
        '[class*="goodsCardWrapper"]',
    ),
    card_marker_selectors=(
        "span._price_d0rf6_14",
        '[class*="_price"]',
        ".p-price",
        "span._text_1g56m_31",
        '[class*="name"]',
        ".p-name",
    ),
    title_selectors=(
        "span._text_1g56m_31",
        ".goods_title_container span",
        '[class*="goods_title"] span',
        '[class*="_text_1g56m"]',
        ".p-name em",
        ".p-name",
        ".p-name-type-2",
        '[class*="p-name"] em',
        '[class*="p-name"]',
        'em[class*="name"]',
        'a[class*="name"]',
        '[class*="name"]',
        '[class*="Name"]',
        '[class*="title"]',
        '[class*="Title"]',
        "h3",
        "h4",
        ".title",
        ".name",
    ),
    price_selectors=(
        "span._price_d0rf6_14",
        '[class*="_price_d0rf6"]',
        ".p-price i",
        ".p-price",
        ".J_price",
        '[class*="p-price"] i',
        '[class*="p-price"]',
        '[class*="price"] i',
        '[class*="price"]',
        '[class*="Price"]',
        'i[class*="price"]',
        'strong[class*="price"]',
        ".price",
        "[data-price]",
    ),
    shop_selectors=(
        "span._name_d19t5_35",
        '[class*="_name_d19t5"]',
        ".shopFloor span",
        '[class*="shopFloor"] span',
        ".p-shop",
        ".shop-name",
        '[class*="p-shop"]',
        '[class*="shop"]',
        '[class*="Shop"]',
        '[class*="store"]',
        '[class*="Store"]',
    ),
    sales_selectors=(
        'span._goods_volume_1xkku_1 span[title*="已售"]',
        '[class*="_goods_volume"] span[title*="已售"]',
        '[class*="goods_volume"] span',
        ".p-commit",
        '[class*="commit"]',
        '[class*="sales"]',
        '[class*="Sales"]',
    ),
    rating_selectors=(
        'span._tml_1xkku_12[title*="好评"]',
        '[class*="_tml_1xkku"] [title*="好评"]',
        '[class*="goods_volume"] span[title*="好评"]',
        ".p-commit strong",
        '[class*="rate"]',
        '[class*="Rate"]',
        '[class*="rating"]',
    ),
    optional_fields=("sales", "rating"),
    link_selectors=(
        'a[href*="item.jd.com"]',
        'a[href*="item.m.jd.com"]',
        'a[href*="/product/"]',
        'a[href*="ware.action"]',
        'a[href^="//item"]',
        'a[href^="/item"]',
    ),
    product_link_markers=("item.jd.com", "item.m.jd.com", "/product/", "ware.action"),
    link_exclude_markers=("javascript:", "Search?", "search.jd.com"),
    id_path_patterns=(re.compile(r"/(\d+)\.html"), re.compile(r"/product/(\d+)")),
    id_attributes=("data-sku", "data-id", "data-pid"),
    item_url_template="https://item.jd.com/{id}.html",
    canonical_item_hosts=("item.jd.com",),
    next_selectors=(
        "div._pagination_next_1jczn_8",
        '[class*="_pagination_next"]',
        '[class*="pagination_next"]',
        '[class*="pager-next"]',
        ".pn-next",
        ".pager-next",
        ".pagination-next",
    ),
    page_param_hosts=("search.jd.com",),
    sweep_step=300,
    sweep_interval=0.2,
    navigation_settle=8.0,
)

RULES = {rules.name: rules for rules in (TAOBAO, JD)}


def get_rules(platform: str) -> PlatformRules:
    try:
        return RULES[platform]
    except KeyError:
        raise ValueError(
            f"Unknown platform {platform!r}; expected one of: {', '.join(PLATFORMS)}"
        ) from None


def detect_platform(url: str) -> Optional[str]:
    """Return the platform whose search pages ``url`` belongs to, if any."""
    for rules in RULES.values():
        if rules.matches_url(url):
            return rules.name
    return None
