"""Shared fixtures for the shopcrawl test suite."""

import sys
from pathlib import Path

import pytest
from bs4 import BeautifulSoup

# Ensure src/ is on the path so "import shopcrawl" works when running from repo root.
repo_root = Path(__file__).resolve().parents[1]
src_path = repo_root / "src"
for p in (src_path, repo_root):
    p_str = str(p)
    if p_str not in sys.path:
        sys.path.insert(0, p_str)

# Reconfigure stdout/stderr for Windows Unicode safety.
try:
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")
except Exception:
    pass

from shopcrawl.browser.driver import PageDriver  # noqa: E402
from shopcrawl.crawl.notify import Notifier  # noqa: E402
from shopcrawl.storage.state import KeyValueStore  # noqa: E402


TAOBAO_SEARCH = "https://s.taobao.com/search?q=laptop"
JD_SEARCH = "https://search.jd.com/Search?keyword=laptop&enc=utf-8"


# ---------------------------------------------------------------------------
# HTML builders
# ---------------------------------------------------------------------------

def build_taobao_card(item_id, title=None, price="199", cents=".50", shop="旗舰店"):
    title = title if title is not None else f"轻薄笔记本电脑 型号{item_id}"
    return (
        f'<a class="doubleCardWrapperAdapt--mEcC7olq" '
        f'href="//item.taobao.com/item.htm?id={item_id}&spm=a21n57.1.0">'
        f'<div class="doubleCard--gO3Bz6bu">'
        f'<div class="mainPicAdaptWrapper--V_ayd2hD"><img src="//img.alicdn.com/{item_id}.jpg"></div>'
        f'<div class="title--qJ7Xg_90"><span>{title}</span></div>'
        f'<div class="priceWrapper--dBtPZ2K1"><span class="unit--D7Bz5YCj">¥</span>'
        f'<span class="priceInt--yqqZMJ5a">{price}</span>'
        f'<span class="priceFloat--XpixvyQ1">{cents}</span>'
        f'<span class="realSales--XZJiepmt">300+人付款</span></div>'
        f'<div class="shopInfo--Uc3GNmcb"><span class="shopName--hdF527QA">{shop}</span></div>'
        f"</div></a>"
    )


TAOBAO_PAGER = (
    '<div class="pagination--ZHf6FGGa">'
    '<button class="next-btn next-medium next-pagination-item next-prev" disabled>上一页</button>'
    '<button class="next-btn next-medium next-pagination-item next-current">1</button>'
    '<button class="next-btn next-medium next-pagination-item">2</button>'
    '<button class="next-btn next-medium next-btn-normal next-pagination-item next-next">'
    '<span class="next-btn-helper">下一页</span></button>'
    "</div>"
)


def build_taobao_page(ids, pager=True, extra=""):
    cards = "".join(build_taobao_card(i) for i in ids)
    return (
        "<html><body>"
        '<div class="header--x"><a href="https://www.taobao.com/">淘宝网首页</a></div>'
        f'<div class="content--CUnfXXxv">{cards}</div>'
        f"{TAOBAO_PAGER if pager else ''}{extra}"
        "</body></html>"
    )


def build_jd_card(sku, title=None, price="4999.00", shop="京东自营旗舰店", sales="5万+", rating="98%"):
    title = title if title is not None else f"联想小新Pro14 笔记本电脑 {sku}"
    return (
        f'<div class="plugin_goodsCardWrapper _wrapper_8g5fc_1" data-sku="{sku}">'
        f'<a href="//item.jd.com/{sku}.html?extension_id=eyJhZCI6IjEi" target="_blank">'
        f'<img class="_img_18s24_1" src="//img14.360buyimg.com/{sku}.jpg"></a>'
        f'<div class="goods_title_container _goods_title_container_1x4i2_1">'
        f'<span class="_text_1g56m_31">{title}</span></div>'
        f'<div class="_container_d0rf6_1"><span class="_price_d0rf6_14"><i>¥</i>{price}</span></div>'
        f'<div class="_goods_volume_container_1xkku_1"><span class="_goods_volume_1xkku_1">'
        f'<span title="已售{sales}">已售{sales}</span></span>'
        f'<span class="_tml_1xkku_12" title="{rating}好评">{rating}好评</span></div>'
        f'<div class="shopFloor"><span class="_name_d19t5_35">{shop}</span></div>'
        f"</div>"
    )


JD_PAGER = (
    '<div class="_pagination_1jczn_1">'
    '<div class="_pagination_prev_1jczn_7 _pagination_disabled_1jczn_3">上一页</div>'
    '<div class="_pagination_page_1jczn_5">1</div>'
    '<div class="_pagination_next_1jczn_8">下一页</div>'
    "</div>"
)


def build_jd_page(skus, pager=True, extra=""):
    cards = "".join(build_jd_card(s) for s in skus)
    return (
        "<html><body>"
        '<div id="search-2024"><div class="_wrapper_7w8yh_1">'
        f"{cards}"
        "</div></div>"
        f"{JD_PAGER if pager else ''}{extra}"
        "</body></html>"
    )


# ---------------------------------------------------------------------------
# Fake browser tab
# ---------------------------------------------------------------------------

EMPTY_PAGE = "<html><body></body></html>"


class FakeDriver(PageDriver):
    """In-memory tab: serves HTML per URL on a virtual clock.

    ``click_map`` maps a URL to the URL a successful click on it leads to.
    Names in ``failing`` ("onclick", "dispatch", "click", "goto") raise.
    """

    def __init__(self, pages, url=None, height=2000, growth=(), click_map=None,
                 failing=(), has_click_handler=False, on_pause=None):
        self.pages = dict(pages)
        self._url = url or next(iter(self.pages), "about:blank")
        self.height = height
        self.growth = list(growth)
        self.click_map = dict(click_map or {})
        self.failing = set(failing)
        self.has_click_handler = has_click_handler
        self.on_pause = on_pause
        self.now = 0.0
        self.gotos = []
        self.clicks = []
        self.scrolls = []
        self.pauses = []
        self.closed = False

    @property
    def url(self):
        return self._url

    def content(self):
        return self.pages.get(self._url, EMPTY_PAGE)

    def scroll_height(self):
        return self.height

    def scroll_to(self, y):
        self.scrolls.append(y)
        if y >= self.height and self.growth:
            self.height = self.growth.pop(0)

    def count(self, selector):
        return len(BeautifulSoup(self.content(), "lxml").select(selector))

    def goto(self, url):
        if "goto" in self.failing:
            raise RuntimeError("navigation blocked")
        self.gotos.append(url)
        self._url = url

    def _click(self, method, selector):
        if method in self.failing:
            raise RuntimeError(f"{method} failed")
        if self.count(selector) == 0:
            raise RuntimeError(f"no element matches {selector}")
        self.clicks.append((method, selector))
        if self._url in self.click_map:
            self._url = self.click_map[self._url]

    def invoke_click_handler(self, selector):
        if "onclick" in self.failing:
            raise RuntimeError("onclick failed")
        if not self.has_click_handler:
            return False
        self._click("onclick", selector)
        return True

    def dispatch_click(self, selector):
        self._click("dispatch", selector)

    def click(self, selector):
        self._click("click", selector)

    def pause(self, seconds):
        self.pauses.append(seconds)
        self.now += seconds
        if self.on_pause is not None:
            self.on_pause(seconds)

    def clock(self):
        return self.now

    def close(self):
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def taobao_card():
    return build_taobao_card


@pytest.fixture
def taobao_page():
    return build_taobao_page


@pytest.fixture
def jd_card():
    return build_jd_card


@pytest.fixture
def jd_page():
    return build_jd_page


@pytest.fixture
def fake_driver():
    return FakeDriver


@pytest.fixture
def store(tmp_path):
    return KeyValueStore(tmp_path / "state.json")


@pytest.fixture
def notifier():
    return Notifier(echo=False)
