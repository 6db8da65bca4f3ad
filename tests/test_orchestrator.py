"""Crawl loop tests: full passes against the in-memory driver."""

import random

import pytest

from conftest import JD_SEARCH, TAOBAO_SEARCH
from shopcrawl.config.settings import ScrapeSettings
from shopcrawl.crawl import orchestrator
from shopcrawl.crawl.orchestrator import (
    PassOutcome,
    crawl,
    resume_crawl,
    run_pass,
    start_crawl,
)
from shopcrawl.models import Item
from shopcrawl.storage.repository import accumulate_page
from shopcrawl.config.rules import JD
from shopcrawl.storage.state import JobState, load_items, start_job

JD_PAGE_2 = JD_SEARCH + "&page=3"
JD_PAGE_3 = JD_SEARCH + "&page=5"


def _at_page(store, platform, page, limit):
    start_job(store, platform, "laptop", page_limit=limit, min_delay=3, max_delay=5)
    store.set({"currentPage": page})


# ============================================================================
# Full crawls
# ============================================================================
@pytest.mark.integration
class TestCrawl:
    def test_three_jd_pages_dedup_across_pages(self, fake_driver, jd_page, store, notifier):
        pages = {
            JD_SEARCH: jd_page(range(1, 31)),
            JD_PAGE_2: jd_page(range(25, 55)),
            JD_PAGE_3: jd_page(range(55, 85), pager=False),
        }
        driver = fake_driver(pages, url="about:blank", click_map={JD_SEARCH: JD_PAGE_2, JD_PAGE_2: JD_PAGE_3})
        results = start_crawl(
            driver, store, "jd", "laptop", page_limit=3, min_delay=3, max_delay=5,
            notifier=notifier, rng=random.Random(7),
        )

        assert [r.outcome for r in results] == [
            PassOutcome.ADVANCED, PassOutcome.ADVANCED, PassOutcome.FINISHED,
        ]
        assert [r.added for r in results] == [30, 24, 30]
        assert results[-1].reason == "page_limit"
        assert driver.gotos == [JD_SEARCH]
        assert [method for method, _ in driver.clicks] == ["dispatch", "dispatch"]

        finished = notifier.last_finished()
        assert finished.platform == "jd"
        assert len(finished.items) == 84
        assert len({item["link"] for item in finished.items}) == 84
        assert "第 2 页完成。已获取 54 条。" in notifier.statuses()

    def test_single_taobao_page(self, fake_driver, taobao_page, store, notifier):
        driver = fake_driver({TAOBAO_SEARCH: taobao_page(range(1001, 1025))}, url="about:blank")
        results = start_crawl(driver, store, "taobao", "laptop", 1, 3, 5, notifier=notifier)

        assert len(results) == 1
        assert results[0].outcome is PassOutcome.FINISHED
        assert driver.clicks == []
        items = notifier.last_finished().items
        assert len(items) == 24
        assert items[0] == {
            "title": "轻薄笔记本电脑 型号1001",
            "price": "199.50",
            "shop": "旗舰店",
            "link": "https://item.taobao.com/item.htm?id=1001",
        }
        assert notifier.statuses()[-1] == "第 1 页完成。已获取 24 条。"

    def test_url_rewrite_when_no_pager(self, fake_driver, jd_page, store, notifier):
        next_url = JD_SEARCH + "&page=2"
        pages = {
            JD_SEARCH: jd_page(range(1, 31), pager=False),
            next_url: jd_page(range(31, 61), pager=False),
        }
        driver = fake_driver(pages, url="about:blank")
        results = start_crawl(driver, store, "jd", "laptop", 2, 3, 3, notifier=notifier)

        assert results[0].method == "url"
        assert driver.gotos == [JD_SEARCH, next_url]
        assert len(load_items(store, "jd")) == 60

    def test_resume_mid_job(self, fake_driver, jd_page, store, notifier):
        _at_page(store, "jd", 2, 2)
        driver = fake_driver({JD_PAGE_2: jd_page(range(1, 31))}, url="about:blank")
        results = resume_crawl(driver, store, JD_PAGE_2, notifier=notifier)
        assert driver.gotos == [JD_PAGE_2]
        assert results[-1].outcome is PassOutcome.FINISHED
        assert results[-1].page == 2

    def test_resume_refused_when_not_mid_job(self, fake_driver, store):
        start_job(store, "jd", "laptop", page_limit=1)
        with pytest.raises(ValueError):
            resume_crawl(fake_driver({}), store, JD_SEARCH)

    def test_crawl_stops_when_store_not_mid_job(self, fake_driver, jd_page, store, notifier):
        pages = {JD_SEARCH: jd_page(range(1, 31)), JD_PAGE_2: jd_page(range(31, 61))}
        driver = fake_driver(pages, click_map={JD_SEARCH: JD_PAGE_2})
        _at_page(store, "jd", 1, 2)

        def drop_limit(seconds):
            # the advanced pass ends with the navigation settle
            if seconds == JD.navigation_settle:
                store.set({"pageLimit": 1})

        driver.on_pause = drop_limit
        results = crawl(driver, store, notifier)
        assert [r.outcome for r in results] == [PassOutcome.ADVANCED]


# ============================================================================
# Single pass: state machine branches
# ============================================================================
class TestRunPass:
    def test_finishes_at_limit_without_looking_for_next(self, monkeypatch, fake_driver, jd_page, store, notifier):
        _at_page(store, "jd", 3, 3)

        def no_search(*args, **kwargs):
            raise AssertionError("next control must not be searched on the last page")

        monkeypatch.setattr(orchestrator, "locate_next_control", no_search)
        driver = fake_driver({JD_SEARCH: jd_page(range(1, 31))})
        result = run_pass(driver, store, notifier)

        assert result.outcome is PassOutcome.FINISHED
        assert result.reason == "page_limit"
        assert result.page_items == 30
        assert driver.clicks == []
        assert driver.gotos == []

    def test_past_limit_finishes_immediately(self, fake_driver, jd_page, store, notifier):
        _at_page(store, "jd", 4, 3)
        driver = fake_driver({JD_SEARCH: jd_page(range(1, 31))})
        result = run_pass(driver, store, notifier)
        assert result.outcome is PassOutcome.FINISHED
        assert driver.scrolls == []
        assert notifier.last_finished() is not None

    def test_no_cards_on_first_page_halts(self, fake_driver, store, notifier):
        _at_page(store, "taobao", 1, 3)
        driver = fake_driver({TAOBAO_SEARCH: "<html><body><p>验证码</p></body></html>"})
        result = run_pass(driver, store, notifier)
        assert result.outcome is PassOutcome.HALTED
        assert result.reason == "no_cards"
        assert notifier.last_finished() is None
        assert "未找到商品，请检查页面或联系开发者。" in notifier.statuses()
        assert JobState.load(store).current_page == 1

    def test_no_cards_on_later_page_finishes(self, fake_driver, store, notifier):
        _at_page(store, "jd", 2, 3)
        accumulate_page(store, JD, [Item("t", "1", "s", "https://item.jd.com/1.html")], "1")
        driver = fake_driver({JD_PAGE_2: "<html><body></body></html>"})
        result = run_pass(driver, store, notifier)
        assert result.outcome is PassOutcome.FINISHED
        assert result.reason == "empty_page"
        assert len(notifier.last_finished().items) == 1

    def test_missing_next_control_finishes(self, fake_driver, taobao_page, store, notifier):
        _at_page(store, "taobao", 1, 2)
        driver = fake_driver({TAOBAO_SEARCH: taobao_page(range(1, 25), pager=False)})
        result = run_pass(driver, store, notifier)
        assert result.outcome is PassOutcome.FINISHED
        assert result.reason == "no_next_control"
        assert JobState.load(store).current_page == 1

    def test_signature_match_only_warns(self, fake_driver, jd_page, store, notifier):
        _at_page(store, "jd", 1, 1)
        store.set({"lastPageSignatureId": "1"})
        driver = fake_driver({JD_SEARCH: jd_page(range(1, 31))})
        result = run_pass(driver, store, notifier)
        assert result.outcome is PassOutcome.FINISHED
        assert result.added == 30
        assert "注意：页面可能未刷新 (第 1 页)..." in notifier.statuses()

    def test_signature_persisted(self, fake_driver, jd_page, store, notifier):
        _at_page(store, "jd", 1, 1)
        run_pass(fake_driver({JD_SEARCH: jd_page(range(7, 37))}), store, notifier)
        assert JobState.load(store).last_signature == "7"

    def test_page_number_persisted_before_activation(self, fake_driver, jd_page, store, notifier):
        _at_page(store, "jd", 1, 2)
        seen = []
        driver = fake_driver({JD_SEARCH: jd_page(range(1, 31))}, click_map={JD_SEARCH: JD_PAGE_2})
        driver.on_pause = lambda s: seen.append((s, JobState.load(store).current_page))
        result = run_pass(driver, store, notifier, rng=random.Random(0))

        assert result.outcome is PassOutcome.ADVANCED
        delay_pauses = [page for s, page in seen if s >= 3]
        assert delay_pauses[0] == 2

    def test_new_job_during_delay_is_stale(self, fake_driver, jd_page, store, notifier):
        _at_page(store, "jd", 1, 2)
        driver = fake_driver({JD_SEARCH: jd_page(range(1, 31))}, click_map={JD_SEARCH: JD_PAGE_2})

        def restart(seconds):
            if 3 <= seconds <= 5 and JobState.load(store).platform == "jd":
                start_job(store, "taobao", "new search")

        driver.on_pause = restart
        result = run_pass(driver, store, notifier)

        assert result.outcome is PassOutcome.STALE
        assert driver.clicks == []
        assert driver.url == JD_SEARCH
        assert len(load_items(store, "jd")) == 30
        assert JobState.load(store).platform == "taobao"

    def test_all_activation_methods_fail(self, fake_driver, jd_page, store, notifier):
        _at_page(store, "jd", 1, 2)
        driver = fake_driver(
            {JD_SEARCH: jd_page(range(1, 31))}, failing={"onclick", "dispatch", "click"}
        )
        result = run_pass(driver, store, notifier)
        assert result.outcome is PassOutcome.FINISHED
        assert result.reason == "activation_failed"
        assert JobState.load(store).current_page == 2

    def test_lazy_images_trigger_recheck(self, fake_driver, jd_page, store, notifier):
        _at_page(store, "jd", 1, 1)
        html = jd_page(range(1, 31), extra='<img data-src="//img.jd.com/lazy.jpg">')
        driver = fake_driver({JD_SEARCH: html})
        run_pass(driver, store, notifier, settings=ScrapeSettings(extra_settle=0.7))
        assert 0.7 in driver.pauses
