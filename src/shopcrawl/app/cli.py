from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Callable, List, Optional

from ..browser.driver import PageDriver, PlaywrightDriver
from ..config.rules import PLATFORMS, get_rules
from ..config.settings import (
    DEFAULT_MAX_DELAY,
    DEFAULT_MIN_DELAY,
    DEFAULT_PAGE_LIMIT,
    PROFILE_DIR,
    STATE_FILE,
    load_settings,
)
from ..crawl.notify import Notifier
from ..crawl.orchestrator import PassResult, resume_crawl, start_crawl
from ..models import Item
from ..storage.export import export_csv
from ..storage.state import JobState, KeyValueStore, is_mid_job, load_items
from ..utils.console import banner, print_items, safe_print
from ..utils.logging import get_logger, set_console_level

logger = get_logger(__name__)

DriverFactory = Callable[[argparse.Namespace], PageDriver]


def _playwright_driver(args: argparse.Namespace) -> PageDriver:
    return PlaywrightDriver(Path(args.profile_dir), headless=args.headless)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--state-file", default=str(STATE_FILE), help="Job state JSON file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output on the console")


def _add_browser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--headless", action="store_true", help="Run the browser without a window")
    parser.add_argument("--profile-dir", default=str(PROFILE_DIR), help="Persistent browser profile")
    parser.add_argument("--settings", default=None, help="JSON file overriding scrape thresholds")
    parser.add_argument("--out", default=None, help="Write the finished items to this CSV")


def build_arg_parser() -> argparse.ArgumentParser:
    epilog = (
        "Examples:\n"
        "  shopcrawl start --platform jd --keyword 笔记本 --pages 3\n"
        "  shopcrawl resume --url 'https://search.jd.com/Search?keyword=x&page=3'\n"
        "  shopcrawl export --platform jd --out jd.csv\n"
    )
    parser = argparse.ArgumentParser(
        prog="shopcrawl",
        description="Taobao / JD search result crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=epilog,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="Start a new search and crawl it")
    start.add_argument("--platform", choices=PLATFORMS, required=True)
    start.add_argument("--keyword", required=True)
    start.add_argument("--pages", type=int, default=DEFAULT_PAGE_LIMIT, help="Page limit")
    start.add_argument("--min-delay", type=int, default=DEFAULT_MIN_DELAY, help="Seconds")
    start.add_argument("--max-delay", type=int, default=DEFAULT_MAX_DELAY, help="Seconds")
    _add_browser(start)
    _add_common(start)

    resume = sub.add_parser("resume", help="Continue an interrupted multi-page job")
    resume.add_argument("--url", required=True, help="Search page to continue from")
    _add_browser(resume)
    _add_common(resume)

    export = sub.add_parser("export", help="Export the stored items as CSV")
    export.add_argument("--platform", choices=PLATFORMS, default=None)
    export.add_argument("--out", default=None, help="Target CSV (default: data/exports/<platform>_<ms>.csv)")
    _add_common(export)

    status = sub.add_parser("status", help="Show the stored job state")
    _add_common(status)

    return parser


def print_status(store: KeyValueStore) -> JobState:
    state = JobState.load(store)
    banner("CRAWLER STATUS")
    safe_print(f"Platform : {get_rules(state.platform).label}")
    safe_print(f"Keyword  : {state.keyword or '-'}")
    safe_print(f"Job      : {state.job_id or '-'}")
    safe_print(f"Page     : {state.current_page} / {state.page_limit}")
    safe_print(f"Delay    : {state.min_delay}-{state.max_delay}s")
    safe_print(f"Mid-job  : {'yes' if is_mid_job(state) else 'no'}")
    for platform in PLATFORMS:
        safe_print(f"Items ({platform}): {len(load_items(store, platform))}")
    return state


def _report(results: List[PassResult], notifier: Notifier, out: Optional[str]) -> int:
    last = results[-1] if results else None
    finished = notifier.last_finished()
    banner("CRAWL SUMMARY")
    for result in results:
        safe_print(
            f"  page {result.page}: {result.outcome.value} ({result.reason}) "
            f"+{result.added} new / {result.page_items} on page"
        )
    if finished is None:
        safe_print("Crawl did not finish; nothing exported.")
        return 1 if last is not None and last.reason == "no_cards" else 0

    items = [Item.from_dict(d) for d in finished.items or []]
    print_items(items)
    if out:
        path = export_csv(items, finished.platform, Path(out))
        safe_print(f"Exported {len(items)} items -> {path}")
    else:
        safe_print(f"{len(items)} items stored; run 'shopcrawl export' to write a CSV.")
    return 0


def run(args: argparse.Namespace, driver_factory: DriverFactory = _playwright_driver) -> int:
    set_console_level(logging.DEBUG if args.verbose else logging.INFO)
    store = KeyValueStore(Path(args.state_file))

    if args.command == "status":
        print_status(store)
        return 0

    if args.command == "export":
        state = JobState.load(store)
        platform = args.platform or state.platform
        items = load_items(store, platform)
        path = export_csv(items, platform, Path(args.out) if args.out else None)
        safe_print(f"Exported {platform} items -> {path}")
        return 0

    settings = load_settings(Path(args.settings) if args.settings else None)
    notifier = Notifier()
    driver = driver_factory(args)
    try:
        if args.command == "start":
            results = start_crawl(
                driver,
                store,
                args.platform,
                args.keyword,
                args.pages,
                args.min_delay,
                args.max_delay,
                notifier=notifier,
                settings=settings,
            )
        else:
            results = resume_crawl(driver, store, args.url, notifier=notifier, settings=settings)
    finally:
        driver.close()
    return _report(results, notifier, args.out)


def main(argv: Optional[List[str]] = None, driver_factory: DriverFactory = _playwright_driver) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    try:
        return run(args, driver_factory)
    except ValueError as exc:
        parser.error(str(exc))
