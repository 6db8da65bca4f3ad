"""shopcrawl: search-result crawler for Taobao and JD.

Public API surface; import submodules directly for full access:
  shopcrawl.config.rules           per-platform selectors and id rules
  shopcrawl.config.settings        paths and tunable thresholds
  shopcrawl.extraction.cards       card locator
  shopcrawl.extraction.fields      per-card field extraction
  shopcrawl.storage.state          persisted job state
  shopcrawl.storage.repository     cross-page dedup
  shopcrawl.storage.export         CSV export
  shopcrawl.crawl.orchestrator     scrape pass and crawl loop
  shopcrawl.app.cli                CLI entry point
"""

from .config.rules import detect_platform, get_rules
from .crawl.orchestrator import crawl, run_pass
from .models import Item
from .storage.export import export_csv


def main():
    """CLI entry point."""
    from .app.main import main as _main
    return _main()


__all__ = [
    "Item",
    "crawl",
    "detect_platform",
    "export_csv",
    "get_rules",
    "run_pass",
    "main",
]
