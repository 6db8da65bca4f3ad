import sys

from .cli import main as cli_main
from ..utils.logging import get_logger

logger = get_logger(__name__)


def main(argv=None):
    return cli_main(argv)


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        # the store keeps currentPage, so nothing scraped so far is lost
        logger.info("Interrupted. Continue with: shopcrawl resume --url <search page>")
        sys.exit(130)
    except Exception as e:
        logger.error("Crawl aborted: %s", e, exc_info=True)
        sys.exit(1)
