import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

BASE_DIR = Path(__file__).resolve().parents[3]
DATA_DIR = BASE_DIR / "data"
EXPORT_DIR = DATA_DIR / "exports"
STATE_FILE = DATA_DIR / "crawler_state.json"
PROFILE_DIR = BASE_DIR / "raw" / "browser_profile"

DEFAULT_PAGE_LIMIT = 1
DEFAULT_MIN_DELAY = 3
DEFAULT_MAX_DELAY = 5


@dataclass(frozen=True)
class ScrapeSettings:
    """Tunable thresholds of the crawl.

    All of these are empirical and site-specific; override them with a JSON
    file (``--settings``) instead of editing code when a target site changes.
    """

    # card locator: a selector whose match count falls in [band_min, band_max] is trusted
    band_min: int = 20
    band_max: int = 200
    # price-indicator fallback is discarded above this many climbed containers
    fallback_band_max: int = 500

    # titles must be longer than this to win a strategy
    min_title_len: int = 5
    title_max_len: int = 100
    # below this a recovered title counts as missing for the inclusion rule
    min_kept_title_len: int = 3
    min_link_len: int = 10

    # waits, in seconds
    first_card_wait_timeout: float = 10.0
    card_wait_timeout: float = 3.0
    scroll_settle: float = 0.5
    scroll_max_iterations: int = 50
    final_settle: float = 2.0
    extra_settle: float = 1.5
    post_scroll_wait: float = 1.5
    resume_delay: float = 3.0

    # diagnostics
    debug_cards: int = 3
    debug_rejected: int = 10

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base: Optional["ScrapeSettings"] = None) -> "ScrapeSettings":
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ValueError(f"Unknown setting(s): {', '.join(unknown)}")

        coerced = {}
        for key, value in data.items():
            default = getattr(cls, key)
            # int(3.7) would silently truncate; bools are not counts either
            if isinstance(default, int) and (
                isinstance(value, bool) or (isinstance(value, float) and not value.is_integer())
            ):
                raise ValueError(f"Invalid value for {key!r}: {value!r}")
            try:
                coerced[key] = type(default)(value)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Invalid value for {key!r}: {value!r}") from exc

        settings = replace(base or cls(), **coerced)
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.band_min < 1 or self.band_max < self.band_min:
            raise ValueError(f"Invalid card band: [{self.band_min}, {self.band_max}]")
        if self.fallback_band_max < self.band_max:
            raise ValueError("fallback_band_max must be >= band_max")
        if self.scroll_max_iterations < 1:
            raise ValueError("scroll_max_iterations must be >= 1")


DEFAULT_SETTINGS = ScrapeSettings()


def load_settings(path: Optional[Path] = None) -> ScrapeSettings:
    """Read a JSON override file on top of the defaults."""
    if path is None:
        return DEFAULT_SETTINGS
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Settings file must hold a JSON object: {path}")
    return ScrapeSettings.from_mapping(raw)
