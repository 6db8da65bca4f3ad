"""Tests for shopcrawl.config.settings."""

import json

import pytest

from shopcrawl.config.settings import DEFAULT_SETTINGS, ScrapeSettings, load_settings


class TestFromMapping:
    def test_overrides_and_coerces(self):
        settings = ScrapeSettings.from_mapping({"band_min": "10", "scroll_settle": 1})
        assert settings.band_min == 10
        assert settings.scroll_settle == 1.0
        assert isinstance(settings.scroll_settle, float)
        assert settings.band_max == DEFAULT_SETTINGS.band_max

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="band_minimum"):
            ScrapeSettings.from_mapping({"band_minimum": 5})

    def test_bad_value(self):
        with pytest.raises(ValueError, match="band_max"):
            ScrapeSettings.from_mapping({"band_max": "lots"})

    def test_fractional_count_rejected(self):
        with pytest.raises(ValueError, match="band_min"):
            ScrapeSettings.from_mapping({"band_min": 3.7})

    def test_bool_count_rejected(self):
        with pytest.raises(ValueError, match="debug_cards"):
            ScrapeSettings.from_mapping({"debug_cards": True})

    def test_integral_float_accepted_for_count(self):
        settings = ScrapeSettings.from_mapping({"band_min": 25.0})
        assert settings.band_min == 25
        assert isinstance(settings.band_min, int)

    def test_inverted_band(self):
        with pytest.raises(ValueError):
            ScrapeSettings.from_mapping({"band_min": 300})

    def test_fallback_band_below_band(self):
        with pytest.raises(ValueError):
            ScrapeSettings.from_mapping({"fallback_band_max": 100})

    def test_base_is_kept(self):
        base = ScrapeSettings(extra_settle=0.2)
        assert ScrapeSettings.from_mapping({"band_min": 5}, base).extra_settle == 0.2


class TestLoadSettings:
    def test_none_gives_defaults(self):
        assert load_settings(None) is DEFAULT_SETTINGS

    def test_json_file(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"first_card_wait_timeout": 20, "debug_cards": 0}), encoding="utf-8")
        settings = load_settings(path)
        assert settings.first_card_wait_timeout == 20.0
        assert settings.debug_cards == 0

    def test_non_object_rejected(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            load_settings(path)
