"""Tests for standup.config: dailies/schedules validation and loading."""

import copy
import json

import pytest

from standup.config import ConfigError, load_standup_config, parse_standup_config

from conftest import ADMIN_ID, CONFIG_DICT


def _config(**overrides):
    raw = copy.deepcopy(CONFIG_DICT)
    raw.update(overrides)
    return raw


class TestParseStandupConfig:
    def test_valid_config(self):
        config = parse_standup_config(CONFIG_DICT)
        assert len(config.dailies) == 1
        assert config.get_daily("daily-il").channel == "-100123"
        assert config.get_schedule("il-week").days == ("sun", "mon", "tue", "wed", "thu")

    def test_defaults(self):
        daily = parse_standup_config(CONFIG_DICT).get_daily("daily-il")
        assert daily.bottleneck_threshold == 3
        assert daily.drop_rate_threshold == 30
        assert daily.questions == ()

    def test_unknown_lookups_return_none(self, standup_config):
        assert standup_config.get_daily("nope") is None
        assert standup_config.get_schedule("nope") is None

    def test_is_admin(self, standup_config):
        assert standup_config.is_admin(ADMIN_ID)
        assert not standup_config.is_admin(1)

    def test_day_codes_are_normalized(self):
        raw = _config(schedules=[
            {"name": "il-week", "days": ["SUN", " Mon "], "default_time": "09:00"},
        ])
        assert parse_standup_config(raw).get_schedule("il-week").days == ("sun", "mon")

    def test_numeric_channel_becomes_string(self):
        raw = copy.deepcopy(CONFIG_DICT)
        raw["dailies"][0]["channel"] = -100999
        assert parse_standup_config(raw).get_daily("daily-il").channel == "-100999"

    def test_config_is_frozen(self, standup_config):
        with pytest.raises(Exception):
            standup_config.get_daily("daily-il").channel = "other"


class TestConfigValidation:
    def test_unknown_schedule_reference(self):
        raw = copy.deepcopy(CONFIG_DICT)
        raw["dailies"][0]["schedule"] = "missing"
        with pytest.raises(ConfigError, match="unknown schedule"):
            parse_standup_config(raw)

    def test_bad_weekday(self):
        raw = _config(schedules=[
            {"name": "il-week", "days": ["sunday"], "default_time": "09:00"},
        ])
        with pytest.raises(ConfigError):
            parse_standup_config(raw)

    def test_empty_days(self):
        raw = _config(schedules=[{"name": "il-week", "days": [], "default_time": "09:00"}])
        with pytest.raises(ConfigError):
            parse_standup_config(raw)

    @pytest.mark.parametrize("value", ["9:00", "24:00", "09:60", "nine"])
    def test_bad_time(self, value):
        raw = _config(schedules=[
            {"name": "il-week", "days": ["sun"], "default_time": value},
        ])
        with pytest.raises(ConfigError):
            parse_standup_config(raw)

    def test_bad_weekly_digest_day(self):
        raw = copy.deepcopy(CONFIG_DICT)
        raw["dailies"][0]["weekly_digest_day"] = "someday"
        with pytest.raises(ConfigError):
            parse_standup_config(raw)

    def test_missing_required_field(self):
        raw = copy.deepcopy(CONFIG_DICT)
        del raw["dailies"][0]["channel"]
        with pytest.raises(ConfigError, match="channel"):
            parse_standup_config(raw)


class TestLoadStandupConfig:
    def test_loads_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(CONFIG_DICT), encoding="utf-8")
        config = load_standup_config(str(path))
        assert config.get_daily("daily-il") is not None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_standup_config(str(tmp_path / "nope.json"))

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_standup_config(str(path))

    def test_root_must_be_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_standup_config(str(path))
