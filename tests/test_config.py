"""Tests for alert/notification settings handling."""

import pytest

from rollertrack.core import config
from rollertrack.core.config import ConfigError


class TestAlertConfig:
    def test_missing_document_is_none(self):
        assert config.normalize_alert_config(None) is None

    def test_normalize_fills_missing_rules(self):
        out = config.normalize_alert_config({"productionEndDelay": {"enabled": True, "days": "30"}})
        assert out["productionEndDelay"] == {"enabled": True, "days": 30}
        assert out["rollerSentDelay"] == {"enabled": False, "days": 0}

    def test_normalize_disables_bad_rule_only(self):
        out = config.normalize_alert_config({
            "productionEndDelay": {"enabled": True, "days": "soon"},
            "rollerSentDelay": {"enabled": True, "days": 10},
        })
        assert out["productionEndDelay"]["enabled"] is False
        assert out["rollerSentDelay"] == {"enabled": True, "days": 10}

    def test_validate_strict(self):
        with pytest.raises(ConfigError):
            config.validate_alert_config({"productionEndDelay": {"enabled": True, "days": -1}})
        with pytest.raises(ConfigError):
            config.validate_alert_config({"productionEndDelay": {"enabled": True, "days": "3"}})
        with pytest.raises(ConfigError):
            config.validate_alert_config({"someOtherDelay": {"enabled": True, "days": 3}})
        with pytest.raises(ConfigError):
            config.validate_alert_config([])

    def test_validate_defaults(self):
        assert config.validate_alert_config({}) == {
            "productionEndDelay": {"enabled": False, "days": 0},
            "rollerSentDelay": {"enabled": False, "days": 0},
        }

    def test_load_from_store(self, store):
        assert config.load_alert_config(store) is None
        store.set_setting(config.ALERTS_SETTING, {"rollerSentDelay": {"enabled": True, "days": 5}})
        assert config.load_alert_config(store)["rollerSentDelay"]["days"] == 5


class TestNotificationConfig:
    def test_missing_keys(self):
        assert config.missing_notification_keys(None) == ["serviceId", "templateId", "publicKey"]
        assert config.missing_notification_keys(
            {"serviceId": "s", "templateId": "t", "publicKey": "  "}) == ["publicKey"]

    def test_ready(self, notify_config):
        assert config.is_notification_ready(notify_config)

    def test_non_string_values_count_as_missing(self, notify_config):
        notify_config.update({"serviceId": 7, "publicKey": None})
        assert config.missing_notification_keys(notify_config) == ["serviceId", "publicKey"]
        assert config.missing_notification_keys(["serviceId"]) == [
            "serviceId", "templateId", "publicKey"]
        assert not config.is_notification_ready(notify_config)

    def test_validate_requires_keys(self):
        with pytest.raises(ConfigError, match="publicKey"):
            config.validate_notification_config({"serviceId": "s", "templateId": "t"})

    def test_validate_trims_and_rejects_non_strings(self):
        out = config.validate_notification_config(
            {"serviceId": " s ", "templateId": "t", "publicKey": "p", "toEmails": None})
        assert out["serviceId"] == "s"
        assert out["toEmails"] == ""
        with pytest.raises(ConfigError):
            config.validate_notification_config(
                {"serviceId": "s", "templateId": "t", "publicKey": 42})

    def test_masking(self, notify_config):
        masked = config.masked_notification_config(notify_config)
        assert masked["publicKey"] == "pub_****"
        assert masked["privateKey"] == "(not set)"
        assert masked["serviceId"] == "service_abc"
        assert config.mask("short") == "****"


class TestSweepTime:
    def test_parse(self):
        assert config.parse_sweep_time("09:00") == (9, 0)
        assert config.parse_sweep_time("23:45") == (23, 45)

    def test_bad_values_fall_back(self):
        for bad in ("25:00", "9am", "12:60"):
            assert config.parse_sweep_time(bad) == (9, 0)
