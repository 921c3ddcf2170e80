"""Tests for environment-driven configuration loading."""

from __future__ import annotations

import os

import pytest

from nodeinventory.config import load_config
from nodeinventory.models.config import DEFAULT_INVENTORY_TAG


class TestDefaults:
    def test_defaults_without_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for key in list(os.environ):
            if key.startswith("NODEINV_"):
                monkeypatch.delenv(key)
        config = load_config()

        assert config.collector.run_interval_seconds == 60
        assert config.collector.tag == DEFAULT_INVENTORY_TAG
        assert config.collector.page_size == 400
        assert config.collector.test_mode is False
        assert config.telemetry.flush_interval_minutes == 10
        assert config.router.endpoint == ""
        assert config.api.port == 8080
        assert config.log.level == "info"
        assert config.platform.azure_stack_marker == "/etc/kubernetes/host/azurestackcloud.json"


class TestOverrides:
    def test_collector_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODEINV_RUN_INTERVAL", "120")
        monkeypatch.setenv("NODEINV_TAG", "oms.custom.Inventory")
        monkeypatch.setenv("NODEINV_PAGE_SIZE", "50")
        monkeypatch.setenv("NODEINV_TEST_MODE", "true")
        monkeypatch.setenv("NODEINV_CLUSTER_ID", "/subscriptions/x/clusters/prod")
        monkeypatch.setenv("NODEINV_CLUSTER_NAME", "prod")

        config = load_config()

        assert config.collector.run_interval_seconds == 120
        assert config.collector.tag == "oms.custom.Inventory"
        assert config.collector.page_size == 50
        assert config.collector.test_mode is True
        assert config.cluster_id == "/subscriptions/x/clusters/prod"
        assert config.cluster_name == "prod"

    def test_interval_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODEINV_RUN_INTERVAL", "1")
        assert load_config().collector.run_interval_seconds == 10
        monkeypatch.setenv("NODEINV_RUN_INTERVAL", "99999")
        assert load_config().collector.run_interval_seconds == 3600

    def test_page_size_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODEINV_PAGE_SIZE", "0")
        assert load_config().collector.page_size == 1

    def test_telemetry_snapshot(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODEINV_TELEMETRY_FLUSH_INTERVAL_MINUTES", "5")
        monkeypatch.setenv("NODEINV_COLLECT_ALL_KUBE_EVENTS", "true")
        monkeypatch.setenv("NODEINV_TELEMETRY_RS_PROM_INTERVAL", "1m")
        monkeypatch.setenv("NODEINV_TELEMETRY_RS_PROM_URLS_LENGTH", "2")

        telemetry = load_config().telemetry

        assert telemetry.flush_interval_minutes == 5
        assert telemetry.collect_all_kube_events == "true"
        assert telemetry.prom.interval == "1m"
        assert telemetry.prom.url_count == "2"

    def test_endpoints(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODEINV_ROUTER_ENDPOINT", "http://fluentd:24224/ingest")
        monkeypatch.setenv("NODEINV_TELEMETRY_ENDPOINT", "https://telemetry.example.com/v1")
        config = load_config()
        assert config.router.endpoint == "http://fluentd:24224/ingest"
        assert config.telemetry.endpoint == "https://telemetry.example.com/v1"


class TestValidation:
    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODEINV_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="log level"):
            load_config()

    def test_log_level_normalised(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODEINV_LOG_LEVEL", "DEBUG")
        assert load_config().log.level == "debug"

    def test_blank_tag_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODEINV_TAG", "   ")
        with pytest.raises(ValueError, match="tag"):
            load_config()

    def test_non_http_endpoint_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODEINV_ROUTER_ENDPOINT", "ftp://example.com")
        with pytest.raises(ValueError, match="http"):
            load_config()

    def test_non_numeric_interval_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NODEINV_RUN_INTERVAL", "soon")
        with pytest.raises(ValueError):
            load_config()
