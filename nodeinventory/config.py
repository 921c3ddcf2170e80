"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from nodeinventory.models.config import (
    DEFAULT_INVENTORY_TAG,
    APIConfig,
    CollectorConfig,
    KubeAPIConfig,
    LogConfig,
    NodeInventoryConfig,
    PlatformConfig,
    PromSettingsSnapshot,
    RouterConfig,
    TelemetryConfig,
)

_PLATFORM_DEFAULTS = PlatformConfig()


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"NODEINV_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_tag(value: str) -> str:
    if not value.strip():
        raise ValueError("Inventory tag must not be empty")
    return value.strip()


def _validate_endpoint(value: str) -> str:
    if value and not value.startswith(("http://", "https://")):
        raise ValueError(f"Endpoint must be an http(s) URL, got: {value!r}")
    return value


def load_config() -> NodeInventoryConfig:
    """Load configuration from NODEINV_* environment variables."""
    return NodeInventoryConfig(
        cluster_id=_env("CLUSTER_ID", ""),
        cluster_name=_env("CLUSTER_NAME", ""),
        collector=CollectorConfig(
            run_interval_seconds=_env_int("RUN_INTERVAL", 60, min_val=10, max_val=3600),
            tag=_validate_tag(_env("TAG", DEFAULT_INVENTORY_TAG)),
            page_size=_env_int("PAGE_SIZE", 400, min_val=1, max_val=5000),
            test_mode=_env_bool("TEST_MODE", False),
        ),
        kube=KubeAPIConfig(
            api_server=_validate_endpoint(_env("KUBE_API_SERVER", "")),
            request_timeout=_env_float("KUBE_REQUEST_TIMEOUT", 30.0),
        ),
        router=RouterConfig(
            endpoint=_validate_endpoint(_env("ROUTER_ENDPOINT", "")),
            timeout=_env_float("ROUTER_TIMEOUT", 10.0),
        ),
        telemetry=TelemetryConfig(
            endpoint=_validate_endpoint(_env("TELEMETRY_ENDPOINT", "")),
            timeout=_env_float("TELEMETRY_TIMEOUT", 10.0),
            flush_interval_minutes=_env_int("TELEMETRY_FLUSH_INTERVAL_MINUTES", 10, min_val=1),
            collect_all_kube_events=_env("COLLECT_ALL_KUBE_EVENTS", ""),
            prom=PromSettingsSnapshot(
                interval=_env("TELEMETRY_RS_PROM_INTERVAL", ""),
                fieldpass_count=_env("TELEMETRY_RS_PROM_FIELDPASS_LENGTH", ""),
                fielddrop_count=_env("TELEMETRY_RS_PROM_FIELDDROP_LENGTH", ""),
                k8s_service_count=_env("TELEMETRY_RS_PROM_K8S_SERVICES_LENGTH", ""),
                url_count=_env("TELEMETRY_RS_PROM_URLS_LENGTH", ""),
                monitor_pods=_env("TELEMETRY_RS_PROM_MONITOR_PODS", ""),
                monitor_pods_namespace_count=_env("TELEMETRY_RS_PROM_MONITOR_PODS_NS_LENGTH", ""),
            ),
        ),
        platform=PlatformConfig(
            azure_stack_marker=_env("AZURE_STACK_MARKER", _PLATFORM_DEFAULTS.azure_stack_marker),
            log_settings_path=_env("LOG_SETTINGS_PATH", _PLATFORM_DEFAULTS.log_settings_path),
            prom_settings_path=_env("PROM_SETTINGS_PATH", _PLATFORM_DEFAULTS.prom_settings_path),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
