"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_INVENTORY_TAG = "oms.containerinsights.KubeNodeInventory"


@dataclass
class CollectorConfig:
    """Collection cycle configuration."""

    run_interval_seconds: int = 60
    tag: str = DEFAULT_INVENTORY_TAG
    page_size: int = 400
    test_mode: bool = False


@dataclass
class KubeAPIConfig:
    """Kubernetes API access configuration.

    An empty ``api_server`` means connection settings come from the
    in-cluster service account or the local kubeconfig.
    """

    api_server: str = ""
    request_timeout: float = 30.0


@dataclass
class RouterConfig:
    """Downstream record router configuration.

    An empty endpoint selects the log-only router.
    """

    endpoint: str = ""
    timeout: float = 10.0


@dataclass
class PromSettingsSnapshot:
    """Prometheus scrape settings reported alongside node telemetry."""

    interval: str = ""
    fieldpass_count: str = ""
    fielddrop_count: str = ""
    k8s_service_count: str = ""
    url_count: str = ""
    monitor_pods: str = ""
    monitor_pods_namespace_count: str = ""


@dataclass
class TelemetryConfig:
    """Operational telemetry configuration.

    The snapshot fields only annotate telemetry samples; they never change
    what is collected or when.
    """

    endpoint: str = ""
    timeout: float = 10.0
    flush_interval_minutes: int = 10
    collect_all_kube_events: str = ""
    prom: PromSettingsSnapshot = field(default_factory=PromSettingsSnapshot)


@dataclass
class PlatformConfig:
    """Host filesystem markers. Only existence is checked."""

    azure_stack_marker: str = "/etc/kubernetes/host/azurestackcloud.json"
    log_settings_path: str = "/etc/config/settings/log-data-collection-settings"
    prom_settings_path: str = "/etc/config/settings/prometheus-data-collection-settings"


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class NodeInventoryConfig:
    """Top-level configuration."""

    cluster_id: str = ""
    cluster_name: str = ""
    collector: CollectorConfig = field(default_factory=CollectorConfig)
    kube: KubeAPIConfig = field(default_factory=KubeAPIConfig)
    router: RouterConfig = field(default_factory=RouterConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    platform: PlatformConfig = field(default_factory=PlatformConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
