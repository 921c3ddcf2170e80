"""Kubernetes API access for paginated node listing.

``KubeApiClient`` issues ``GET /api/v1/<locator>`` requests through a
kubernetes-asyncio ``ApiClient`` and returns one ``NodePage`` per call. The
library owns connection settings and credentials: its configuration is loaded
from the in-cluster service account first, kubeconfig second, and it applies
(and refreshes) the bearer token on every request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import parse_qsl

import aiohttp
import structlog
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from nodeinventory.collector.errors import FetchError
from nodeinventory.models.config import KubeAPIConfig
from nodeinventory.models.records import RawNode

_log = structlog.get_logger(component="kube.client")

_API_PREFIX = "/api/v1/"
_AUTH_SETTINGS = ["BearerToken"]


@dataclass(frozen=True)
class NodePage:
    """One page of a node list and the token for the next page, if any."""

    items: list[RawNode] = field(default_factory=list)
    continuation_token: str | None = None


class PageFetcher(Protocol):
    """Anything that can fetch one page of a list resource."""

    async def fetch_page(self, locator: str) -> NodePage: ...


def split_locator(locator: str) -> tuple[str, list[tuple[str, str]]]:
    """Split ``nodes?limit=2&continue=x`` into an API path and decoded query pairs."""
    path, _, query = locator.partition("?")
    return _API_PREFIX + path, parse_qsl(query, keep_blank_values=True)


class KubeApiClient:
    """Fetches list pages from the Kubernetes API server.

    Args:
        api_client: A kubernetes-asyncio ``ApiClient`` (or anything exposing
                    the same ``call_api`` coroutine and ``close``).
        timeout:    Per-request timeout in seconds.
    """

    def __init__(self, api_client: Any, timeout: float = 30.0) -> None:
        self._api = api_client
        self._timeout = timeout

    @classmethod
    async def from_config(cls, config: KubeAPIConfig) -> KubeApiClient:
        # Imported lazily: some kubernetes-asyncio versions inspect the cluster environment on import.
        from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]

        configuration = k8s_client.Configuration()
        try:
            # load_incluster_config() is synchronous in kubernetes-asyncio
            k8s_config.load_incluster_config(client_configuration=configuration)
            _log.info("kube_config_loaded", source="in-cluster")
        except k8s_config.ConfigException:
            await k8s_config.load_kube_config(client_configuration=configuration)
            _log.info("kube_config_loaded", source="kubeconfig")

        if config.api_server:
            configuration.host = config.api_server
        _log.info("kube_client_configured", server=configuration.host)
        return cls(k8s_client.ApiClient(configuration), timeout=config.request_timeout)

    async def fetch_page(self, locator: str) -> NodePage:
        """GET ``/api/v1/<locator>`` and split it into items and continuation token.

        Raises:
            FetchError: on transport failure, non-2xx status or a malformed body.
        """
        path, query = split_locator(locator)
        try:
            body: Any = await self._api.call_api(
                path,
                "GET",
                query_params=query,
                header_params={"Accept": "application/json"},
                response_type="object",
                auth_settings=_AUTH_SETTINGS,
                _return_http_data_only=True,
                _request_timeout=self._timeout,
            )
        except ApiException as exc:
            detail = exc.body or exc.reason or ""
            if isinstance(detail, bytes):
                detail = detail.decode("utf-8", "replace")
            reason = str(detail)[:200]
            raise FetchError(locator, f"HTTP {exc.status}: {reason}") from exc
        except TimeoutError as exc:
            raise FetchError(locator, "request timed out") from exc
        except aiohttp.ClientError as exc:
            raise FetchError(locator, str(exc)) from exc

        # response_type "object" hands back the raw body when it is not JSON.
        if isinstance(body, (str, bytes)):
            raise FetchError(locator, "response body is not JSON")
        if not isinstance(body, dict):
            raise FetchError(locator, "response body is not a JSON object")

        items = body.get("items") or []
        if not isinstance(items, list):
            raise FetchError(locator, "'items' is not a list")
        metadata = body.get("metadata") or {}
        token = metadata.get("continue") if isinstance(metadata, dict) else None
        return NodePage(items=items, continuation_token=token or None)

    async def close(self) -> None:
        await self._api.close()
