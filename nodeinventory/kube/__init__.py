"""Kubernetes API access.

Exports:
    KubeApiClient   -- list-page fetcher on a kubernetes-asyncio ApiClient.
    NodePage        -- One page of items plus continuation token.
    PageFetcher     -- Protocol the collector depends on.
"""

from nodeinventory.kube.client import KubeApiClient, NodePage, PageFetcher

__all__ = ["KubeApiClient", "NodePage", "PageFetcher"]
