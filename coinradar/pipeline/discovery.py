"""
Coin Radar - Catalog Discovery

Walks the site's catalog tree through its "get children" XHR endpoint and
collects every leaf (a node with no children is a pricing catalog).

The walk is depth-first. The root is expanded at depth 1 and a child of a
node at depth d is expanded only while d + 1 <= max_depth. Each node id is
expanded at most once per run, and ids <= 0 are placeholder rows and skipped.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

import structlog
from pydantic import BaseModel, Field, ValidationError

from coinradar.config import settings
from coinradar.engine.table_parser import is_login_page
from coinradar.scraper.client import FetchClient
from coinradar.scraper.errors import AuthenticationRequired, DiscoveryError, FetchError

logger = structlog.get_logger(__name__)


class CatalogNode(BaseModel):
    """One row of a get_children response."""

    id: int
    name: str | None = None
    child_count: int = 0
    series_id: int | None = None

    @property
    def is_leaf(self) -> bool:
        return self.child_count == 0


class DiscoveryResult(BaseModel):
    catalogs: dict[int, str] = Field(default_factory=dict)
    failed_nodes: list[int] = Field(default_factory=list)
    visited: int = 0


class CatalogDiscovery:
    """
    Usage:
        async with FetchClient(require_auth=True) as client:
            catalogs = await CatalogDiscovery(client).discover(root_node_id=1)
    """

    def __init__(
        self,
        client: FetchClient,
        endpoint: str | None = None,
        delay_ms: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._endpoint = endpoint or settings.CDN_DISCOVERY_PATH
        self._delay = (settings.DISCOVERY_DELAY_MS if delay_ms is None else delay_ms) / 1000
        self._sleep = sleep

    async def fetch_children(self, node_id: int) -> list[CatalogNode]:
        """
        One side-channel call.

        Raises:
            AuthenticationRequired: session rejected or a login page was served.
            DiscoveryError: request failed after retries or the body is not a node list.
        """
        try:
            result = await self._client.post_form(
                self._endpoint, {"action": "get_children", "node_id": str(node_id)}
            )
        except AuthenticationRequired:
            raise
        except FetchError as e:
            raise DiscoveryError(f"get_children({node_id}) failed: {e}") from e

        if result.content.lstrip().startswith("<") and is_login_page(result.content):
            raise AuthenticationRequired(
                f"Login page served for get_children({node_id}); session cookies are missing or expired",
                url=result.url,
            )

        try:
            payload: Any = json.loads(result.content)
        except json.JSONDecodeError as e:
            raise DiscoveryError(f"get_children({node_id}) returned non-JSON content") from e
        if not isinstance(payload, list):
            raise DiscoveryError(f"get_children({node_id}) returned {type(payload).__name__}, expected list")

        try:
            return [CatalogNode.model_validate(item) for item in payload]
        except ValidationError as e:
            raise DiscoveryError(f"get_children({node_id}) returned malformed nodes") from e

    async def discover(
        self,
        root_node_id: int | None = None,
        max_depth: int | None = None,
    ) -> dict[int, str]:
        """Map of catalog id -> catalog name for every leaf under the root."""
        result = await self.discover_detailed(root_node_id, max_depth)
        return result.catalogs

    async def discover_detailed(
        self,
        root_node_id: int | None = None,
        max_depth: int | None = None,
    ) -> DiscoveryResult:
        root = settings.DISCOVERY_ROOT_NODE if root_node_id is None else root_node_id
        depth_limit = settings.DISCOVERY_MAX_DEPTH if max_depth is None else max_depth

        result = DiscoveryResult()
        if depth_limit <= 0:
            return result

        visited: set[int] = set()
        logger.info("discovery_start", root_node_id=root, max_depth=depth_limit)
        await self._expand(root, 1, depth_limit, visited, result)
        result.visited = len(visited)

        logger.info(
            "discovery_complete",
            root_node_id=root,
            catalogs=len(result.catalogs),
            nodes_visited=result.visited,
            failed_nodes=len(result.failed_nodes),
        )
        return result

    async def _expand(
        self,
        node_id: int,
        depth: int,
        max_depth: int,
        visited: set[int],
        result: DiscoveryResult,
    ) -> None:
        if node_id in visited:
            return
        visited.add(node_id)

        try:
            children = await self.fetch_children(node_id)
        except DiscoveryError as e:
            logger.warning("discovery_node_failed", node_id=node_id, depth=depth, error=str(e))
            result.failed_nodes.append(node_id)
            return
        finally:
            if self._delay > 0:
                await self._sleep(self._delay)

        for child in children:
            if child.id <= 0:
                continue
            if child.is_leaf:
                result.catalogs.setdefault(child.id, child.name or f"Catalog {child.id}")
            elif depth + 1 <= max_depth:
                await self._expand(child.id, depth + 1, max_depth, visited, result)
