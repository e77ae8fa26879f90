"""
Tests for catalog discovery over the get_children side channel.

The side channel is served by a respx side-effect function keyed on node_id,
so each test describes its catalog tree as a plain dict.
"""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest
import respx

from coinradar.pipeline.discovery import CatalogDiscovery, CatalogNode
from coinradar.scraper.client import FetchClient
from coinradar.scraper.errors import AuthenticationRequired, DiscoveryError
from tests.conftest import BASE_URL

ENDPOINT = "/xhr/xhr.catalog.php"


def _node(node_id: int, name: str, child_count: int = 0) -> dict:
    return {"id": node_id, "name": name, "child_count": child_count, "series_id": None}


class TreeServer:
    """Answers get_children from a {node_id: [children]} map and records requested ids."""

    def __init__(self, tree: dict[int, list[dict]], failing: set[int] | None = None) -> None:
        self.tree = tree
        self.failing = failing or set()
        self.requested: list[int] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        assert form["action"] == ["get_children"]
        node_id = int(form["node_id"][0])
        self.requested.append(node_id)
        if node_id in self.failing:
            return httpx.Response(404)
        return httpx.Response(200, json=self.tree.get(node_id, []))


@pytest.fixture
def discovery(fetch_client: FetchClient) -> CatalogDiscovery:
    return CatalogDiscovery(fetch_client, delay_ms=0)


@pytest.mark.asyncio
async def test_collects_leaves_across_levels(discovery: CatalogDiscovery) -> None:
    server = TreeServer({
        1: [_node(10, "Dollars", 2), _node(20, "Cents", 1)],
        10: [_node(8971, "Morgan Dollars"), _node(8973, "Peace Dollars")],
        20: [_node(8911, "Indian Head Cents")],
    })
    with respx.mock(base_url=BASE_URL) as mock:
        mock.post(ENDPOINT).mock(side_effect=server)
        catalogs = await discovery.discover(1, max_depth=5)

    assert catalogs == {
        8971: "Morgan Dollars",
        8973: "Peace Dollars",
        8911: "Indian Head Cents",
    }
    assert server.requested == [1, 10, 20]


@pytest.mark.asyncio
async def test_max_depth_zero_returns_empty_without_requests(discovery: CatalogDiscovery) -> None:
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as mock:
        route = mock.post(ENDPOINT).mock(return_value=httpx.Response(200, json=[]))
        catalogs = await discovery.discover(1, max_depth=0)

    assert catalogs == {}
    assert route.call_count == 0


@pytest.mark.asyncio
async def test_depth_bound_stops_expansion(discovery: CatalogDiscovery) -> None:
    """max_depth=1 expands only the root: its leaves are kept, sub-groups are not entered."""
    server = TreeServer({
        1: [_node(10, "Dollars", 1), _node(8999, "Loose Catalog")],
        10: [_node(8971, "Morgan Dollars")],
    })
    with respx.mock(base_url=BASE_URL) as mock:
        mock.post(ENDPOINT).mock(side_effect=server)
        catalogs = await discovery.discover(1, max_depth=1)

    assert catalogs == {8999: "Loose Catalog"}
    assert server.requested == [1]


@pytest.mark.asyncio
async def test_shared_child_visited_once(discovery: CatalogDiscovery) -> None:
    """Two parents referencing the same group: the group is expanded once."""
    server = TreeServer({
        1: [_node(10, "A", 1), _node(20, "B", 1)],
        10: [_node(30, "Shared", 1)],
        20: [_node(30, "Shared", 1)],
        30: [_node(8971, "Morgan Dollars")],
    })
    with respx.mock(base_url=BASE_URL) as mock:
        mock.post(ENDPOINT).mock(side_effect=server)
        catalogs = await discovery.discover(1, max_depth=5)

    assert catalogs == {8971: "Morgan Dollars"}
    assert server.requested.count(30) == 1
    assert len(server.requested) == len(set(server.requested))


@pytest.mark.asyncio
async def test_cycle_terminates(discovery: CatalogDiscovery) -> None:
    server = TreeServer({
        1: [_node(10, "A", 1)],
        10: [_node(1, "Back to root", 1), _node(8971, "Morgan Dollars")],
    })
    with respx.mock(base_url=BASE_URL) as mock:
        mock.post(ENDPOINT).mock(side_effect=server)
        catalogs = await discovery.discover(1, max_depth=10)

    assert catalogs == {8971: "Morgan Dollars"}
    assert server.requested == [1, 10]


@pytest.mark.asyncio
async def test_non_positive_ids_skipped(discovery: CatalogDiscovery) -> None:
    server = TreeServer({
        1: [_node(0, "Placeholder"), _node(-5, "Synthetic", 3), _node(8971, "Morgan Dollars")],
    })
    with respx.mock(base_url=BASE_URL) as mock:
        mock.post(ENDPOINT).mock(side_effect=server)
        catalogs = await discovery.discover(1, max_depth=5)

    assert catalogs == {8971: "Morgan Dollars"}
    assert server.requested == [1]


@pytest.mark.asyncio
async def test_failed_branch_does_not_stop_siblings(discovery: CatalogDiscovery) -> None:
    server = TreeServer(
        {
            1: [_node(10, "Broken", 1), _node(20, "Fine", 1)],
            20: [_node(8971, "Morgan Dollars")],
        },
        failing={10},
    )
    with respx.mock(base_url=BASE_URL) as mock:
        mock.post(ENDPOINT).mock(side_effect=server)
        result = await discovery.discover_detailed(1, max_depth=5)

    assert result.catalogs == {8971: "Morgan Dollars"}
    assert result.failed_nodes == [10]
    assert result.visited == 3


@pytest.mark.asyncio
async def test_auth_failure_propagates(discovery: CatalogDiscovery) -> None:
    with respx.mock(base_url=BASE_URL) as mock:
        mock.post(ENDPOINT).mock(return_value=httpx.Response(401))
        with pytest.raises(AuthenticationRequired):
            await discovery.discover(1, max_depth=3)


@pytest.mark.asyncio
async def test_login_page_on_side_channel_is_auth_failure(discovery: CatalogDiscovery, login_html: str) -> None:
    """An expired session answers 200 with the login form; discovery must not report an empty tree."""
    with respx.mock(base_url=BASE_URL) as mock:
        route = mock.post(ENDPOINT).mock(return_value=httpx.Response(200, text=login_html))
        with pytest.raises(AuthenticationRequired):
            await discovery.discover(1, max_depth=3)

    assert route.call_count == 1


@pytest.mark.asyncio
async def test_inter_call_delay(fetch_client: FetchClient) -> None:
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    discovery = CatalogDiscovery(fetch_client, delay_ms=200, sleep=fake_sleep)
    server = TreeServer({1: [_node(10, "A", 1)], 10: [_node(8971, "Morgan")]})
    with respx.mock(base_url=BASE_URL) as mock:
        mock.post(ENDPOINT).mock(side_effect=server)
        await discovery.discover(1, max_depth=5)

    assert slept == [0.2, 0.2]


# ---------------------------------------------------------------------------
# fetch_children
# ---------------------------------------------------------------------------


class TestFetchChildren:
    @pytest.mark.asyncio
    async def test_parses_nodes(self, discovery: CatalogDiscovery) -> None:
        with respx.mock(base_url=BASE_URL) as mock:
            mock.post(ENDPOINT).mock(return_value=httpx.Response(200, json=[
                {"id": "8971", "name": "Morgan Dollars", "child_count": "0", "series_id": 42},
            ]))
            nodes = await discovery.fetch_children(1)

        assert nodes == [CatalogNode(id=8971, name="Morgan Dollars", child_count=0, series_id=42)]
        assert nodes[0].is_leaf is True

    @pytest.mark.asyncio
    async def test_non_json_raises_discovery_error(self, discovery: CatalogDiscovery) -> None:
        with respx.mock(base_url=BASE_URL) as mock:
            mock.post(ENDPOINT).mock(return_value=httpx.Response(200, text="<html>oops</html>"))
            with pytest.raises(DiscoveryError):
                await discovery.fetch_children(1)

    @pytest.mark.asyncio
    async def test_non_list_raises_discovery_error(self, discovery: CatalogDiscovery) -> None:
        with respx.mock(base_url=BASE_URL) as mock:
            mock.post(ENDPOINT).mock(return_value=httpx.Response(200, json={"error": "bad"}))
            with pytest.raises(DiscoveryError):
                await discovery.fetch_children(1)

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_discovery_error(self, discovery: CatalogDiscovery) -> None:
        with respx.mock(base_url=BASE_URL) as mock:
            route = mock.post(ENDPOINT).mock(return_value=httpx.Response(503))
            with pytest.raises(DiscoveryError):
                await discovery.fetch_children(1)
        assert route.call_count == 3
