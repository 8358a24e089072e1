"""Shared fixtures: configs and a relay backed by httpx.MockTransport."""

from typing import Callable, Union

import httpx
import pytest

from cdn_evaluator.config.loader import Config, CrawlLimits, RelayConfig, RetryPolicy
from cdn_evaluator.tools.fetch_tool import RelayClient

RELAY_URL = "https://relay.test/proxy"

Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


@pytest.fixture
def config() -> Config:
    """Config with no pacing delay and no retry backoff."""
    return Config(
        crawl_limits=CrawlLimits(inter_page_delay_seconds=0, page_timeout_seconds=5),
        relay=RelayConfig(url=RELAY_URL),
        retry_policy=RetryPolicy(max_attempts=1, backoff_seconds=0),
    )


def html_page(*srcs: str) -> str:
    imgs = "".join(f'<img src="{s}">' for s in srcs)
    return f"<html><body>{imgs}</body></html>"


def relay_for(routes: dict[str, Route], config: Config, calls: list[str] | None = None) -> RelayClient:
    """
    Relay client whose transport answers by target URL.
    Unknown targets get the relay's 404 JSON error.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        target = request.url.params.get("url")
        if calls is not None:
            calls.append(target)
        route = routes.get(target)
        if route is None:
            return httpx.Response(404, json={"error": "Upstream returned 404"})
        if callable(route):
            return route(request)
        return route

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RelayClient(config, client=client)
