"""Tests for the crawl agent: sampling, sequencing, failures and cancellation."""

import asyncio
import random

import httpx
import pytest

from cdn_evaluator.agent.crawl_agent import CancellationToken, CrawlAgent
from cdn_evaluator.config.loader import Config, CrawlLimits, RelayConfig, RetryPolicy
from cdn_evaluator.models import CrawlPhase

from conftest import RELAY_URL, html_page, relay_for

ORIGIN = "https://shop.example.com"


def urlset(*urls: str) -> str:
    body = "".join(f"<url><loc>{u}</loc></url>" for u in urls)
    return f'<?xml version="1.0"?><urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{body}</urlset>'


def page_markup(i: int) -> str:
    return html_page(
        f"https://res.cloudinary.com/demo/image/upload/f_auto,q_auto/p{i}.jpg",
        f"/static/p{i}.png",
    )


def site(n: int) -> tuple[list[str], dict]:
    pages = [f"{ORIGIN}/p/{i}" for i in range(n)]
    routes = {f"{ORIGIN}/sitemap.xml": httpx.Response(200, text=urlset(*pages))}
    for i, p in enumerate(pages):
        routes[p] = httpx.Response(200, text=page_markup(i))
    return pages, routes


def page_fetches(calls: list[str], pages: list[str]) -> list[str]:
    return [c for c in calls if c in pages]


class TestSampling:
    @pytest.mark.asyncio
    async def test_samples_ten_of_thirty_seven(self, config):
        pages, routes = site(37)
        calls: list[str] = []
        agent = CrawlAgent(config, relay=relay_for(routes, config, calls), rng=random.Random(42))

        state = await agent.run(ORIGIN)

        assert state.phase is CrawlPhase.DONE
        assert len(state.pages_planned) == 10
        assert len(set(state.pages_planned)) == 10
        assert set(state.pages_planned) <= set(pages)
        assert state.total_pages_discovered == 37
        assert page_fetches(calls, pages) == state.pages_planned

        sampling = state.result.sampling
        assert sampling.pages_sampled == 10
        assert sampling.total_pages_in_sitemap == 37
        assert sampling.percentage == "27.0"
        assert sampling.sitemap_url == f"{ORIGIN}/sitemap.xml"

        result = state.result
        assert result.coverage.cdn == 10
        assert result.coverage.non_cdn == 10
        assert result.score == 75
        assert {a.page_url for a in result.per_asset} == set(state.pages_planned)

    @pytest.mark.asyncio
    async def test_small_sitemap_takes_every_page(self, config):
        pages, routes = site(4)
        agent = CrawlAgent(config, relay=relay_for(routes, config))

        state = await agent.run(ORIGIN)

        assert state.pages_planned == pages
        assert state.result.sampling.percentage == "100.0"

    @pytest.mark.asyncio
    async def test_same_seed_same_sample(self, config):
        pages, routes = site(30)
        first = await CrawlAgent(config, relay=relay_for(routes, config), rng=random.Random(3)).run(ORIGIN)
        pages, routes = site(30)
        second = await CrawlAgent(config, relay=relay_for(routes, config), rng=random.Random(3)).run(ORIGIN)
        assert first.pages_planned == second.pages_planned


class TestFetching:
    @pytest.mark.asyncio
    async def test_pages_are_fetched_one_at_a_time(self, config):
        pages = [f"{ORIGIN}/p/{i}" for i in range(5)]
        in_flight = 0
        peak = 0

        async def slow_page(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(200, text=page_markup(0))

        routes = {f"{ORIGIN}/sitemap.xml": httpx.Response(200, text=urlset(*pages))}
        routes.update({p: slow_page for p in pages})
        state = await CrawlAgent(config, relay=relay_for(routes, config)).run(ORIGIN)

        assert state.completed == pages
        assert peak == 1

    @pytest.mark.asyncio
    async def test_one_forbidden_page_does_not_abort(self, config):
        pages, routes = site(10)
        routes[pages[4]] = httpx.Response(403, text="<html>Access denied</html>")

        state = await CrawlAgent(config, relay=relay_for(routes, config)).run(ORIGIN)

        assert state.phase is CrawlPhase.DONE
        assert len(state.failed) == 1
        assert state.failed[0].url == pages[4]
        assert state.failed[0].error
        assert "bot protection" in state.failed[0].error
        assert len(state.completed) == 9
        assert len(state.result.per_asset) == 9
        assert pages[4] not in {a.page_url for a in state.result.per_asset}
        assert state.result.sampling.failed_pages == tuple(state.failed)

    @pytest.mark.asyncio
    async def test_every_page_failing_still_completes(self, config):
        pages, _ = site(3)
        routes = {f"{ORIGIN}/sitemap.xml": httpx.Response(200, text=urlset(*pages))}

        state = await CrawlAgent(config, relay=relay_for(routes, config)).run(ORIGIN)

        assert state.phase is CrawlPhase.DONE
        assert len(state.failed) == 3
        assert state.result.score == 0
        assert state.result.per_asset == ()

    @pytest.mark.asyncio
    async def test_page_timeout_is_recorded(self):
        config = Config(
            crawl_limits=CrawlLimits(inter_page_delay_seconds=0, page_timeout_seconds=0.05),
            relay=RelayConfig(url=RELAY_URL),
            retry_policy=RetryPolicy(max_attempts=1, backoff_seconds=0),
        )
        pages, routes = site(2)

        async def hanging(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, text=page_markup(0))

        routes[pages[0]] = hanging
        state = await CrawlAgent(config, relay=relay_for(routes, config)).run(ORIGIN)

        assert [f.url for f in state.failed] == [pages[0]]
        assert state.failed[0].error.startswith("Timed out")
        assert state.completed == [pages[1]]


class TestPacing:
    @pytest.fixture
    def paced(self, config) -> Config:
        return config.model_copy(
            update={"crawl_limits": CrawlLimits(inter_page_delay_seconds=1.5, page_timeout_seconds=5)}
        )

    @pytest.fixture
    def events(self, monkeypatch) -> list[str]:
        """Relay targets and delays in the order they happen."""
        log: list[str] = []

        async def fake_sleep(delay):
            log.append(f"sleep {delay}")

        monkeypatch.setattr("cdn_evaluator.agent.crawl_agent.asyncio.sleep", fake_sleep)
        return log

    @pytest.mark.asyncio
    async def test_configured_delay_between_pages_only(self, paced, events):
        pages, routes = site(4)

        state = await CrawlAgent(paced, relay=relay_for(routes, paced, events)).run(ORIGIN)

        assert state.phase is CrawlPhase.DONE
        crawl = [e for e in events if e in state.pages_planned or e.startswith("sleep")]
        p = state.pages_planned
        assert crawl == [p[0], "sleep 1.5", p[1], "sleep 1.5", p[2], "sleep 1.5", p[3]]

    @pytest.mark.asyncio
    async def test_single_page_has_no_delay(self, paced, events):
        routes = {ORIGIN: httpx.Response(200, text=page_markup(1))}

        state = await CrawlAgent(paced, relay=relay_for(routes, paced, events)).run(ORIGIN, use_sitemap=False)

        assert state.phase is CrawlPhase.DONE
        assert events == [ORIGIN]

    @pytest.mark.asyncio
    async def test_cancel_is_checked_before_delay(self, paced, events):
        pages = [f"{ORIGIN}/p/{i}" for i in range(3)]
        token = CancellationToken()

        def first_page_cancels(request: httpx.Request) -> httpx.Response:
            token.cancel()
            return httpx.Response(200, text=page_markup(0))

        routes = {f"{ORIGIN}/sitemap.xml": httpx.Response(200, text=urlset(*pages))}
        routes.update({p: first_page_cancels for p in pages})

        state = await CrawlAgent(paced, relay=relay_for(routes, paced, events)).run(ORIGIN, cancel_token=token)

        assert state.phase is CrawlPhase.CANCELLED
        assert not [e for e in events if e.startswith("sleep")]
        assert len([e for e in events if e in pages]) == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_after_three_pages(self, config):
        pages = [f"{ORIGIN}/p/{i}" for i in range(10)]
        token = CancellationToken()
        fetched: list[str] = []

        def page(request: httpx.Request) -> httpx.Response:
            fetched.append(request.url.params["url"])
            if len(fetched) == 3:
                token.cancel()
            return httpx.Response(200, text=page_markup(len(fetched)))

        routes = {f"{ORIGIN}/sitemap.xml": httpx.Response(200, text=urlset(*pages))}
        routes.update({p: page for p in pages})

        state = await CrawlAgent(config, relay=relay_for(routes, config)).run(ORIGIN, cancel_token=token)

        assert state.phase is CrawlPhase.CANCELLED
        assert state.cancelled
        assert fetched == pages[:3]
        assert state.completed == pages[:3]
        assert state.result is None

    @pytest.mark.asyncio
    async def test_cancel_before_start_fetches_nothing(self, config):
        pages, routes = site(5)
        calls: list[str] = []
        token = CancellationToken()
        token.cancel()

        state = await CrawlAgent(config, relay=relay_for(routes, config, calls)).run(ORIGIN, cancel_token=token)

        assert state.phase is CrawlPhase.CANCELLED
        assert page_fetches(calls, pages) == []


class TestFallbackAndFailure:
    @pytest.mark.asyncio
    async def test_no_sitemap_analyzes_site_page(self, config):
        routes = {ORIGIN: httpx.Response(200, text=page_markup(1))}

        state = await CrawlAgent(config, relay=relay_for(routes, config)).run(ORIGIN)

        assert state.phase is CrawlPhase.DONE
        assert state.pages_planned == [ORIGIN]
        assert state.result.sampling is None
        assert state.result.coverage.cdn == 1

    @pytest.mark.asyncio
    async def test_sitemap_disabled_skips_discovery(self, config):
        pages, routes = site(5)
        routes[ORIGIN] = httpx.Response(200, text=page_markup(1))
        calls: list[str] = []

        state = await CrawlAgent(config, relay=relay_for(routes, config, calls)).run(ORIGIN, use_sitemap=False)

        assert calls == [ORIGIN]
        assert state.phase is CrawlPhase.DONE

    @pytest.mark.asyncio
    async def test_malformed_site_url_fails_before_network(self, config):
        calls: list[str] = []
        agent = CrawlAgent(config, relay=relay_for({}, config, calls))

        state = await agent.run("ftp://example.com")

        assert state.phase is CrawlPhase.FAILED
        assert state.is_terminal
        assert state.error
        assert state.result is None
        assert calls == []

    @pytest.mark.asyncio
    async def test_unconfigured_relay_fails(self, monkeypatch):
        monkeypatch.delenv("CDN_EVALUATOR_RELAY_URL", raising=False)
        state = await CrawlAgent(Config()).run(ORIGIN)
        assert state.phase is CrawlPhase.FAILED
        assert "Relay" in state.error

    @pytest.mark.asyncio
    async def test_malformed_relay_fails(self):
        config = Config(relay=RelayConfig(url="https://relay.example:notaport/"))
        state = await CrawlAgent(config).run(ORIGIN)
        assert state.phase is CrawlPhase.FAILED
        assert state.is_terminal
        assert "Relay URL" in state.error

    @pytest.mark.asyncio
    async def test_progress_reports_phases(self, config):
        pages, routes = site(2)
        phases: list[CrawlPhase] = []

        def record(state):
            phases.append(state.phase)
            raise RuntimeError("callback errors are logged, not raised")

        state = await CrawlAgent(config, relay=relay_for(routes, config)).run(ORIGIN, on_progress=record)

        assert state.phase is CrawlPhase.DONE
        assert state.is_terminal
        assert phases[:2] == [CrawlPhase.DISCOVERING_SITEMAP, CrawlPhase.SAMPLING_PAGES]
        assert CrawlPhase.FETCHING_PAGE in phases
        assert phases[-2:] == [CrawlPhase.COMPILING, CrawlPhase.DONE]
