"""Crawl agent - sample a site's pages and score their combined media."""

import asyncio
import logging
import random
from typing import Callable, Optional

from ..config.loader import Config
from ..errors import EvaluatorError, ValidationFailure
from ..models.analysis_result import PageFailure
from ..models.asset_reference import AssetReference
from ..models.crawl_state import CrawlPhase, CrawlState
from ..tools.extract_tool import extract_from_markup
from ..tools.fetch_tool import RelayClient, site_origin, validate_site_url
from ..tools.score_tool import finalize, sampling_info
from ..tools.sitemap_tool import SitemapResult, discover_sitemap

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[CrawlState], None]


class CancellationToken:
    """Cooperative cancellation flag, checked only between fetches and delays."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class CrawlAgent:
    """
    Crawl agent orchestrates one site analysis:
    discover sitemap → sample pages → fetch each page → compile one result.

    Pages are fetched strictly one at a time with a fixed delay between them,
    to keep load on the target site low. Every invocation of ``run`` owns its
    own CrawlState; do not start a second run on the same agent while one is active.
    """

    def __init__(
        self,
        config: Config,
        relay: RelayClient | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config
        self.relay = relay
        self.rng = rng or random.Random()

    async def run(
        self,
        site_url: str,
        cancel_token: CancellationToken | None = None,
        use_sitemap: bool | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> CrawlState:
        """Run a crawl and return its final state (Done, Cancelled or Failed)."""
        state = CrawlState(site_url=str(site_url))
        token = cancel_token or CancellationToken()
        if use_sitemap is None:
            use_sitemap = self.config.crawl_limits.use_sitemap

        # Validation happens before any network activity
        try:
            state.site_url = validate_site_url(site_url)
            relay = self.relay or RelayClient(self.config)
        except ValidationFailure as e:
            logger.error("Crawl rejected: %s", e)
            state.error = str(e)
            return self._transition(state, CrawlPhase.FAILED, on_progress)

        try:
            sitemap = await self._discover(state, relay, use_sitemap, on_progress)
            self._sample(state, sitemap, on_progress)
            references, total_requests = await self._fetch_pages(state, relay, token, on_progress)
            if token.cancelled:
                return self._cancel(state, on_progress)
            return self._compile(state, references, total_requests, sitemap is not None, on_progress)
        finally:
            if self.relay is None:
                await relay.aclose()

    def _transition(
        self,
        state: CrawlState,
        phase: CrawlPhase,
        on_progress: ProgressCallback | None,
    ) -> CrawlState:
        state.phase = phase
        if state.is_terminal:
            logger.debug("Crawl of %s finished: %s", state.site_url, phase.value)
        self._notify(state, on_progress)
        return state

    @staticmethod
    def _notify(state: CrawlState, on_progress: ProgressCallback | None) -> None:
        if on_progress is None:
            return
        try:
            on_progress(state)
        except Exception as e:
            logger.warning("Progress callback failed: %s", e)

    def _cancel(self, state: CrawlState, on_progress: ProgressCallback | None) -> CrawlState:
        logger.info("Crawl cancelled after %d of %d pages", len(state.completed) + len(state.failed),
                    len(state.pages_planned))
        state.cancelled = True
        state.result = None
        return self._transition(state, CrawlPhase.CANCELLED, on_progress)

    async def _discover(
        self,
        state: CrawlState,
        relay: RelayClient,
        use_sitemap: bool,
        on_progress: ProgressCallback | None,
    ) -> Optional[SitemapResult]:
        if not use_sitemap:
            logger.info("Sitemap disabled; analyzing %s only", state.site_url)
            return None
        self._transition(state, CrawlPhase.DISCOVERING_SITEMAP, on_progress)
        sitemap = await discover_sitemap(site_origin(state.site_url), relay.fetch_text)
        if sitemap:
            state.sitemap_url = sitemap.sitemap_url
        return sitemap

    def _sample(
        self,
        state: CrawlState,
        sitemap: Optional[SitemapResult],
        on_progress: ProgressCallback | None,
    ) -> CrawlState:
        """Plan the pages to fetch: a uniform sample without replacement, or the site URL alone."""
        self._transition(state, CrawlPhase.SAMPLING_PAGES, on_progress)
        if sitemap is None:
            state.pages_planned = [state.site_url]
            return state

        pages = list(dict.fromkeys(sitemap.page_urls))
        state.total_pages_discovered = len(pages)
        limit = self.config.crawl_limits.max_sample_pages
        if len(pages) > limit:
            state.pages_planned = self.rng.sample(pages, limit)
        else:
            state.pages_planned = pages
        logger.info("Sampling %d of %d pages from %s",
                    len(state.pages_planned), len(pages), sitemap.sitemap_url)
        return state

    async def _fetch_pages(
        self,
        state: CrawlState,
        relay: RelayClient,
        token: CancellationToken,
        on_progress: ProgressCallback | None,
    ) -> tuple[list[AssetReference], int]:
        """Fetch planned pages sequentially; a failed page is recorded and skipped."""
        limits = self.config.crawl_limits
        references: list[AssetReference] = []
        total_requests = 0
        planned = state.pages_planned

        for idx, page_url in enumerate(planned):
            if token.cancelled:
                break
            state.current_page = idx
            self._transition(state, CrawlPhase.FETCHING_PAGE, on_progress)
            logger.info("[%d/%d] Fetching %s", idx + 1, len(planned), page_url)
            try:
                page = await asyncio.wait_for(relay.fetch(page_url), limits.page_timeout_seconds)
                extraction = extract_from_markup(page.html, page_url=page_url)
            except asyncio.TimeoutError:
                message = f"Timed out after {limits.page_timeout_seconds:g}s"
                logger.warning("[%d/%d] %s: %s", idx + 1, len(planned), page_url, message)
                state.failed.append(PageFailure(url=page_url, error=message))
            except EvaluatorError as e:
                logger.warning("[%d/%d] %s: %s", idx + 1, len(planned), page_url, e)
                state.failed.append(PageFailure(url=page_url, error=str(e) or type(e).__name__))
            else:
                references.extend(extraction.references)
                total_requests += extraction.total_requests
                state.completed.append(page_url)
                logger.info("[%d/%d] Found %d media assets on %s",
                            idx + 1, len(planned), len(extraction.references), page_url)
            self._notify(state, on_progress)

            if idx < len(planned) - 1:
                if token.cancelled:
                    break
                await asyncio.sleep(limits.inter_page_delay_seconds)

        return references, total_requests

    def _compile(
        self,
        state: CrawlState,
        references: list[AssetReference],
        total_requests: int,
        sampled: bool,
        on_progress: ProgressCallback | None,
    ) -> CrawlState:
        self._transition(state, CrawlPhase.COMPILING, on_progress)
        sampling = None
        if sampled:
            sampling = sampling_info(
                state.pages_planned,
                state.total_pages_discovered,
                sitemap_url=state.sitemap_url,
                failed_pages=state.failed,
            )
        state.result = finalize(references, total_requests, sampling=sampling, policy=self.config.scoring)
        logger.info("Crawl complete: %d pages analyzed, %d failed, score %d",
                    len(state.completed), len(state.failed), state.result.score)
        return self._transition(state, CrawlPhase.DONE, on_progress)
