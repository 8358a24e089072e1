"""Crawl phases and per-invocation crawl state."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .analysis_result import AnalysisResult, PageFailure


class CrawlPhase(str, Enum):
    """Orchestrator phases. All transitions are made by the crawl agent."""

    IDLE = "Idle"
    DISCOVERING_SITEMAP = "DiscoveringSitemap"
    SAMPLING_PAGES = "SamplingPages"
    FETCHING_PAGE = "FetchingPage"
    COMPILING = "Compiling"
    DONE = "Done"  # terminal
    CANCELLED = "Cancelled"  # terminal
    FAILED = "Failed"  # terminal


# Terminal phases - no further transitions
TERMINAL_PHASES = {CrawlPhase.DONE, CrawlPhase.CANCELLED, CrawlPhase.FAILED}


class CrawlState(BaseModel):
    """Mutable state owned by exactly one crawl invocation."""

    site_url: str
    phase: CrawlPhase = Field(default=CrawlPhase.IDLE)
    sitemap_url: Optional[str] = None
    pages_planned: list[str] = Field(default_factory=list)
    current_page: Optional[int] = Field(None, description="Index into pages_planned")
    completed: list[str] = Field(default_factory=list)
    failed: list[PageFailure] = Field(default_factory=list)
    cancelled: bool = False
    total_pages_discovered: int = 0
    error: Optional[str] = None
    result: Optional[AnalysisResult] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES
