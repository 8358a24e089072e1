"""Configuration loader for the CDN evaluator."""

import json
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

RELAY_URL_ENV = "CDN_EVALUATOR_RELAY_URL"


class CrawlLimits(BaseModel):
    """Crawl sampling and pacing limits."""

    max_sample_pages: int = Field(default=10, ge=1)
    page_timeout_seconds: float = Field(default=20.0, gt=0)
    inter_page_delay_seconds: float = Field(default=1.0, ge=0)
    use_sitemap: bool = Field(default=True)


class RelayConfig(BaseModel):
    """Where the CORS-bypass relay lives."""

    url: Optional[str] = Field(default=None)
    url_param: str = Field(default="url")
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    def resolved_url(self) -> Optional[str]:
        """Configured relay URL, falling back to the environment."""
        return self.url or os.environ.get(RELAY_URL_ENV) or None


class RetryPolicy(BaseModel):
    """Retry configuration for transient connect failures."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=2.0, ge=0)


class ScoringPolicy(BaseModel):
    """Thresholds and advisory savings estimates.

    The savings percentages are asserted estimates, not measurements.
    """

    adoption_threshold: float = Field(default=0.8, ge=0, le=1)
    savings_estimates: dict[str, float] = Field(
        default_factory=lambda: {
            "enable-auto-format": 0.25,
            "enable-auto-quality": 0.15,
            "add-responsive-sizing": 0.10,
        }
    )


class ProbeConfig(BaseModel):
    """Asset-size probe settings."""

    timeout_seconds: float = Field(default=10.0, gt=0)
    range_fallback_delay_seconds: float = Field(default=0.25, ge=0)
    max_assets: int = Field(default=50, ge=1)


class Config(BaseModel):
    """Full system configuration."""

    crawl_limits: CrawlLimits = Field(default_factory=CrawlLimits)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    scoring: ScoringPolicy = Field(default_factory=ScoringPolicy)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    user_agent: str = Field(default="Mozilla/5.0 (compatible; CdnEvaluator/1.0)")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load config from dictionary."""
        return cls(**data)


def load_config(path: str | Path) -> Config:
    """Load configuration from file (YAML or JSON)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        content = f.read()

    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(content) or {}
    else:
        data = json.loads(content)

    return Config.from_dict(data)
