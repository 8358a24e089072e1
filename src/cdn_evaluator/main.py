"""Main entry point for the CDN evaluator."""

import argparse
import asyncio
import json
import logging
import random
import sys
from dataclasses import asdict
from pathlib import Path

from .agent.crawl_agent import CrawlAgent
from .config.loader import Config, load_config
from .errors import EvaluatorError
from .models.analysis_result import AnalysisResult
from .models.crawl_state import CrawlPhase, CrawlState
from .tools.analyze_tool import (
    analyze_capture,
    analyze_delivery_url,
    analyze_markup,
    analyze_site_page,
)
from .tools.fetch_tool import RelayClient
from .tools.probe_tool import estimate_savings, probe_sizes

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "config/config.yaml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Score a website's use of CDN media optimization features"
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help=f"Path to config file (YAML or JSON); defaults to {DEFAULT_CONFIG} if present",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Write the JSON result to this file instead of stdout",
    )
    parser.add_argument(
        "--probe-sizes",
        action="store_true",
        help="Probe asset sizes and add advisory savings estimates",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    har = sub.add_parser("har", help="Analyze a HAR capture file")
    har.add_argument("path")
    html = sub.add_parser("html", help="Analyze a markup file ('-' for stdin)")
    html.add_argument("path")
    url = sub.add_parser("url", help="Analyze a single delivery URL")
    url.add_argument("url")
    page = sub.add_parser("page", help="Fetch and analyze one page through the relay")
    page.add_argument("site")
    site = sub.add_parser("site", help="Sample a site's pages via its sitemap and analyze them")
    site.add_argument("site")
    site.add_argument("--no-sitemap", action="store_true", help="Analyze only the given page")
    site.add_argument("--seed", type=int, default=None, help="Seed for page sampling")
    return parser


def resolve_config(path: str | None) -> Config:
    """Explicit config file, else the project's default file, else built-in defaults."""
    if path:
        return load_config(path)
    project_root = Path(__file__).resolve().parent.parent.parent
    default = project_root / DEFAULT_CONFIG
    if default.exists():
        return load_config(default)
    return Config()


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


async def _run_site(args: argparse.Namespace, config: Config) -> CrawlState:
    def report(state: CrawlState) -> None:
        if state.phase is CrawlPhase.FETCHING_PAGE and state.current_page is not None:
            logger.debug("Progress: page %d/%d", state.current_page + 1, len(state.pages_planned))

    rng = random.Random(args.seed) if args.seed is not None else None
    agent = CrawlAgent(config, rng=rng)
    return await agent.run(args.site, use_sitemap=not args.no_sitemap, on_progress=report)


async def _run_page(site: str, config: Config) -> AnalysisResult:
    async with RelayClient(config) as relay:
        return await analyze_site_page(site, relay, config)


def _savings(result: AnalysisResult, config: Config) -> list[dict]:
    sizes = asyncio.run(probe_sizes([a.url for a in result.per_asset if a.issues], config))
    estimates = []
    for asset in result.per_asset:
        size = sizes.get(asset.url)
        estimate = estimate_savings(asset, size, config.scoring) if size else None
        if estimate:
            estimates.append(asdict(estimate))
    return estimates


def main() -> int:
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        config = resolve_config(args.config)
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 1

    try:
        if args.command == "har":
            result = analyze_capture(_read_text(args.path), config)
        elif args.command == "html":
            result = analyze_markup(_read_text(args.path), config)
        elif args.command == "url":
            result = analyze_delivery_url(args.url, config)
        elif args.command == "page":
            result = asyncio.run(_run_page(args.site, config))
        else:
            state = asyncio.run(_run_site(args, config))
            if state.phase is CrawlPhase.FAILED:
                print(state.error or "Crawl failed", file=sys.stderr)
                return 1
            result = state.result
    except EvaluatorError as e:
        print(str(e), file=sys.stderr)
        return 1

    payload = result.model_dump(mode="json") if result else {}
    if args.command == "site":
        payload["failed"] = [f.model_dump() for f in state.failed]
    if result and args.probe_sizes:
        payload["savings_estimates"] = _savings(result, config)

    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Score {result.score if result else 0}. Result saved to {args.output}")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
