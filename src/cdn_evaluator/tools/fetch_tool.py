"""Fetch tool - retrieve pages through the CORS-bypass relay."""

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.loader import Config
from ..errors import NetworkFailure, ValidationFailure

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")
# A leading "name:" is a scheme unless what follows is a port, as in "localhost:8080"
SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*:(?!\d+(?:[/?#]|$))", re.I)


@dataclass
class FetchResult:
    """Result from the relay."""

    url: str
    http_status: int
    content_type: str
    html: str


def validate_site_url(url: str) -> str:
    """
    Normalize a caller-supplied site URL.
    Adds https:// when no scheme is given; rejects anything but http(s).
    """
    if not isinstance(url, str) or not url.strip():
        raise ValidationFailure("Enter a website URL first")
    url = url.strip()
    if not SCHEME_RE.match(url):
        url = f"https://{url}"
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
        parts.port  # raises on a malformed port
    except ValueError as e:
        raise ValidationFailure(f"Invalid URL: {url}") from e
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValidationFailure(f"Only http and https URLs are allowed: {url}")
    if not hostname:
        raise ValidationFailure(f"Invalid URL: {url}")
    return url


def site_origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def explain_status(status: int) -> str:
    """Human-readable explanation for a failed page fetch."""
    if status == 400:
        return "The relay rejected the request (400): the URL is missing or invalid."
    if status in (401, 403):
        return (
            f"Access denied ({status}): the site likely has bot protection "
            "blocking automated requests."
        )
    if status == 404:
        return "Page not found (404)."
    if status == 408:
        return "The site took too long to respond (408)."
    if status == 429:
        return "Rate limited (429): the site is throttling requests; try again later."
    if status >= 500:
        return f"The site or relay is having problems ({status}); it may be temporarily down."
    return f"Fetch failed with HTTP {status}."


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return None


def _check_relay_url(relay_url: str) -> None:
    try:
        url = httpx.URL(relay_url)
    except httpx.InvalidURL as e:
        raise ValidationFailure(f"Relay URL is malformed: {relay_url}") from e
    if url.scheme not in ALLOWED_SCHEMES or not url.host:
        raise ValidationFailure(f"Relay URL must be an absolute http(s) URL: {relay_url}")


class RelayClient:
    """
    Fetches target URLs through the relay: GET <relay>?url=<target>.
    Any non-2xx response, transport error or timeout raises NetworkFailure.
    """

    def __init__(
        self,
        config: Config,
        client: httpx.AsyncClient | None = None,
        relay_url: str | None = None,
    ):
        self.config = config
        self.relay_url = relay_url or config.relay.resolved_url()
        if not self.relay_url:
            raise ValidationFailure(
                "Relay URL is not configured; set relay.url or CDN_EVALUATOR_RELAY_URL"
            )
        _check_relay_url(self.relay_url)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=config.relay.request_timeout_seconds,
            follow_redirects=True,
            trust_env=False,
        )

    async def __aenter__(self) -> "RelayClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get(self, target_url: str) -> httpx.Response:
        policy = self.config.retry_policy
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(multiplier=policy.backoff_seconds, max=10),
            retry=retry_if_exception_type(httpx.ConnectError),
            reraise=True,
        ):
            with attempt:
                return await self._client.get(
                    self.relay_url,
                    params={self.config.relay.url_param: target_url},
                    headers={"Accept": "text/html", "User-Agent": self.config.user_agent},
                )
        raise NetworkFailure("Relay request was not attempted", url=target_url)

    async def fetch(self, target_url: str) -> FetchResult:
        """Fetch a target URL through the relay."""
        target_url = validate_site_url(target_url)
        logger.debug("Relay fetch %s", target_url)
        try:
            response = await self._get(target_url)
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"Timed out fetching {target_url}", url=target_url) from e
        except httpx.HTTPError as e:
            raise NetworkFailure(f"Relay unreachable: {e}", url=target_url) from e
        except httpx.InvalidURL as e:
            raise NetworkFailure(f"Relay request URL is invalid: {e}", url=target_url) from e

        if not response.is_success:
            message = explain_status(response.status_code)
            detail = _error_detail(response)
            if detail:
                message = f"{message} ({detail})"
            raise NetworkFailure(message, status_code=response.status_code, url=target_url)

        return FetchResult(
            url=target_url,
            http_status=response.status_code,
            content_type=response.headers.get("content-type", "text/html"),
            html=response.text,
        )

    async def fetch_text(self, target_url: str) -> str:
        return (await self.fetch(target_url)).html
