"""HTTP layer: fixed browser headers, bounded timeout, no retries."""

import logging

import httpx

from .errors import FetchError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0

# Sent verbatim on every request; not configurable.
REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/95.0.4638.54 Safari/537.36"
    ),
    "accept-language": "en-GB,en-US;q=0.9,en;q=0.8,ru;q=0.7,kk;q=0.6",
    "accept-encoding": "gzip, deflate, br",
}


def build_client() -> httpx.AsyncClient:
    """Create the HTTP client a single job uses for all of its requests."""
    return httpx.AsyncClient(
        headers=REQUEST_HEADERS,
        timeout=REQUEST_TIMEOUT,
        follow_redirects=True,
    )


async def fetch_page(client: httpx.AsyncClient, url: str) -> bytes:
    """GET url and return the full response body. Raises FetchError on any failure."""
    logger.debug("Fetching %s", url)
    try:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            return await response.aread()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise FetchError(url, e) from e
