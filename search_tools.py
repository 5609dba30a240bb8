"""
Web search tool backed by DuckDuckGo's keyless HTML endpoint.

One call to search_web() issues exactly one GET request. Nothing is cached
and nothing is retried; every call is independent.
"""

import logging
from dataclasses import dataclass
from itertools import islice
from typing import Iterable, Iterator
from urllib.parse import parse_qs, urljoin, urlparse

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

logger = logging.getLogger(__name__)

SEARCH_URL = "https://html.duckduckgo.com/html/"
DEFAULT_TIMEOUT = 10.0

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
}

# Any of these means the page is a results page, possibly with zero hits.
RESULTS_PAGE_MARKERS = ("#links", ".results", ".serp__results", ".no-results")


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    snippet: str


class SearchError(Exception):
    """Base class for search failures."""


class NetworkFailure(SearchError):
    """Request failed: connection error, timeout or non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(NetworkFailure):
    """Search endpoint answered 429."""


class ParseFailure(SearchError):
    """Response body is not a recognizable results page."""


class EmptyResults(SearchError):
    """
    Zero results for a query.

    search_web() never raises this; it returns an empty iterator so callers
    can treat the outcome as "no evidence found".
    """


def _domain(url: str) -> str:
    return urlparse(url).netloc or "Result"


def _resolve_url(href: str) -> str | None:
    """Turn a result link into the target URL, unwrapping the uddg redirect."""
    if not href:
        return None
    url = urljoin(SEARCH_URL, href)
    parsed = urlparse(url)
    if parsed.netloc.endswith("duckduckgo.com"):
        target = parse_qs(parsed.query).get("uddg")
        if not target:
            return None
        url = target[0]
    if not url.startswith(("http://", "https://")):
        return None
    return url


def _text(tag: Tag) -> str:
    # Inline markup such as <b> must not split words.
    return " ".join(tag.get_text().split())


def _to_result(block: Tag) -> SearchResult | None:
    if "result--ad" in block.get("class", []):
        return None

    link = block.select_one("a.result__a")
    if link is None:
        return None

    url = _resolve_url(link.get("href", ""))
    if url is None:
        return None

    snippet = block.select_one(".result__snippet")
    return SearchResult(
        title=_text(link) or _domain(url),
        url=url,
        snippet=_text(snippet) if snippet else "",
    )


def parse_results_page(html: str) -> list[Tag]:
    """
    Split a DuckDuckGo HTML page into result blocks.

    Returns:
        Result blocks in page order (empty for a zero-result page).

    Raises:
        ParseFailure: If the page has neither result blocks nor a results container.
    """
    soup = BeautifulSoup(html, "html.parser")
    blocks = soup.select("div.result")
    if blocks:
        return blocks
    if any(soup.select_one(marker) for marker in RESULTS_PAGE_MARKERS):
        return []
    raise ParseFailure("Response is not a DuckDuckGo results page")


def search_web(
    query: str,
    limit: int,
    *,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Iterator[SearchResult]:
    """
    Search the web via DuckDuckGo.

    The request and page parse happen before this returns, so failures are
    raised here. Records are built as the iterator is consumed.

    Args:
        query: Search query string
        limit: Maximum number of results (must be positive)
        session: Shared HTTP session; a one-off request is made if omitted
        timeout: Seconds to wait for the endpoint

    Returns:
        Iterator over at most `limit` results, in relevance order.

    Raises:
        NetworkFailure: Connection error, timeout or non-2xx status
        ParseFailure: Body could not be parsed as a results page
    """
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")

    http = session or requests
    logger.debug("GET %s q=%r timeout=%s", SEARCH_URL, query, timeout)
    try:
        response = http.get(
            SEARCH_URL, params={"q": query}, headers=HEADERS, timeout=timeout
        )
    except requests.RequestException as e:
        raise NetworkFailure(f"Search request failed: {e}") from e

    status = response.status_code
    if status == 429:
        raise RateLimited("Rate limited by search provider, try again later", status)
    if not 200 <= status < 300:
        raise NetworkFailure(f"Search endpoint returned HTTP {status}", status)

    blocks = parse_results_page(response.text)
    if not blocks:
        logger.warning("No search results for %r", query)
    else:
        logger.info("Search for %r returned %d result blocks", query, len(blocks))

    results = (r for r in map(_to_result, blocks) if r is not None)
    return islice(results, limit)


def format_results(query: str, results: Iterable[SearchResult]) -> str:
    """Render results as a numbered Markdown list."""
    lines = []
    for i, r in enumerate(results, start=1):
        lines.append(f"{i}. **{r.title}**")
        if r.snippet:
            lines.append(f"   {r.snippet}")
        lines.append(f"   URL: {r.url}")
        lines.append("")

    if not lines:
        return f"No results found for: {query}"
    return "\n".join(lines).rstrip()
