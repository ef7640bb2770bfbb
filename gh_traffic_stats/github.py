#!/usr/bin/env python3
"""
GitHub API client for repository lists and traffic statistics.

Every request is preceded by a fixed sleep so the API is never hit in bursts,
and every response body is cached on disk through CacheStore before it is
decoded.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import requests

from .cache import CacheKey, CacheStore, metric_key, page_key
from .exceptions import DecodeError, FetchError
from .models import DailyCounter, MetricKind, Repository

GITHUB_API_URL = "https://api.github.com"

# Sleep time between HTTP requests
# https://docs.github.com/en/rest/overview/resources-in-the-rest-api#rate-limiting
DEFAULT_RATE_LIMIT_DELAY = 0.3

DEFAULT_TIMEOUT = 30

# How many repositories to list per JSON page
DEFAULT_PER_PAGE = 100


@dataclass
class ClientConfig:
    """Settings for the GitHub HTTP client, built once per run."""
    token: str
    user_agent: str = "gh-traffic-stats"
    timeout: float = DEFAULT_TIMEOUT
    rate_limit_delay: float = DEFAULT_RATE_LIMIT_DELAY
    api_url: str = GITHUB_API_URL
    per_page: int = DEFAULT_PER_PAGE

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": self.user_agent,
        }


def _split_link_segments(value: str) -> Iterator[str]:
    """Split a Link header on commas that are outside <...> and quotes."""
    start = 0
    in_url = False
    in_quotes = False
    for i, ch in enumerate(value):
        if ch == '"' and not in_url:
            in_quotes = not in_quotes
        elif ch == "<" and not in_quotes:
            in_url = True
        elif ch == ">" and not in_quotes:
            in_url = False
        elif ch == "," and not in_url and not in_quotes:
            yield value[start:i]
            start = i + 1
    yield value[start:]


def parse_link_header(value: Optional[str]) -> Dict[str, str]:
    """
    Parse an RFC 8288 ``Link`` header into a mapping of relation to URL.

    Accepts segments of the form ``<url>; rel="name"; other=param`` in any
    order. A rel value may list several space separated relations. Segments
    that do not start with ``<url>`` are ignored.
    """
    links: Dict[str, str] = {}
    if not value:
        return links

    for segment in _split_link_segments(value):
        params = segment.split(";")
        target = params[0].strip()
        if not (target.startswith("<") and target.endswith(">")):
            continue
        url = target[1:-1].strip()

        for param in params[1:]:
            name, sep, raw = param.partition("=")
            if not sep or name.strip().lower() != "rel":
                continue
            for rel in raw.strip().strip('"').split():
                links.setdefault(rel.lower(), url)
    return links


def _decode_json(payload: bytes, context: str) -> Any:
    if not payload.strip():
        raise FetchError(f"empty: {context}")
    try:
        return json.loads(payload)
    except ValueError as e:
        raise DecodeError(f"invalid JSON for {context}: {e}") from e


class GitHubFetcher:
    """Fetches repository lists and daily traffic, cache first."""

    def __init__(self, config: ClientConfig, cache: CacheStore,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the fetcher.

        Args:
            config: HTTP client settings (token, timeout, delay, ...)
            cache: Cache for raw response bodies
            session: Optional preconfigured requests session
            sleep: Blocking sleep used for rate limiting
        """
        self.config = config
        self.cache = cache
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update(config.headers())
        self.request_count = 0
        self.logger = logging.getLogger(__name__)

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _request(self, path: str, params: Dict[str, Any], context: str) -> requests.Response:
        """Issue one rate-limited GET and validate the response."""
        url = f"{self.config.api_url}{path}"

        # Do not flood the GitHub API
        self.sleep(self.config.rate_limit_delay)

        self.logger.debug(f"GET {url} {params}")
        self.request_count += 1
        try:
            response = self.session.get(url, params=params, timeout=self.config.timeout)
        except requests.RequestException as e:
            raise FetchError(f"request failed for {context}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise FetchError(f"status: {response.status_code} for {context}")
        if not response.content or not response.content.strip():
            raise FetchError(f"empty: {context}")
        return response

    def _fetch_cached(self, key: CacheKey, path: str, params: Dict[str, Any],
                      context: str) -> Tuple[bytes, Optional[requests.Response]]:
        """
        Return the body for ``key``, from cache when fresh.

        The response object is returned only when the body came from the
        network; it is None for cache hits.
        """
        payload = self.cache.get(key)
        if payload is not None:
            self.logger.debug(f"Cache hit for {context}")
            return payload, None

        response = self._request(path, params, context)
        payload = response.content
        self.cache.put(key, payload)
        return payload, response

    def _get_repos_page(self, owner: str, page: int) -> Tuple[List[Repository], bool]:
        """Fetch one page of the owner's repositories and whether another follows."""
        context = f"{owner} (page {page})"
        params = {
            "type": "all",
            "sort": "created",
            "direction": "asc",
            "per_page": self.config.per_page,
            "page": page,
        }
        payload, response = self._fetch_cached(
            page_key(owner, page), f"/users/{owner}/repos", params, context
        )

        data = _decode_json(payload, context)
        if not isinstance(data, list):
            raise DecodeError(f"expected a list of repositories for {context}")
        repos = [Repository.from_github_entry(entry) for entry in data]

        if response is not None:
            has_next = "next" in parse_link_header(response.headers.get("Link"))
        else:
            # The Link header is not cached; a full page means there may be more
            has_next = len(data) >= self.config.per_page
        return repos, has_next

    def list_resources(self, owner: str) -> List[Repository]:
        """Get every repository of ``owner``, following pagination."""
        repos: List[Repository] = []
        page = 1

        while True:
            page_repos, has_next = self._get_repos_page(owner, page)
            repos.extend(page_repos)
            self.logger.info(f"Fetched {len(page_repos)} repositories for {owner} (page {page})")
            if not has_next:
                break
            page += 1

        return repos

    def daily_counters(self, owner: str, repo: str, kind: MetricKind) -> List[DailyCounter]:
        """Get the per-day traffic of one repository. Aggregate totals are dropped."""
        context = f"{kind.value} {owner}/{repo}"
        payload, _ = self._fetch_cached(
            metric_key(owner, repo, kind),
            f"/repos/{owner}/{repo}/traffic/{kind.value}",
            {"per": "day"},
            context,
        )

        data = _decode_json(payload, context)
        if not isinstance(data, dict) or not isinstance(data.get(kind.value), list):
            raise DecodeError(f"unexpected response shape for {context}")
        return [DailyCounter.from_github_entry(entry) for entry in data[kind.value]]
