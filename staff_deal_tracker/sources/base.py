from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests

from staff_deal_tracker.config import CredibilityConfig, SourceConfig
from staff_deal_tracker.errors import SourceUnavailable
from staff_deal_tracker.models import Platform, Post
from staff_deal_tracker.signals import DEFAULT_CREDIBILITY, enrich
from staff_deal_tracker.sources.mock import mock_posts
from staff_deal_tracker.utils import RateLimiter


logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (iPhone; CPU iPhone OS 16_6 like Mac OS X) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Mobile/15E148"
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
}


class SourceClient(ABC):
    """
    One platform's search/feed integration.

    Every fetch waits on the client's own rate limiter, then calls the platform.
    Any failure is logged and replaced by `limit` synthetic posts
    (`Post.synthetic is True`), so callers never see an exception.
    """

    platform: Platform
    headers: dict[str, str] = DEFAULT_HEADERS

    def __init__(
        self,
        config: SourceConfig,
        *,
        credibility: CredibilityConfig = DEFAULT_CREDIBILITY,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.config = config
        self.credibility = credibility
        self.rate_limiter = rate_limiter or RateLimiter(min_interval_seconds=config.rate_limit_interval_seconds)
        self.last_fetch_synthetic = False
        self.fallback_count = 0

    def is_active(self) -> bool:
        """Static capability flag from config, not a liveness probe."""
        return bool(self.config.enabled)

    def fetch_by_keyword(self, keyword: str, limit: int = 20) -> list[Post]:
        url, params = self._search_request(keyword, limit)
        return self._fetch(url, params, limit, label=keyword, kind="search")

    def fetch_trending(self, category: str = "all", limit: int = 20) -> list[Post]:
        url, params = self._trending_request(category, limit)
        return self._fetch(url, params, limit, label=f"热门{category}", kind="trending")

    # Per-platform hooks

    @abstractmethod
    def _search_request(self, keyword: str, limit: int) -> tuple[str, dict[str, Any]]:
        ...

    @abstractmethod
    def _trending_request(self, category: str, limit: int) -> tuple[str, dict[str, Any]]:
        ...

    @abstractmethod
    def _extract_items(self, payload: Any, kind: str) -> list[dict]:
        """Return the raw item list; raise SourceUnavailable if the body has no item container."""

    @abstractmethod
    def _parse_item(self, item: dict) -> Post | None:
        ...

    # Shared request / fallback path

    def _request_headers(self) -> dict[str, str]:
        headers = dict(self.headers)
        if self.config.cookie:
            headers["Cookie"] = self.config.cookie
        return headers

    def _get_json(self, url: str, params: dict[str, Any]) -> Any:
        try:
            r = requests.get(url, params=params, headers=self._request_headers(), timeout=self.config.request_timeout)
            r.raise_for_status()
            return r.json()
        except requests.RequestException as e:
            raise SourceUnavailable(self.platform.value, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise SourceUnavailable(self.platform.value, "response body is not JSON") from e

    def _fetch(self, url: str, params: dict[str, Any], limit: int, *, label: str, kind: str) -> list[Post]:
        self.rate_limiter.wait()
        try:
            payload = self._get_json(url, params)
            posts: list[Post] = []
            for item in self._extract_items(payload, kind):
                try:
                    post = self._parse_item(item)
                except (AttributeError, KeyError, TypeError, ValueError) as e:
                    raise SourceUnavailable(self.platform.value, f"malformed item: {type(e).__name__}") from e
                if post is not None:
                    posts.append(enrich(post, self.credibility))
        except SourceUnavailable as e:
            return self._fallback(label, limit, reason=e.reason)
        except Exception as e:
            logger.exception("Unexpected %s %s failure", self.platform.value, kind)
            return self._fallback(label, limit, reason=type(e).__name__)

        self.last_fetch_synthetic = False
        logger.debug("%s %s %r returned %d posts", self.platform.value, kind, label, len(posts))
        return posts[:limit]

    def _fallback(self, label: str, limit: int, *, reason: str) -> list[Post]:
        logger.warning(
            "%s fetch failed (%s); serving %d synthetic posts for %r",
            self.platform.value,
            reason,
            limit,
            label,
        )
        self.last_fetch_synthetic = True
        self.fallback_count += 1
        return [enrich(p, self.credibility) for p in mock_posts(self.platform, label, limit)]
