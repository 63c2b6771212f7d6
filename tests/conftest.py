from __future__ import annotations

from dataclasses import replace

import pytest

from staff_deal_tracker.config import SourceConfig, TrackerConfig
from staff_deal_tracker.models import Platform, Post
from staff_deal_tracker.signals import enrich
from staff_deal_tracker.sources.base import SourceClient


def make_post(
    id: str = "p1",
    title: str = "员工内购专场来啦",
    content: str = "公司内购活动，全场9折，数量有限先到先得哦",
    source: Platform = Platform.XIAOHONGSHU,
    **kwargs,
) -> Post:
    kwargs.setdefault("publish_time", 1_700_000_000_000)
    return Post(id=id, title=title, content=content, source=source, **kwargs)


@pytest.fixture
def post_factory():
    return make_post


class FakeClient(SourceClient):
    """Serves canned posts without touching the network."""

    def __init__(
        self,
        platform: Platform,
        posts: list[Post] | None = None,
        *,
        enabled: bool = True,
        fail: bool = False,
        interval_seconds: float = 0.0,
    ):
        self.platform = platform
        super().__init__(
            SourceConfig(
                enabled=enabled,
                interval_seconds=interval_seconds,
                keywords=("内购",),
                per_keyword_limit=5,
                trending_limit=5,
                rate_limit_interval_seconds=0,
            )
        )
        self.posts = posts if posts is not None else [make_post(id=f"{platform.value}-1", source=platform)]
        self.fail = fail
        self.calls = 0

    def fetch_by_keyword(self, keyword: str, limit: int = 20) -> list[Post]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("boom")
        return [enrich(p) for p in self.posts]

    def fetch_trending(self, category: str = "all", limit: int = 20) -> list[Post]:
        return []

    def _search_request(self, keyword, limit):
        raise NotImplementedError

    def _trending_request(self, category, limit):
        raise NotImplementedError

    def _extract_items(self, payload, kind):
        raise NotImplementedError

    def _parse_item(self, item):
        raise NotImplementedError


@pytest.fixture
def fast_config() -> TrackerConfig:
    """Default config with no chaining delay and no throttling."""
    base = TrackerConfig()
    sources = {p: replace(c, rate_limit_interval_seconds=0.0) for p, c in base.sources.items()}
    return replace(base, sources=sources, scheduler=replace(base.scheduler, chain_delay_seconds=0))
