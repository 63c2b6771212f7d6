from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Mapping

from staff_deal_tracker.config import TrackerConfig
from staff_deal_tracker.models import Platform, Post
from staff_deal_tracker.sources.base import SourceClient
from staff_deal_tracker.sources.douyin import DouyinClient
from staff_deal_tracker.sources.weibo import WeiboClient
from staff_deal_tracker.sources.xiaohongshu import XiaohongshuClient


logger = logging.getLogger(__name__)

CLIENT_CLASSES: dict[Platform, type[SourceClient]] = {
    Platform.XIAOHONGSHU: XiaohongshuClient,
    Platform.WEIBO: WeiboClient,
    Platform.DOUYIN: DouyinClient,
}


@dataclass(frozen=True)
class CollectionResult:
    posts: list[Post]
    warnings: list[str] = field(default_factory=list)
    synthetic_sources: list[Platform] = field(default_factory=list)
    failed_sources: list[Platform] = field(default_factory=list)
    skipped_sources: list[Platform] = field(default_factory=list)


def build_clients(config: TrackerConfig) -> dict[Platform, SourceClient]:
    """One client (and so one rate limiter) per platform."""
    return {
        platform: cls(config.source(platform), credibility=config.credibility)
        for platform, cls in CLIENT_CLASSES.items()
    }


def dedupe(posts: list[Post]) -> list[Post]:
    """Collapse duplicates by (source, id); the last copy wins but keeps the first position."""
    by_key: dict[tuple[Platform, str], Post] = {}
    for p in posts:
        by_key[(p.source, p.id)] = p
    return list(by_key.values())


def collect_platform(client: SourceClient) -> list[Post]:
    """
    Keyword sweep plus one trending fetch, sequential through the client's rate limiter.
    The combined result is capped at the source's `max_results`.
    """
    cfg = client.config
    posts: list[Post] = []
    for keyword in cfg.keywords:
        if len(posts) >= cfg.max_results:
            break
        posts.extend(client.fetch_by_keyword(keyword, cfg.per_keyword_limit))
    if len(posts) < cfg.max_results:
        posts.extend(client.fetch_trending(cfg.trending_category, cfg.trending_limit))
    if len(posts) > cfg.max_results:
        logger.debug("%s capped %d posts to max_results=%d", client.platform.value, len(posts), cfg.max_results)
        posts = posts[: cfg.max_results]
    logger.info("%s collection finished with %d posts", client.platform.value, len(posts))
    return posts


def collect_all(clients: Mapping[Platform, SourceClient], config: TrackerConfig) -> CollectionResult:
    """
    Run every active client concurrently.
    A source that raises is logged and skipped; the others still count.
    """
    active = [c for c in clients.values() if c.is_active()]
    warnings: list[str] = []
    synthetic: list[Platform] = []
    failed: list[Platform] = []
    posts: list[Post] = []
    if not active:
        warnings.append("No active platforms configured; nothing collected.")
        return CollectionResult(posts=posts, warnings=warnings)

    with ThreadPoolExecutor(max_workers=len(active), thread_name_prefix="collect") as pool:
        futures = [(c, pool.submit(collect_platform, c)) for c in active]
        for client, future in futures:
            name = client.platform.value
            try:
                source_posts = future.result()
            except Exception as e:
                logger.exception("%s collection failed", name)
                warnings.append(f"{name} collection failed ({type(e).__name__}); skipped this cycle.")
                failed.append(client.platform)
                continue
            if any(p.synthetic for p in source_posts):
                warnings.append(f"{name} unreachable for some requests; using synthetic {name} data.")
                synthetic.append(client.platform)
            posts.extend(source_posts)

    if config.dedupe:
        before = len(posts)
        posts = dedupe(posts)
        logger.debug("Dedupe dropped %d posts", before - len(posts))
    return CollectionResult(posts=posts, warnings=warnings, synthetic_sources=synthetic, failed_sources=failed)
