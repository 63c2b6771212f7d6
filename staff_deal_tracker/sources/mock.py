from __future__ import annotations

import zlib

from staff_deal_tracker.models import Author, Platform, Post, Stats
from staff_deal_tracker.utils import now_ms


_HOUR_MS = 60 * 60 * 1000


def mock_posts(platform: Platform, keyword: str, limit: int, *, now: int | None = None) -> list[Post]:
    """
    Used when a platform call fails.
    Same shape as real output so downstream stages do not care where a post came from;
    only `synthetic=True` tells them apart.
    """
    now = now if now is not None else now_ms()
    key = f"{zlib.crc32(keyword.encode('utf-8')):08x}"
    posts: list[Post] = []
    for i in range(max(0, int(limit))):
        posts.append(
            Post(
                id=f"mock-{platform.value}-{key}-{i}",
                title=f"{keyword}相关好物{i + 1}",
                content=f"这是一个关于{keyword}的优质商品，性价比很高，值得购买！",
                source=platform,
                publish_time=now - i * 6 * _HOUR_MS,
                author=Author(
                    id=f"user_{i}",
                    name=f"用户{i + 1}",
                    avatar_url=f"https://picsum.photos/seed/avatar{i}/100/100.jpg",
                ),
                images=(f"https://picsum.photos/seed/product{i}/400/300.jpg",),
                tags=(keyword, "好物推荐", "性价比"),
                stats=Stats(
                    likes=(i * 137) % 1000,
                    comments=(i * 29) % 100,
                    shares=(i * 7) % 50,
                    collects=(i * 53) % 200,
                ),
                synthetic=True,
            )
        )
    return posts
