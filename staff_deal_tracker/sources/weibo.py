from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from staff_deal_tracker.errors import SourceUnavailable
from staff_deal_tracker.models import Author, Platform, Post, Stats
from staff_deal_tracker.sources.base import DEFAULT_HEADERS, SourceClient
from staff_deal_tracker.utils import clean_text, non_negative_int, now_ms


CONTAINER_URL = "https://m.weibo.cn/api/container/getIndex"
_TAG_RE = re.compile(r"<[^>]+>")
_HASHTAG_RE = re.compile(r"#([^#]+)#")
TITLE_CHARS = 30


def _parse_created_at(value: str | None) -> int | None:
    # e.g. "Sat Oct 18 10:15:00 +0800 2025"
    if not value:
        return None
    try:
        return int(datetime.strptime(value, "%a %b %d %H:%M:%S %z %Y").timestamp() * 1000)
    except ValueError:
        return None


class WeiboClient(SourceClient):
    """Weibo mobile container API. Disabled unless WEIBO_ENABLED is set."""

    platform = Platform.WEIBO
    headers = {**DEFAULT_HEADERS, "Referer": "https://m.weibo.cn/"}

    def _search_request(self, keyword: str, limit: int) -> tuple[str, dict[str, Any]]:
        return CONTAINER_URL, {"containerid": f"100103type=1&q={keyword}", "page_type": "searchall", "page": 1}

    def _trending_request(self, category: str, limit: int) -> tuple[str, dict[str, Any]]:
        return CONTAINER_URL, {"containerid": "102803", "openApp": 0, "group": category}

    def _extract_items(self, payload: Any, kind: str) -> list[dict]:
        data = payload.get("data") if isinstance(payload, dict) else None
        cards = data.get("cards") if isinstance(data, dict) else None
        if not isinstance(cards, list):
            raise SourceUnavailable(self.platform.value, f"{kind} body has no data.cards")
        items: list[dict] = []
        for card in cards:
            # search results nest posts one level deeper inside card groups
            for c in [card, *(card.get("card_group") or [])]:
                if isinstance(c.get("mblog"), dict):
                    items.append(c["mblog"])
        return items

    def _parse_item(self, item: dict) -> Post | None:
        mid = item.get("id") or item.get("mid")
        if not mid:
            return None
        raw_text = item.get("text") or ""
        text = clean_text(_TAG_RE.sub(" ", raw_text))
        user = item.get("user") or {}
        official = bool(user.get("verified")) and non_negative_int(user.get("verified_type")) >= 1
        return Post(
            id=str(mid),
            title=text[:TITLE_CHARS],
            content=text,
            source=self.platform,
            publish_time=_parse_created_at(item.get("created_at")) or now_ms(),
            author=Author(
                id=str(user.get("id") or ""),
                name=user.get("screen_name") or "",
                avatar_url=user.get("profile_image_url") or "",
                type="official" if official else "",
                followers=non_negative_int(user.get("followers_count")),
            ),
            images=tuple(p["url"] for p in (item.get("pics") or []) if p.get("url")),
            tags=tuple(dict.fromkeys(t.strip() for t in _HASHTAG_RE.findall(_TAG_RE.sub("", raw_text)) if t.strip())),
            stats=Stats(
                likes=non_negative_int(item.get("attitudes_count")),
                comments=non_negative_int(item.get("comments_count")),
                shares=non_negative_int(item.get("reposts_count")),
            ),
            url=f"https://m.weibo.cn/detail/{mid}",
        )
