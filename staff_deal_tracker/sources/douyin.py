from __future__ import annotations

from typing import Any

from staff_deal_tracker.errors import SourceUnavailable
from staff_deal_tracker.models import Author, Platform, Post, Stats
from staff_deal_tracker.sources.base import DEFAULT_HEADERS, SourceClient
from staff_deal_tracker.utils import clean_text, non_negative_int, now_ms, to_epoch_ms


BASE_URL = "https://www.douyin.com/aweme/v1/web"
TITLE_CHARS = 30


def _first_url(obj: dict | None) -> str:
    urls = (obj or {}).get("url_list") or []
    return urls[0] if urls else ""


class DouyinClient(SourceClient):
    """Douyin web search. Requests usually need a logged-in cookie (DOUYIN_COOKIE)."""

    platform = Platform.DOUYIN
    headers = {**DEFAULT_HEADERS, "Referer": "https://www.douyin.com/"}

    def _search_request(self, keyword: str, limit: int) -> tuple[str, dict[str, Any]]:
        return f"{BASE_URL}/general/search/single/", {
            "keyword": keyword,
            "search_channel": "aweme_general",
            "offset": 0,
            "count": limit,
        }

    def _trending_request(self, category: str, limit: int) -> tuple[str, dict[str, Any]]:
        return f"{BASE_URL}/tab/feed/", {"tag_id": category, "count": limit}

    def _extract_items(self, payload: Any, kind: str) -> list[dict]:
        if not isinstance(payload, dict):
            raise SourceUnavailable(self.platform.value, f"{kind} body is not an object")
        items = payload.get("data") if kind == "search" else payload.get("aweme_list")
        if not isinstance(items, list):
            raise SourceUnavailable(self.platform.value, f"{kind} body has no item list")
        return [it.get("aweme_info", it) for it in items if isinstance(it, dict)]

    def _parse_item(self, item: dict) -> Post | None:
        aweme_id = item.get("aweme_id")
        if not aweme_id:
            return None
        desc = clean_text(item.get("desc") or "")
        author = item.get("author") or {}
        stats = item.get("statistics") or {}
        cover = _first_url(((item.get("video") or {}).get("cover")))
        return Post(
            id=str(aweme_id),
            title=desc.split(" #")[0][:TITLE_CHARS],
            content=desc,
            source=self.platform,
            publish_time=to_epoch_ms(item.get("create_time")) or now_ms(),
            author=Author(
                id=str(author.get("uid") or ""),
                name=author.get("nickname") or "",
                avatar_url=_first_url(author.get("avatar_thumb")),
                type="official" if author.get("enterprise_verify_reason") else "",
                followers=non_negative_int(author.get("follower_count")),
            ),
            images=(cover,) if cover else (),
            tags=tuple(dict.fromkeys(t["hashtag_name"] for t in (item.get("text_extra") or []) if t.get("hashtag_name"))),
            stats=Stats(
                likes=non_negative_int(stats.get("digg_count")),
                comments=non_negative_int(stats.get("comment_count")),
                shares=non_negative_int(stats.get("share_count")),
                collects=non_negative_int(stats.get("collect_count")),
            ),
            url=f"https://www.douyin.com/video/{aweme_id}",
        )
