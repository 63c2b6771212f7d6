from __future__ import annotations

from typing import Any

from staff_deal_tracker.errors import SourceUnavailable
from staff_deal_tracker.models import Author, Platform, Post, Stats
from staff_deal_tracker.sources.base import DEFAULT_HEADERS, SourceClient
from staff_deal_tracker.utils import clean_text, non_negative_int, now_ms, to_epoch_ms


BASE_URL = "https://www.xiaohongshu.com/fe_api/burdock/weixin/v2"


class XiaohongshuClient(SourceClient):
    """
    Xiaohongshu (小红书) notes via the unofficial mini-program API.
    The endpoint is unstable; failures fall back to synthetic notes.
    """

    platform = Platform.XIAOHONGSHU
    headers = {
        **DEFAULT_HEADERS,
        "User-Agent": DEFAULT_HEADERS["User-Agent"] + " MicroMessenger/8.0.42(0x18002a2c) NetType/WIFI Language/zh_CN",
        "Referer": "https://www.xiaohongshu.com/",
    }

    def _search_request(self, keyword: str, limit: int) -> tuple[str, dict[str, Any]]:
        return f"{BASE_URL}/search/notes", {
            "keyword": keyword,
            "page": 1,
            "page_size": limit,
            "sort": "general",
            "note_type": 0,
        }

    def _trending_request(self, category: str, limit: int) -> tuple[str, dict[str, Any]]:
        return f"{BASE_URL}/feed", {
            "source": "explore",
            "category": category,
            "page": 1,
            "page_size": limit,
        }

    def _extract_items(self, payload: Any, kind: str) -> list[dict]:
        data = payload.get("data") if isinstance(payload, dict) else None
        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise SourceUnavailable(self.platform.value, f"{kind} body has no data.items")
        return items

    def _parse_item(self, item: dict) -> Post | None:
        note_id = item.get("id") or item.get("note_id")
        if not note_id:
            return None
        user = item.get("user") or {}
        interaction = item.get("interaction_info") or {}
        return Post(
            id=str(note_id),
            title=clean_text(item.get("title") or ""),
            content=clean_text(item.get("desc") or ""),
            source=self.platform,
            publish_time=to_epoch_ms(item.get("time")) or now_ms(),
            author=Author(
                id=str(user.get("user_id") or ""),
                name=user.get("nickname") or "",
                avatar_url=user.get("avatar") or "",
                type=user.get("type") or "",
                followers=non_negative_int(user.get("fans_count")),
            ),
            images=tuple(img["url"] for img in (item.get("image_list") or []) if img.get("url")),
            tags=tuple(dict.fromkeys(tag["name"] for tag in (item.get("tag_list") or []) if tag.get("name"))),
            stats=Stats(
                likes=non_negative_int(interaction.get("liked_count")),
                comments=non_negative_int(interaction.get("comment_count")),
                shares=non_negative_int(interaction.get("share_count")),
                collects=non_negative_int(interaction.get("collected_count")),
            ),
            url=f"https://www.xiaohongshu.com/explore/{note_id}",
        )
