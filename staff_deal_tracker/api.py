"""
Read API consumed by the review console.

Read-style calls go through the response cache keyed by endpoint name;
`refresh_data` clears the whole cache before recomputing.
Review-queue and collection-status reads are live, never cached.
Manual collection, review, export and config updates return result dicts with a
`success` flag instead of raising. `get_source_summary` raises UnknownPlatform
for a platform name it does not know.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone

import pandas as pd

from staff_deal_tracker.cache import ResponseCache
from staff_deal_tracker.config import TrackerConfig
from staff_deal_tracker.errors import InvalidTransition, UnknownPlatform
from staff_deal_tracker.models import Platform, Post, ReviewStatus, advance_status
from staff_deal_tracker.pipeline import CLIENT_CLASSES, build_clients
from staff_deal_tracker.scheduler import Scheduler
from staff_deal_tracker.store import CLASSIFIED, CLEANED, RAW, SYSTEM_METRICS, MemoryStore, Store
from staff_deal_tracker.utils import ms_to_iso, now_ms


logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
DATE_RANGES = {
    "last24hours": DAY_MS,
    "last7days": 7 * DAY_MS,
    "last30days": 30 * DAY_MS,
    "all": None,
}
EXPORT_FORMATS = ("json", "csv")
CSV_COLUMNS = ["id", "title", "platform", "status", "createdAt"]
SOURCE_ITEMS_LIMIT = 50


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _posts_frame(posts: list[Post]) -> pd.DataFrame:
    rows = [
        {
            "id": p.id,
            "credibility": p.credibility,
            "publish_time": p.publish_time,
            "discount_type": p.discount_info.type if p.discount_info else None,
            "brand": p.brand_info.name if p.brand_info else None,
            "synthetic": p.synthetic,
        }
        for p in posts
    ]
    return pd.DataFrame(rows, columns=["id", "credibility", "publish_time", "discount_type", "brand", "synthetic"])


def _counts(series: pd.Series, label: str, top: int | None = None) -> list[dict]:
    counts = series.dropna().value_counts()
    if top is not None:
        counts = counts.head(top)
    return [{label: name, "count": int(n)} for name, n in counts.items()]


class ReadAPI:
    def __init__(self, store: Store, scheduler: Scheduler, config: TrackerConfig, cache: ResponseCache | None = None):
        self.store = store
        self.scheduler = scheduler
        self.config = config
        self.cache = cache or ResponseCache(ttl_seconds=config.cache.ttl_seconds, max_entries=config.cache.max_entries)

    @classmethod
    def from_config(cls, config: TrackerConfig | None = None) -> "ReadAPI":
        config = config or TrackerConfig.load()
        store = MemoryStore()
        scheduler = Scheduler(store, build_clients(config), config)
        return cls(store, scheduler, config)

    def _posts(self, key: str) -> list[Post]:
        return list(self.store.get(key) or [])

    # Read-style (cached)

    def get_dashboard_summary(self) -> dict:
        return self.cache.get_or_compute("dashboard", self._dashboard_summary)

    def get_source_summary(self, source: Platform | str) -> dict:
        platform = Platform.parse(source)
        return self.cache.get_or_compute(f"source:{platform.value}", lambda: self._source_summary(platform))

    def get_system_metrics(self) -> dict:
        return self.cache.get_or_compute(
            "system_metrics",
            lambda: self.store.get(SYSTEM_METRICS) or self.scheduler.run_metrics(),
        )

    def export_report(self, format: str = "json", date_range: str = "last7days") -> dict:
        fmt = (format or "").lower()
        if fmt not in EXPORT_FORMATS:
            return {"success": False, "format": fmt, "message": f"Unsupported export format {format!r}"}
        if date_range not in DATE_RANGES:
            return {"success": False, "format": fmt, "message": f"Unsupported date range {date_range!r}"}
        try:
            content = self.cache.get_or_compute(f"export:{fmt}:{date_range}", lambda: self._render_report(fmt, date_range))
        except Exception as e:
            logger.exception("Report export failed")
            return {"success": False, "format": fmt, "error": str(e), "message": "Export failed, please retry later"}
        return {"success": True, "format": fmt, "content": content, "message": "Report generated"}

    # Live (uncached)

    def get_review_queue(self, source: Platform | str | None = None, status: ReviewStatus | str | None = None) -> list[dict]:
        """Classified posts as dicts, highest priority first; reflects reviews immediately."""
        platform = Platform.parse(source) if source is not None else None
        wanted = ReviewStatus(status) if status is not None else None
        posts = [
            p
            for p in self._posts(CLASSIFIED)
            if (platform is None or p.source == platform) and (wanted is None or p.status == wanted)
        ]
        posts.sort(key=lambda p: (p.priority or 0, p.publish_time), reverse=True)
        return [p.to_dict() for p in posts]

    def get_collection_status(self) -> dict:
        return self.scheduler.collection_status()

    # Mutating

    def update_source_config(self, source: Platform | str, overrides: dict) -> dict:
        """Apply option overrides to one platform and rebuild its client (fresh rate limiter and counters)."""
        try:
            platform = Platform.parse(source)
            config = self.config.merged({"sources": {platform.value: overrides}})
        except ValueError as e:
            logger.info("Rejected %s config update: %s", source, e)
            return {"success": False, "message": str(e)}
        client = CLIENT_CLASSES[platform](config.source(platform), credibility=config.credibility)
        self._apply_config(config, {platform: client})
        logger.info("Updated %s config: %s", platform.value, ", ".join(sorted(overrides)))
        return {"success": True, "platform": platform.value, "message": f"{platform.display_name} config updated"}

    def update_system_config(self, overrides: dict) -> dict:
        """
        Apply nested overrides (credibility, filters, scheduler, cache, monitoring,
        dedupe, sources). Clients are rebuilt when their settings or the
        credibility rules change; a cache change swaps in a new, empty cache.
        """
        try:
            config = self.config.merged(overrides)
        except ValueError as e:
            logger.info("Rejected system config update: %s", e)
            return {"success": False, "message": str(e)}
        changed = {
            p
            for p in Platform
            if config.source(p) != self.config.source(p) or config.credibility != self.config.credibility
        }
        clients = {p: CLIENT_CLASSES[p](config.source(p), credibility=config.credibility) for p in changed}
        if config.cache != self.config.cache:
            self.cache = ResponseCache(ttl_seconds=config.cache.ttl_seconds, max_entries=config.cache.max_entries)
        self._apply_config(config, clients)
        logger.info("Updated system config sections: %s", ", ".join(sorted(overrides)))
        return {"success": True, "rebuilt_clients": sorted(p.value for p in changed), "message": "Config updated"}

    def _apply_config(self, config: TrackerConfig, clients: dict) -> None:
        self.config = config
        self.scheduler.apply_config(config, clients)
        self.cache.clear()

    def refresh_data(self) -> dict:
        """Drop every cached response, run one collection + cleaning pass, return a fresh dashboard."""
        self.cache.clear()
        self.scheduler.run_collection(chain=False, force=True)
        self.scheduler.run_cleaning()
        return self.get_dashboard_summary()

    def trigger_manual_collection(self, source: Platform | str) -> dict:
        return self.scheduler.trigger_manual_collection(source)

    def submit_review(self, item_id: str, action: ReviewStatus | str, comment: str | None = None, *, source: Platform | str | None = None) -> dict:
        try:
            platform = Platform.parse(source) if source is not None else None
        except UnknownPlatform as e:
            return {"success": False, "message": str(e)}

        def apply(current: list[Post] | None) -> list[Post]:
            posts = list(current or [])
            idx = [i for i, p in enumerate(posts) if p.id == item_id and (platform is None or p.source == platform)]
            if not idx:
                raise LookupError(f"Item {item_id} not found among classified posts")
            if len(idx) > 1:
                raise LookupError(f"Item id {item_id} exists on several platforms; pass source")
            i = idx[0]
            posts[i] = advance_status(posts[i], action, comment, now_ms=now_ms())
            return posts

        try:
            self.store.update(CLASSIFIED, apply, [])
        except (LookupError, InvalidTransition) as e:
            logger.info("Review rejected for %s: %s", item_id, e)
            return {"success": False, "message": str(e)}
        return {"success": True, "message": f"Review saved for {item_id}"}

    def validate(self) -> dict:
        posts = self.scheduler.run_validation()
        valid = sum(1 for p in posts if p.is_valid)
        scores = [p.validation_score for p in posts if p.validation_score is not None]
        return {
            "total": len(posts),
            "valid": valid,
            "invalid": len(posts) - valid,
            "avg_score": round(sum(scores) / len(scores), 1) if scores else 0.0,
        }

    # Builders

    def _dashboard_summary(self) -> dict:
        raw = self._posts(RAW)
        cleaned = self._posts(CLEANED)
        classified = self._posts(CLASSIFIED)
        statuses = Counter(p.status.value for p in classified if p.status is not None)
        categories = Counter(p.category for p in classified if p.category)
        validated = [p for p in classified if p.is_valid is not None]
        avg_time = self.scheduler.avg_process_seconds
        return {
            "total": len(raw),
            "processed": len(cleaned),
            "pending": statuses.get(ReviewStatus.PENDING.value, 0),
            "approved": statuses.get(ReviewStatus.APPROVED.value, 0),
            "rejected": statuses.get(ReviewStatus.REJECTED.value, 0),
            "published": statuses.get(ReviewStatus.PUBLISHED.value, 0),
            "synthetic": sum(1 for p in raw if p.synthetic),
            "categories": dict(categories),
            "avg_credibility": round(sum(p.credibility for p in cleaned) / len(cleaned), 1) if cleaned else 0.0,
            "avg_process_time": round(avg_time, 3) if avg_time is not None else None,
            "accuracy_rate": round(100 * sum(1 for p in validated if p.is_valid) / len(validated), 1) if validated else None,
            "active_platforms": [p.display_name for p in self.scheduler.active_platforms()],
            "last_update": _now_iso(),
        }

    def _source_summary(self, platform: Platform) -> dict:
        posts = [p for p in self._posts(RAW) if p.source == platform]
        df = _posts_frame(posts)
        cutoff = now_ms() - DAY_MS
        newest = sorted(posts, key=lambda p: p.publish_time, reverse=True)[:SOURCE_ITEMS_LIMIT]
        return {
            "platform": platform.value,
            "display_name": platform.display_name,
            "total": len(posts),
            "discount_items": int(df["discount_type"].notna().sum()),
            "high_credibility": int((df["credibility"] >= self.config.credibility.high_score).sum()),
            "recent_items": int((df["publish_time"] > cutoff).sum()),
            "synthetic_items": int(df["synthetic"].astype(bool).sum()),
            "top_brands": _counts(df["brand"], "name", top=5),
            "discount_types": _counts(df["discount_type"], "type"),
            "items": [p.to_dict() for p in newest],
        }

    def _render_report(self, fmt: str, date_range: str) -> dict | str:
        window = DATE_RANGES[date_range]
        cutoff = now_ms() - window if window is not None else None

        def in_range(posts: list[Post]) -> list[Post]:
            return [p for p in posts if cutoff is None or p.publish_time >= cutoff]

        classified = in_range(self._posts(CLASSIFIED))
        if fmt == "csv":
            rows = [
                {
                    "id": p.id,
                    "title": p.title,
                    "platform": p.source.value,
                    "status": p.status.value if p.status else "",
                    "createdAt": ms_to_iso(p.publish_time),
                }
                for p in classified
            ]
            return pd.DataFrame(rows, columns=CSV_COLUMNS).to_csv(index=False)

        return {
            "generatedAt": _now_iso(),
            "dateRange": date_range,
            "summary": self._dashboard_summary(),
            "details": {
                "raw": [p.to_dict() for p in in_range(self._posts(RAW))],
                "cleaned": [p.to_dict() for p in in_range(self._posts(CLEANED))],
                "classified": [p.to_dict() for p in classified],
            },
        }
