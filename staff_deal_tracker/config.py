from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping

import streamlit as st

from staff_deal_tracker.models import Platform


def _get_secret(name: str) -> str | None:
    """
    Prefer Streamlit secrets, then environment variables.
    The review console runs under Streamlit; the scheduler can run as a plain process.
    """
    try:
        val = st.secrets.get(name)  # type: ignore[attr-defined]
        if isinstance(val, str) and val.strip():
            return val.strip()
    except Exception:
        # st.secrets may not be configured (e.g., running as a plain script)
        pass
    val = os.environ.get(name)
    return val.strip() if isinstance(val, str) and val.strip() else None


def _get_bool(name: str) -> bool | None:
    val = _get_secret(name)
    if val is None:
        return None
    return val.lower() in {"1", "true", "yes", "on"}


def _get_float(name: str) -> float | None:
    val = _get_secret(name)
    if val is None:
        return None
    try:
        return float(val)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-numeric %s=%r", name, val)
        return None


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or _get_secret("LOG_LEVEL") or "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


DEFAULT_KEYWORDS = (
    "内购",
    "员工折扣",
    "企业采购",
    "限时优惠",
    "品牌折扣",
    "员工福利",
    "内部价",
    "员工专享",
    "企业福利",
)


@dataclass(frozen=True)
class SourceConfig:
    enabled: bool = False
    interval_seconds: float = 600.0
    max_results: int = 30
    keywords: tuple[str, ...] = DEFAULT_KEYWORDS[:5]
    per_keyword_limit: int = 10
    trending_category: str = "shopping"
    trending_limit: int = 20
    rate_limit_interval_seconds: float = 1.0
    request_timeout: float = 10.0
    cookie: str | None = None


@dataclass(frozen=True)
class CredibilityConfig:
    """
    Additive credibility scorer settings.
    A bonus from `weights` is added when the matching signal exceeds its threshold;
    `official` has no threshold (author.type == "official").
    """

    base: int = 50
    min_score: int = 60
    high_score: int = 80
    thresholds: Mapping[str, int] = field(
        default_factory=lambda: {
            "likes": 1000,
            "comments": 100,
            "collects": 50,
            "followers": 10000,
            "title_length": 10,
            "content_length": 50,
            "images": 3,
        }
    )
    weights: Mapping[str, int] = field(
        default_factory=lambda: {
            "likes": 10,
            "comments": 10,
            "collects": 10,
            "official": 15,
            "followers": 10,
            "title_length": 5,
            "content_length": 5,
            "images": 5,
        }
    )


@dataclass(frozen=True)
class ContentFilters:
    min_title_length: int = 5
    max_title_length: int = 200
    min_content_length: int = 10
    max_content_length: int = 2000
    require_images: bool = False
    exclude_keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class SchedulerConfig:
    collection_enabled: bool = True
    collection_interval_seconds: float = 5 * 60
    cleaning_enabled: bool = True
    cleaning_interval_seconds: float = 60 * 60
    metrics_enabled: bool = True
    metrics_interval_seconds: float = 60
    chain_delay_seconds: float = 1.0


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: float = 5 * 60
    max_entries: int = 256


@dataclass(frozen=True)
class MonitoringConfig:
    cpu: float = 80
    memory: float = 85
    disk: float = 90
    network: float = 1000


def _default_sources() -> dict[Platform, SourceConfig]:
    return {
        Platform.XIAOHONGSHU: SourceConfig(
            enabled=True,
            interval_seconds=5 * 60,
            max_results=50,
        ),
        Platform.WEIBO: SourceConfig(enabled=False),
        Platform.DOUYIN: SourceConfig(enabled=False),
    }


SECTIONS = frozenset({"sources", "credibility", "filters", "scheduler", "cache", "monitoring", "dedupe"})


@dataclass(frozen=True)
class TrackerConfig:
    sources: Mapping[Platform, SourceConfig] = field(default_factory=_default_sources)
    credibility: CredibilityConfig = field(default_factory=CredibilityConfig)
    filters: ContentFilters = field(default_factory=ContentFilters)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    dedupe: bool = False

    def source(self, platform: Platform | str) -> SourceConfig:
        return self.sources.get(Platform.parse(platform), SourceConfig())

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "TrackerConfig":
        """
        Build a config from a nested mapping, e.g.
        {"sources": {"weibo": {"enabled": True}}, "filters": {"require_images": True}}.
        Missing keys keep their defaults.
        """
        return TrackerConfig().merged(data)

    def merged(self, data: Mapping[str, Any]) -> "TrackerConfig":
        """Copy of this config with the nested overrides in `data` applied; raises ValueError on unknown keys."""
        unknown = set(data) - SECTIONS
        if unknown:
            raise ValueError(f"Unknown config sections: {', '.join(sorted(unknown))}")
        sources = dict(self.sources)
        for name, overrides in (data.get("sources") or {}).items():
            platform = Platform.parse(name)
            sources[platform] = _merge(sources.get(platform, SourceConfig()), overrides)
        return TrackerConfig(
            sources=sources,
            credibility=_merge(self.credibility, data.get("credibility")),
            filters=_merge(self.filters, data.get("filters")),
            scheduler=_merge(self.scheduler, data.get("scheduler")),
            cache=_merge(self.cache, data.get("cache")),
            monitoring=_merge(self.monitoring, data.get("monitoring")),
            dedupe=bool(data.get("dedupe", self.dedupe)),
        )

    @staticmethod
    def load() -> "TrackerConfig":
        """Defaults overlaid with secrets/env (XHS_ENABLED, XHS_COOKIE, CACHE_TTL_SECONDS, ...)."""
        base = TrackerConfig()
        sources = dict(base.sources)
        prefixes = {Platform.XIAOHONGSHU: "XHS", Platform.WEIBO: "WEIBO", Platform.DOUYIN: "DOUYIN"}
        for platform, prefix in prefixes.items():
            overrides: dict[str, Any] = {}
            enabled = _get_bool(f"{prefix}_ENABLED")
            if enabled is not None:
                overrides["enabled"] = enabled
            cookie = _get_secret(f"{prefix}_COOKIE")
            if cookie:
                overrides["cookie"] = cookie
            keywords = _get_secret(f"{prefix}_KEYWORDS")
            if keywords:
                overrides["keywords"] = [k.strip() for k in keywords.split(",") if k.strip()]
            interval = _get_float(f"{prefix}_RATE_LIMIT_SECONDS")
            if interval is not None:
                overrides["rate_limit_interval_seconds"] = interval
            sources[platform] = _merge(sources[platform], overrides)

        cache = base.cache
        ttl = _get_float("CACHE_TTL_SECONDS")
        if ttl is not None:
            cache = replace(cache, ttl_seconds=ttl)

        scheduler = base.scheduler
        collection_interval = _get_float("COLLECTION_INTERVAL_SECONDS")
        if collection_interval is not None:
            scheduler = replace(scheduler, collection_interval_seconds=collection_interval)

        return replace(
            base,
            sources=sources,
            cache=cache,
            scheduler=scheduler,
            dedupe=bool(_get_bool("DEDUPE_POSTS")),
        )


def _merge(obj, overrides: Mapping[str, Any] | None):
    if not overrides:
        return obj
    if not isinstance(overrides, Mapping):
        raise ValueError(f"Options for {type(obj).__name__} must be a mapping, got {type(overrides).__name__}")
    known = {f.name for f in fields(obj)}
    clean: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            raise ValueError(f"Unknown option {key!r} for {type(obj).__name__}")
        if isinstance(value, list):
            value = tuple(value)
        current = getattr(obj, key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            value = {**current, **value}
        clean[key] = value
    return replace(obj, **clean)
