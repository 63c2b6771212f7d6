from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable

from staff_deal_tracker.config import ContentFilters, CredibilityConfig
from staff_deal_tracker.models import ContentType, Post, ReviewStatus
from staff_deal_tracker.utils import clamp, now_ms


logger = logging.getLogger(__name__)

CATEGORY_BY_TYPE = {
    ContentType.DISCOUNT: "promotion",
    ContentType.FLASH_SALE: "promotion",
    ContentType.INTERNAL_PURCHASE: "internal",
}
DEFAULT_CATEGORY = "general"


@dataclass
class Cleaner:
    """Stable filter dropping empty, too-short and excluded posts."""

    filters: ContentFilters = field(default_factory=ContentFilters)
    clock: Callable[[], int] = now_ms

    def keep(self, post: Post) -> bool:
        f = self.filters
        title = post.title or ""
        content = post.content or ""
        if not title or not content:
            return False
        if len(title) < f.min_title_length or len(content) < f.min_content_length:
            return False
        if f.require_images and not post.images:
            return False
        if any(word and (word in title or word in content) for word in f.exclude_keywords):
            return False
        return True

    def clean(self, posts: Iterable[Post]) -> list[Post]:
        posts = list(posts)
        ts = self.clock()
        out = [replace(p, cleaned_at=ts) for p in posts if self.keep(p)]
        logger.info("Cleaner kept %d of %d posts", len(out), len(posts))
        return out


@dataclass
class Classifier:
    """Assigns category, priority and the initial review status."""

    high_credibility: int = 85
    clock: Callable[[], int] = now_ms

    def category(self, post: Post) -> str:
        return CATEGORY_BY_TYPE.get(post.content_type, DEFAULT_CATEGORY)

    def priority(self, post: Post) -> int:
        priority = 5
        if post.credibility > self.high_credibility:
            priority += 2
        if post.discount_info is not None:
            priority += 3
        if post.stats.likes > 500:
            priority += 1
        if post.brand_info is not None:
            priority += 1
        return clamp(priority, 1, 10)

    def classify(self, posts: Iterable[Post]) -> list[Post]:
        ts = self.clock()
        return [
            replace(
                p,
                category=self.category(p),
                priority=self.priority(p),
                status=ReviewStatus.PENDING,
                classified_at=ts,
            )
            for p in posts
        ]


@dataclass
class Validator:
    """
    Annotates posts with is_valid / validation_score; never removes any.
    Rejection is left to the review workflow.
    """

    filters: ContentFilters = field(default_factory=ContentFilters)
    credibility: CredibilityConfig = field(default_factory=CredibilityConfig)
    clock: Callable[[], int] = now_ms

    def is_valid(self, post: Post) -> bool:
        if not post.title or not post.content:
            return False
        if len(post.title) > self.filters.max_title_length or len(post.content) > self.filters.max_content_length:
            return False
        return post.credibility >= self.credibility.min_score

    def score(self, post: Post) -> int:
        score = 0
        if len(post.title or "") >= 10:
            score += 20
        if len(post.content or "") >= 50:
            score += 20
        if post.images:
            score += 15
        if post.credibility >= self.credibility.high_score:
            score += 25
        if post.stats.likes > 100:
            score += 10
        if post.discount_info is not None:
            score += 10
        return min(score, 100)

    def validate(self, posts: Iterable[Post]) -> list[Post]:
        ts = self.clock()
        return [
            replace(p, is_valid=self.is_valid(p), validation_score=self.score(p), validated_at=ts)
            for p in posts
        ]
