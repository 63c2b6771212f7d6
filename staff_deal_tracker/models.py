from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum

from staff_deal_tracker.errors import InvalidTransition, UnknownPlatform


class Platform(str, Enum):
    XIAOHONGSHU = "xiaohongshu"
    WEIBO = "weibo"
    DOUYIN = "douyin"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: "Platform | str") -> "Platform":
        try:
            return cls(value)
        except ValueError:
            raise UnknownPlatform(value) from None


_DISPLAY_NAMES = {
    Platform.XIAOHONGSHU: "小红书",
    Platform.WEIBO: "微博",
    Platform.DOUYIN: "抖音",
}


class ContentType(str, Enum):
    DISCOUNT = "discount"
    INTERNAL_PURCHASE = "internal_purchase"
    FLASH_SALE = "flash_sale"
    PRODUCT = "product"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"


# Forward-only review lifecycle. Terminal states have no outgoing edges.
ALLOWED_TRANSITIONS: dict[ReviewStatus, frozenset[ReviewStatus]] = {
    ReviewStatus.PENDING: frozenset({ReviewStatus.APPROVED, ReviewStatus.REJECTED, ReviewStatus.PUBLISHED}),
    ReviewStatus.APPROVED: frozenset({ReviewStatus.PUBLISHED}),
    ReviewStatus.REJECTED: frozenset(),
    ReviewStatus.PUBLISHED: frozenset(),
}


@dataclass(frozen=True)
class Author:
    id: str = ""
    name: str = ""
    avatar_url: str = ""
    type: str = ""
    followers: int = 0


@dataclass(frozen=True)
class Stats:
    likes: int = 0
    comments: int = 0
    shares: int = 0
    collects: int = 0


@dataclass(frozen=True)
class DiscountInfo:
    type: str
    raw_value: str
    confidence: float = 0.8


@dataclass(frozen=True)
class BrandInfo:
    name: str
    confidence: float = 0.9


@dataclass(frozen=True)
class Post:
    """Normalized content item from any platform."""

    id: str
    title: str
    content: str
    source: Platform
    publish_time: int
    author: Author = field(default_factory=Author)
    images: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    stats: Stats = field(default_factory=Stats)
    url: str | None = None

    # Derived by signals.enrich
    content_type: ContentType = ContentType.PRODUCT
    credibility: int = 0
    discount_info: DiscountInfo | None = None
    brand_info: BrandInfo | None = None

    # Set by pipeline stages
    category: str | None = None
    priority: int | None = None
    status: ReviewStatus | None = None
    is_valid: bool | None = None
    validation_score: int | None = None
    cleaned_at: int | None = None
    classified_at: int | None = None
    validated_at: int | None = None

    # Set by the review workflow
    review_comment: str | None = None
    reviewed_at: int | None = None

    synthetic: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("source", "content_type", "status"):
            value = data.get(key)
            if isinstance(value, Enum):
                data[key] = value.value
        data["images"] = list(self.images)
        data["tags"] = list(self.tags)
        return data


def advance_status(post: Post, action: ReviewStatus | str, comment: str | None, *, now_ms: int) -> Post:
    """
    Return a copy of post moved to `action`.
    Raises InvalidTransition for unclassified posts and backward/terminal moves.
    """
    try:
        target = ReviewStatus(action)
    except ValueError:
        raise InvalidTransition(f"Unknown review action {action!r}") from None

    if post.status is None:
        raise InvalidTransition(f"Post {post.id} has not been classified yet")
    if target not in ALLOWED_TRANSITIONS[post.status]:
        raise InvalidTransition(f"Post {post.id} cannot move from {post.status.value} to {target.value}")
    if comment is None:
        comment = post.review_comment
    return replace(post, status=target, review_comment=comment, reviewed_at=now_ms)
