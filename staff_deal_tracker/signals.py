"""
Derived signals for a raw post: content type, credibility, discount and brand.

Everything here is pure and deterministic: the same input always yields the
same output, so results can be recomputed at any pipeline stage.
"""
from __future__ import annotations

import re
from dataclasses import replace

from staff_deal_tracker.config import CredibilityConfig
from staff_deal_tracker.models import BrandInfo, ContentType, DiscountInfo, Post
from staff_deal_tracker.utils import clamp


DISCOUNT_TERMS = ("折扣", "促销", "打折")
INTERNAL_PURCHASE_TERMS = ("内购", "员工", "内部价")
FLASH_SALE_TERMS = ("限时", "秒杀", "抢购")

# Checked in this order; first match wins.
CONTENT_TYPE_KEYWORDS: tuple[tuple[ContentType, tuple[str, ...]], ...] = (
    (ContentType.DISCOUNT, DISCOUNT_TERMS),
    (ContentType.INTERNAL_PURCHASE, INTERNAL_PURCHASE_TERMS),
    (ContentType.FLASH_SALE, FLASH_SALE_TERMS),
)

# One distinct type per pattern. The last entry is the discount keyword set itself,
# so a post detected as "discount" always carries discount info.
DISCOUNT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("percentage", re.compile(r"\d+(?:\.\d+)?折")),
    ("percentage_off", re.compile(r"\d+(?:\.\d+)?%\s*off")),
    ("instant_discount", re.compile(r"立减\d+")),
    ("threshold_discount", re.compile(r"满\d+减\d+")),
    ("coupon", re.compile(r"优惠\d+")),
    ("unquantified", re.compile("|".join(map(re.escape, DISCOUNT_TERMS)))),
)

DISCOUNT_CONFIDENCE = 0.8
BRAND_CONFIDENCE = 0.9

BRANDS = (
    "Apple",
    "iPhone",
    "iPad",
    "Mac",
    "Samsung",
    "华为",
    "小米",
    "OPPO",
    "vivo",
    "Nike",
    "Adidas",
    "优衣库",
    "ZARA",
    "雅诗兰黛",
    "兰蔻",
    "SK-II",
    "资生堂",
    "戴森",
    "飞利浦",
    "索尼",
    "佳能",
)

DEFAULT_CREDIBILITY = CredibilityConfig()


def detect_content_type(title: str, content: str) -> ContentType:
    text = f"{title or ''} {content or ''}".lower()
    for content_type, terms in CONTENT_TYPE_KEYWORDS:
        if any(term in text for term in terms):
            return content_type
    return ContentType.PRODUCT


def calculate_credibility(post: Post, rules: CredibilityConfig = DEFAULT_CREDIBILITY) -> int:
    """
    Additive heuristic: base score plus fixed bonuses, clamped to [0, 100].
    Defaults: likes>1000 +10, comments>100 +10, collects>50 +10, official +15,
    followers>10000 +10, title>10 chars +5, content>50 chars +5, images>3 +5.
    """
    t = rules.thresholds
    w = rules.weights
    signals = {
        "likes": post.stats.likes,
        "comments": post.stats.comments,
        "collects": post.stats.collects,
        "followers": post.author.followers,
        "title_length": len(post.title or ""),
        "content_length": len(post.content or ""),
        "images": len(post.images),
    }
    score = rules.base
    for name, value in signals.items():
        if name in t and value > t[name]:
            score += w.get(name, 0)
    if post.author.type == "official":
        score += w.get("official", 0)
    return clamp(int(score), 0, 100)


def extract_discount(title: str, content: str) -> DiscountInfo | None:
    text = f"{title or ''} {content or ''}".lower()
    for discount_type, pattern in DISCOUNT_PATTERNS:
        match = pattern.search(text)
        if match:
            return DiscountInfo(type=discount_type, raw_value=match.group(0), confidence=DISCOUNT_CONFIDENCE)
    return None


def extract_brand(title: str, content: str) -> BrandInfo | None:
    """Earliest brand mention in the text wins; on a tie the longer name wins."""
    text = f"{title or ''} {content or ''}".lower()
    best: tuple[int, int, str] | None = None
    for brand in BRANDS:
        pos = text.find(brand.lower())
        if pos < 0:
            continue
        key = (pos, -len(brand), brand)
        if best is None or key < best:
            best = key
    if best is None:
        return None
    return BrandInfo(name=best[2], confidence=BRAND_CONFIDENCE)


def enrich(post: Post, rules: CredibilityConfig = DEFAULT_CREDIBILITY) -> Post:
    return replace(
        post,
        content_type=detect_content_type(post.title, post.content),
        credibility=calculate_credibility(post, rules),
        discount_info=extract_discount(post.title, post.content),
        brand_info=extract_brand(post.title, post.content),
    )
