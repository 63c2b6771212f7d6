from __future__ import annotations

from staff_deal_tracker.models import Author, ContentType, Stats
from staff_deal_tracker.signals import (
    DISCOUNT_PATTERNS,
    DISCOUNT_TERMS,
    calculate_credibility,
    detect_content_type,
    enrich,
    extract_brand,
    extract_discount,
)

from conftest import make_post


def test_internal_purchase_with_percentage_discount():
    text = "员工内购9折优惠"
    assert detect_content_type(text, "") is ContentType.INTERNAL_PURCHASE
    info = extract_discount(text, "")
    assert info is not None
    assert info.raw_value == "9折"
    assert info.type == "percentage"
    assert info.confidence == 0.8


def test_discount_beats_flash_sale():
    assert detect_content_type("限时秒杀", "全场折扣") is ContentType.DISCOUNT
    assert detect_content_type("限时秒杀", "手慢无") is ContentType.FLASH_SALE


def test_content_type_priority_order():
    assert detect_content_type("内购 抢购", "") is ContentType.INTERNAL_PURCHASE
    assert detect_content_type("新款耳机开箱", "音质不错") is ContentType.PRODUCT


def test_detect_content_type_is_pure():
    args = ("品牌促销", "员工专享限时抢购")
    assert len({detect_content_type(*args) for _ in range(20)}) == 1


def test_discount_type_always_has_discount_info():
    for term in DISCOUNT_TERMS:
        title = f"本周{term}"
        assert detect_content_type(title, "") is ContentType.DISCOUNT
        assert extract_discount(title, "") is not None


def test_discount_patterns_map_to_distinct_types():
    types = [t for t, _ in DISCOUNT_PATTERNS]
    assert len(types) == len(set(types))


def test_discount_pattern_order():
    assert extract_discount("满300减50", "").type == "threshold_discount"
    # pattern order decides, not position in the text
    assert extract_discount("满300减50", "再立减20").type == "instant_discount"
    assert extract_discount("满300减50", "再打8折").raw_value == "8折"
    assert extract_discount("今日30%OFF", "").raw_value == "30%off"
    assert extract_discount("新品开箱", "很好用") is None


def test_credibility_is_clamped_to_100():
    post = make_post(
        title="a" * 12,
        content="b" * 60,
        images=("1", "2", "3", "4"),
        stats=Stats(likes=1500, comments=150, collects=60),
        author=Author(type="official"),
    )
    # 50 + 10 + 10 + 10 + 15 + 5 + 5 + 5 = 110
    assert calculate_credibility(post) == 100


def test_credibility_base_and_bonuses():
    assert calculate_credibility(make_post(title="短标题", content="短内容短内容")) == 50
    followers = make_post(title="短标题", content="短内容", author=Author(followers=20000))
    assert calculate_credibility(followers) == 60
    assert calculate_credibility(followers) == calculate_credibility(followers)


def test_brand_earliest_occurrence_wins():
    info = extract_brand("小米新品", "对比华为和Apple")
    assert info.name == "小米"
    assert info.confidence == 0.9
    assert extract_brand("APPLE 员工价", "").name == "Apple"
    assert extract_brand("无品牌", "") is None


def test_enrich_fills_all_signals():
    post = enrich(make_post(title="华为员工内购", content="内购价立减200，手慢无"))
    assert post.content_type is ContentType.INTERNAL_PURCHASE
    assert post.discount_info.type == "instant_discount"
    assert post.brand_info.name == "华为"
    assert 0 <= post.credibility <= 100
