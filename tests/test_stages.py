from __future__ import annotations

from dataclasses import replace

from staff_deal_tracker.config import ContentFilters
from staff_deal_tracker.models import BrandInfo, ContentType, DiscountInfo, ReviewStatus, Stats
from staff_deal_tracker.stages import Classifier, Cleaner, Validator

from conftest import make_post


def _clock():
    return 42


def test_cleaner_is_stable_and_drops_short_posts():
    posts = [
        make_post(id="a"),
        make_post(id="short-title", title="内购"),
        make_post(id="b"),
        make_post(id="short-content", content="太短了"),
        make_post(id="empty", title=""),
        make_post(id="c"),
    ]
    out = Cleaner(clock=_clock).clean(posts)
    assert [p.id for p in out] == ["a", "b", "c"]
    assert all(p.cleaned_at == 42 for p in out)
    assert all(len(p.title) >= 5 and len(p.content) >= 10 for p in out)


def test_cleaner_applies_configured_filters():
    filters = ContentFilters(require_images=True, exclude_keywords=("广告",))
    posts = [
        make_post(id="no-images"),
        make_post(id="ad", title="广告：员工内购专场", images=("x",)),
        make_post(id="ok", images=("x",)),
    ]
    assert [p.id for p in Cleaner(filters=filters).clean(posts)] == ["ok"]


def test_classifier_category_and_priority():
    base = make_post()
    promo = replace(base, content_type=ContentType.FLASH_SALE)
    internal = replace(base, content_type=ContentType.INTERNAL_PURCHASE)
    loaded = replace(
        base,
        content_type=ContentType.DISCOUNT,
        credibility=90,
        discount_info=DiscountInfo("percentage", "9折"),
        brand_info=BrandInfo("华为"),
        stats=Stats(likes=600),
    )
    out = Classifier(clock=_clock).classify([base, promo, internal, loaded])
    assert [p.category for p in out] == ["general", "promotion", "internal", "promotion"]
    assert out[0].priority == 5
    # 5 + 2 + 3 + 1 + 1 = 12, clamped
    assert out[3].priority == 10
    assert all(p.status is ReviewStatus.PENDING and p.classified_at == 42 for p in out)
    assert all(1 <= p.priority <= 10 for p in out)


def test_classifier_is_deterministic_on_rerun():
    post = replace(make_post(), credibility=88, discount_info=DiscountInfo("coupon", "优惠20"))
    first = Classifier().classify([post])
    second = Classifier().classify(first)
    assert (first[0].category, first[0].priority) == (second[0].category, second[0].priority)


def test_validator_annotates_without_removing():
    good = make_post(
        title="员工内购专场福利来啦",
        content="x" * 60,
        images=("a",),
        credibility=85,
        stats=Stats(likes=150),
        discount_info=DiscountInfo("percentage", "9折"),
    )
    low = replace(good, id="low", credibility=40)
    too_long = replace(good, id="long", title="t" * 201)
    out = Validator(clock=_clock).validate([good, low, too_long])
    assert [p.id for p in out] == ["p1", "low", "long"]
    assert [p.is_valid for p in out] == [True, False, False]
    assert out[0].validation_score == 100
    assert out[1].validation_score == 75
    assert all(p.validated_at == 42 for p in out)
