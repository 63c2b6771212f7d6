from __future__ import annotations

import csv
import io

import pytest

from staff_deal_tracker.api import ReadAPI
from staff_deal_tracker.cache import ResponseCache
from staff_deal_tracker.errors import UnknownPlatform
from staff_deal_tracker.models import DiscountInfo, Platform, ReviewStatus
from staff_deal_tracker.scheduler import Scheduler
from staff_deal_tracker.sources.weibo import WeiboClient
from staff_deal_tracker.store import CLASSIFIED, CLEANED, RAW, MemoryStore
from staff_deal_tracker.utils import now_ms

from conftest import FakeClient, make_post


XHS = Platform.XIAOHONGSHU


@pytest.fixture
def api(fast_config):
    posts = [
        make_post(id="a", publish_time=now_ms(), title="华为员工内购9折专场"),
        make_post(id="b", publish_time=now_ms() - 40 * 24 * 3600 * 1000),
    ]
    client = FakeClient(XHS, posts)
    store = MemoryStore()
    scheduler = Scheduler(store, {XHS: client}, fast_config)
    api = ReadAPI(store, scheduler, fast_config, cache=ResponseCache(ttl_seconds=300))
    scheduler.run_collection()
    return api


def test_dashboard_summary(api):
    summary = api.get_dashboard_summary()
    assert summary["total"] == 2
    assert summary["processed"] == 2
    assert summary["pending"] == 2
    assert summary["active_platforms"] == ["小红书"]
    assert summary["categories"] == {"internal": 2}


def test_read_calls_are_cached_until_refresh(api):
    first = api.get_dashboard_summary()
    api.store.set(RAW, [])
    assert api.get_dashboard_summary() is first

    api.refresh_data()
    fresh = api.get_dashboard_summary()
    assert fresh is not first
    assert fresh["total"] == 2


def test_source_summary(api):
    s = api.get_source_summary("xiaohongshu")
    assert s["total"] == 2
    assert s["discount_items"] == 2
    assert s["recent_items"] == 1
    assert s["top_brands"] == [{"name": "华为", "count": 1}]
    assert s["items"][0]["id"] == "a"
    assert s["items"][0]["source"] == "xiaohongshu"

    empty = api.get_source_summary(Platform.DOUYIN)
    assert empty["total"] == 0 and empty["items"] == []


def test_submit_review_moves_status_forward_only(api):
    assert api.submit_review("a", "approved", "looks legit")["success"]
    assert api.submit_review("a", "published")["success"]
    back = api.submit_review("a", "pending")
    assert not back["success"]

    post = next(p for p in api.store.get(CLASSIFIED) if p.id == "a")
    assert post.status is ReviewStatus.PUBLISHED
    assert post.review_comment == "looks legit"

    assert api.submit_review("b", "rejected", "spam")["success"]
    assert not api.submit_review("b", "approved")["success"]
    assert not api.submit_review("missing", "approved")["success"]
    assert not api.submit_review("a", "archived")["success"]


def test_export_json_report(api):
    res = api.export_report("json", "last7days")
    assert res["success"]
    report = res["content"]
    assert set(report) == {"generatedAt", "dateRange", "summary", "details"}
    assert report["dateRange"] == "last7days"
    assert [p["id"] for p in report["details"]["classified"]] == ["a"]
    assert len(api.export_report("json", "all")["content"]["details"]["raw"]) == 2


def test_export_csv_projection(api):
    res = api.export_report("csv", "all")
    rows = list(csv.DictReader(io.StringIO(res["content"])))
    assert list(rows[0]) == ["id", "title", "platform", "status", "createdAt"]
    assert {r["id"] for r in rows} == {"a", "b"}
    assert rows[0]["platform"] == "xiaohongshu" and rows[0]["status"] == "pending"


def test_export_failures_are_results(api):
    assert not api.export_report("xml")["success"]
    assert not api.export_report("json", "yesterday")["success"]


def test_priority_and_credibility_bounds_after_pipeline(api):
    for p in api.store.get(CLASSIFIED):
        assert 0 <= p.credibility <= 100
        assert 1 <= p.priority <= 10
        if p.content_type.value == "discount":
            assert isinstance(p.discount_info, DiscountInfo)


def test_validate_summary(api):
    summary = api.validate()
    assert summary["total"] == 2
    assert summary["valid"] + summary["invalid"] == 2


def test_manual_collection_passthrough(api):
    res = api.trigger_manual_collection("xiaohongshu")
    assert res["success"] and res["collected"] == 2


def test_review_queue_reflects_reviews_immediately(api):
    assert [p["status"] for p in api.get_review_queue("xiaohongshu")] == ["pending", "pending"]
    api.export_report("json", "all")

    assert api.submit_review("a", "approved")["success"]

    queue = {p["id"]: p["status"] for p in api.get_review_queue()}
    assert queue == {"a": "approved", "b": "pending"}
    assert [p["id"] for p in api.get_review_queue(status="approved")] == ["a"]
    assert api.get_review_queue(Platform.WEIBO) == []


def test_unknown_platform_handling(api):
    with pytest.raises(UnknownPlatform):
        api.get_source_summary("tiktok")
    res = api.submit_review("a", "approved", source="tiktok")
    assert not res["success"] and "tiktok" in res["message"]
    assert not api.trigger_manual_collection("tiktok")["success"]


def test_review_comment_kept_when_later_action_has_none(api):
    api.submit_review("a", "approved", "checked with HR")
    api.submit_review("a", "published")
    post = next(p for p in api.store.get(CLASSIFIED) if p.id == "a")
    assert post.review_comment == "checked with HR"


def test_collection_status(api):
    status = api.get_collection_status()
    (xhs,) = status["platforms"]
    assert xhs["platform"] == "xiaohongshu"
    assert xhs["status"] == "running"
    assert xhs["state"] == "ok"
    assert xhs["count"] == 2
    assert xhs["last_update"] is not None
    assert xhs["fallback_count"] == 0
    assert status["total_collected"] == 2
    assert status["errors"] == []


def test_dashboard_process_gauges(api):
    summary = api.get_dashboard_summary()
    assert summary["avg_process_time"] is not None and summary["avg_process_time"] >= 0
    assert summary["accuracy_rate"] is None

    api.validate()
    api.refresh_data()
    assert api.get_dashboard_summary()["accuracy_rate"] is None  # reclassification drops validation marks
    api.validate()
    api.cache.clear()
    assert 0 <= api.get_dashboard_summary()["accuracy_rate"] <= 100


def test_update_source_config_rebuilds_client(api):
    old = api.scheduler.clients.get(Platform.WEIBO)
    res = api.update_source_config("weibo", {"enabled": True, "max_results": 5})

    assert res["success"]
    client = api.scheduler.clients[Platform.WEIBO]
    assert isinstance(client, WeiboClient) and client is not old
    assert client.config.max_results == 5
    assert api.config.source("weibo").enabled
    assert "微博" in api.get_dashboard_summary()["active_platforms"]


def test_update_system_config(api):
    res = api.update_system_config({"filters": {"min_title_length": 50}})
    assert res["success"] and res["rebuilt_clients"] == []
    assert api.scheduler.cleaner.filters.min_title_length == 50
    api.scheduler.run_cleaning()
    assert api.store.get(CLEANED) == []

    res = api.update_system_config({"credibility": {"min_score": 70}})
    assert res["rebuilt_clients"] == ["douyin", "weibo", "xiaohongshu"]
    assert api.scheduler.validator.credibility.min_score == 70


def test_bad_config_updates_are_results(api):
    assert not api.update_system_config({"bogus": 1})["success"]
    assert not api.update_system_config({"filters": {"nope": 1}})["success"]
    assert not api.update_source_config("tiktok", {"enabled": True})["success"]
    assert not api.update_source_config("weibo", {"max_resluts": 5})["success"]
    assert api.config.filters.min_title_length == 5
