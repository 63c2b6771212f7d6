from __future__ import annotations

import logging
import random
import threading
import time
from collections import deque
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping

from apscheduler.schedulers.background import BackgroundScheduler

from staff_deal_tracker.config import MonitoringConfig, TrackerConfig
from staff_deal_tracker.errors import PipelineStageFailure, UnknownPlatform
from staff_deal_tracker.models import Platform, Post
from staff_deal_tracker.pipeline import CollectionResult, collect_all, collect_platform, dedupe
from staff_deal_tracker.sources.base import SourceClient
from staff_deal_tracker.stages import Classifier, Cleaner, Validator
from staff_deal_tracker.store import CLASSIFIED, CLEANED, RAW, SYSTEM_METRICS, Store
from staff_deal_tracker.utils import ms_to_iso, now_ms


logger = logging.getLogger(__name__)

COLLECTION = "collection"
CLEANING = "cleaning"
METRICS = "metrics"
CHAINED_CLEANING = "cleaning-after-collection"
PERIODIC_JOBS = (COLLECTION, CLEANING, METRICS)

# slack for scheduler jitter when comparing a source's interval with the time since its last run
INTERVAL_GRACE_SECONDS = 5.0
PROCESS_TIME_WINDOW = 20


def sample_system_metrics(
    rng: random.Random,
    *,
    uptime_seconds: float,
    thresholds: MonitoringConfig,
) -> dict:
    """Synthetic health gauges; independent of the pipeline."""
    gauges = {
        "cpu": rng.randint(30, 69),
        "memory": rng.randint(60, 89),
        "disk": rng.randint(40, 59),
        "network": rng.randint(50, 149),
    }
    alerts = [name for name, value in gauges.items() if value >= getattr(thresholds, name)]
    return {
        **gauges,
        "uptime_seconds": int(uptime_seconds),
        "alerts": alerts,
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
    }


def _keep_review_state(previous: list[Post] | None, fresh: list[Post]) -> list[Post]:
    """Reclassification must not move a reviewed post back to pending."""
    reviewed = {(p.source, p.id): p for p in (previous or []) if p.reviewed_at is not None}
    out: list[Post] = []
    for p in fresh:
        old = reviewed.get((p.source, p.id))
        if old is not None:
            p = replace(p, status=old.status, review_comment=old.review_comment, reviewed_at=old.reviewed_at)
        out.append(p)
    return out


class Scheduler:
    """
    Owns the named periodic jobs (collection, cleaning, metrics) on an APScheduler
    BackgroundScheduler, plus the one-shot cleaning run chained after a collection.

    Each job body also holds its own lock, so a scheduled run, a chained run and a
    direct call of the same job never overlap; different jobs may run at the same time.
    """

    def __init__(
        self,
        store: Store,
        clients: Mapping[Platform, SourceClient],
        config: TrackerConfig,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.clients = dict(clients)
        self.config = config
        self.cleaner = Cleaner(filters=config.filters)
        self.classifier = Classifier()
        self.validator = Validator(filters=config.filters, credibility=config.credibility)
        self.last_collection: CollectionResult | None = None
        self._rng = rng or random.Random()
        self._clock = clock
        self._locks = {name: threading.Lock() for name in PERIODIC_JOBS}
        self._background: BackgroundScheduler | None = None
        self._background_lock = threading.Lock()
        self._stopped = False
        self._started_at = clock()
        self._last_collected: dict[Platform, float] = {}
        self._source_status: dict[Platform, dict] = {}
        self._process_times: deque[float] = deque(maxlen=PROCESS_TIME_WINDOW)

    # Lifecycle

    def _ensure_background(self) -> BackgroundScheduler:
        with self._background_lock:
            if self._background is None:
                self._background = BackgroundScheduler(
                    timezone=timezone.utc,
                    job_defaults={"max_instances": 1, "coalesce": True, "misfire_grace_time": 30},
                )
            if not self._background.running:
                self._background.start()
            return self._background

    def _job_specs(self) -> list[tuple[str, bool, float, Callable[[], object]]]:
        sc = self.config.scheduler
        return [
            (COLLECTION, sc.collection_enabled, sc.collection_interval_seconds, self.run_collection),
            (CLEANING, sc.cleaning_enabled, sc.cleaning_interval_seconds, self.run_cleaning),
            (METRICS, sc.metrics_enabled, sc.metrics_interval_seconds, self.run_metrics),
        ]

    def start(self, *, collect_now: bool = False) -> None:
        """Register the enabled periodic jobs; each first fires one interval from now unless collect_now."""
        self._stopped = False
        background = self._ensure_background()
        for name, enabled, interval, fn in self._job_specs():
            if not enabled or background.get_job(name) is not None:
                continue
            extra = {"next_run_time": datetime.now(timezone.utc)} if (collect_now and name == COLLECTION) else {}
            background.add_job(fn, "interval", seconds=interval, id=name, name=name, max_instances=1, coalesce=True, **extra)
            logger.info("Started %s job every %ss", name, interval)

    def stop_all(self, wait: bool = True) -> None:
        """Cancel every periodic job and any pending chained cleaning."""
        self._stopped = True
        with self._background_lock:
            background, self._background = self._background, None
        if background is None or not background.running:
            return
        n = len(background.get_jobs())
        background.shutdown(wait=wait)
        logger.info("Stopped scheduler with %d pending jobs", n)

    @property
    def job_names(self) -> list[str]:
        background = self._background
        if background is None or not background.running:
            return []
        return sorted(job.id for job in background.get_jobs() if job.id in PERIODIC_JOBS)

    def apply_config(self, config: TrackerConfig, clients: Mapping[Platform, SourceClient] | None = None) -> None:
        """Swap in a new config (and rebuilt clients); running periodic jobs pick up new intervals."""
        self.config = config
        self.cleaner = Cleaner(filters=config.filters)
        self.validator = Validator(filters=config.filters, credibility=config.credibility)
        if clients:
            self.clients.update(clients)
            for platform in clients:
                self._last_collected.pop(platform, None)

        background = self._background
        if background is None or not background.running:
            return
        for name, enabled, interval, fn in self._job_specs():
            job = background.get_job(name)
            if job is None and enabled:
                background.add_job(fn, "interval", seconds=interval, id=name, name=name, max_instances=1, coalesce=True)
            elif job is not None and not enabled:
                background.remove_job(name)
            elif job is not None:
                background.reschedule_job(name, trigger="interval", seconds=interval)

    def active_platforms(self) -> list[Platform]:
        return [p for p, c in self.clients.items() if c.is_active()]

    # Jobs

    def run_collection(self, *, chain: bool = True, force: bool = False) -> CollectionResult | None:
        """
        One collection cycle over every active source whose own interval has elapsed
        (all of them when force). Skipped sources keep their previous raw posts.
        """
        with self._locks[COLLECTION]:
            now = self._clock()
            due, skipped = self._due_clients(now, force)
            try:
                if due or not skipped:
                    result = collect_all(due, self.config)
                else:
                    result = CollectionResult(posts=[])
            except Exception:
                logger.exception("Collection cycle failed")
                return None
            result = replace(result, skipped_sources=skipped)
            carried = set(skipped)
            # one atomic replace; cleaning never sees a half-written cycle
            self.store.update(RAW, lambda prev: result.posts + [p for p in (prev or []) if p.source in carried], [])
            self.last_collection = result
            for platform in due:
                self._last_collected[platform] = now
                self._record_cycle(platform, result)
            for w in result.warnings:
                logger.warning(w)
            if skipped:
                logger.info("Not due this cycle: %s", ", ".join(p.value for p in skipped))
            logger.info("Collection cycle stored %d raw posts", len(result.posts))
        if chain:
            self.schedule_cleaning()
        return result

    def _due_clients(self, now: float, force: bool) -> tuple[dict[Platform, SourceClient], list[Platform]]:
        due: dict[Platform, SourceClient] = {}
        skipped: list[Platform] = []
        for platform, client in self.clients.items():
            if not client.is_active():
                continue
            last = self._last_collected.get(platform)
            interval = client.config.interval_seconds - INTERVAL_GRACE_SECONDS
            if not force and last is not None and now - last < interval:
                skipped.append(platform)
            else:
                due[platform] = client
        return due, skipped

    def _record_cycle(self, platform: Platform, result: CollectionResult) -> None:
        if platform in result.failed_sources:
            error = next((w for w in result.warnings if w.startswith(platform.value)), None)
            self._record_status(platform, 0, state="failed", error=error)
            return
        count = sum(1 for p in result.posts if p.source == platform)
        self._record_status(platform, count, state="synthetic" if platform in result.synthetic_sources else "ok")

    def _record_status(self, platform: Platform, count: int, *, state: str, error: str | None = None) -> None:
        self._source_status[platform] = {"last_run": now_ms(), "count": count, "state": state, "error": error}

    def run_cleaning(self) -> list[Post] | None:
        """Cleaner over raw, then Classifier over cleaned. A failing stage skips the rest of the chain."""
        with self._locks[CLEANING]:
            started = time.perf_counter()
            raw = list(self.store.get(RAW) or [])
            try:
                cleaned = self._run_stage("cleaner", self.cleaner.clean, raw)
                self.store.set(CLEANED, cleaned)
                classified = self._run_stage("classifier", self.classifier.classify, cleaned)
            except PipelineStageFailure as e:
                logger.exception("Skipping rest of cleaning chain: %s", e)
                return None
            merged = self.store.update(CLASSIFIED, lambda prev: _keep_review_state(prev, classified), [])
            elapsed = time.perf_counter() - started
            self._process_times.append(elapsed)
            logger.info("Classified %d of %d raw posts in %.3fs", len(merged), len(raw), elapsed)
            return merged

    @property
    def avg_process_seconds(self) -> float | None:
        """Mean wall time of recent cleaning runs."""
        times = list(self._process_times)
        return sum(times) / len(times) if times else None

    def run_metrics(self) -> dict:
        with self._locks[METRICS]:
            snapshot = sample_system_metrics(
                self._rng,
                uptime_seconds=self._clock() - self._started_at,
                thresholds=self.config.monitoring,
            )
            self.store.set(SYSTEM_METRICS, snapshot)
            if snapshot["alerts"]:
                logger.warning("System metrics over threshold: %s", ", ".join(snapshot["alerts"]))
            return snapshot

    def run_validation(self) -> list[Post]:
        """On-demand Validator pass; annotates the classified collection in place in the store."""
        return self.store.update(CLASSIFIED, lambda prev: self.validator.validate(prev or []), [])

    def schedule_cleaning(self, delay: float | None = None) -> None:
        """Run cleaning after `delay` seconds; a pending chained run is replaced, not duplicated."""
        delay = self.config.scheduler.chain_delay_seconds if delay is None else delay
        if self._stopped:
            return
        if delay <= 0:
            self.run_cleaning()
            return
        self._ensure_background().add_job(
            self.run_cleaning,
            "date",
            run_date=datetime.now(timezone.utc) + timedelta(seconds=delay),
            id=CHAINED_CLEANING,
            name=CHAINED_CLEANING,
            replace_existing=True,
        )

    def trigger_manual_collection(self, platform: Platform | str) -> dict:
        """
        Collect one platform synchronously and merge into raw, replacing only
        that platform's previous posts. Never raises; returns a result dict.
        """
        try:
            platform = Platform.parse(platform)
        except UnknownPlatform as e:
            return {"success": False, "platform": str(platform), "collected": 0, "message": str(e)}

        client = self.clients.get(platform)
        if client is None or not client.is_active():
            return {
                "success": False,
                "platform": platform.value,
                "collected": 0,
                "message": f"{platform.display_name} collection is not enabled",
            }

        started = self._clock()
        try:
            posts = collect_platform(client)

            def merge(current: list[Post] | None) -> list[Post]:
                kept = [p for p in (current or []) if p.source != platform]
                merged = kept + posts
                return dedupe(merged) if self.config.dedupe else merged

            self.store.update(RAW, merge, [])
        except Exception as e:
            logger.exception("Manual %s collection failed", platform.value)
            self._record_status(platform, 0, state="failed", error=str(e))
            return {
                "success": False,
                "platform": platform.value,
                "collected": 0,
                "error": str(e),
                "message": "Collection failed, please retry later",
            }

        synthetic = any(p.synthetic for p in posts)
        self._last_collected[platform] = started
        self._record_status(platform, len(posts), state="synthetic" if synthetic else "ok")
        self.schedule_cleaning()
        return {
            "success": True,
            "platform": platform.value,
            "collected": len(posts),
            "synthetic": synthetic,
            "message": f"Collected {len(posts)} {platform.display_name} posts"
            + (" (synthetic fallback)" if synthetic else ""),
        }

    def collection_status(self) -> dict:
        """Per-platform state of the most recent collection, scheduled or manual."""
        platforms = []
        for platform, client in self.clients.items():
            status = self._source_status.get(platform, {})
            last_run = status.get("last_run")
            platforms.append(
                {
                    "platform": platform.value,
                    "name": platform.display_name,
                    "status": "running" if client.is_active() else "stopped",
                    "state": status.get("state", "idle"),
                    "count": status.get("count", 0),
                    "last_update": ms_to_iso(last_run) if last_run else None,
                    "error": status.get("error"),
                    "serving_synthetic": client.last_fetch_synthetic,
                    "fallback_count": client.fallback_count,
                }
            )
        last = self.last_collection
        return {
            "platforms": platforms,
            "total_collected": sum(p["count"] for p in platforms),
            "errors": list(last.warnings) if last else [],
            "jobs": self.job_names,
        }

    @staticmethod
    def _run_stage(stage: str, fn: Callable[[list[Post]], list[Post]], posts: list[Post]) -> list[Post]:
        try:
            return fn(posts)
        except Exception as e:
            raise PipelineStageFailure(stage, e) from e
