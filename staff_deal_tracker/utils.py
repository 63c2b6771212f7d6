from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable


_URL_RE = re.compile(r"https?://\S+|www\.\S+")
_WS_RE = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """
    Light cleanup for platform text.
    Remove urls and zero-width spaces, normalize whitespace. Hashtags are kept.
    """
    text = _URL_RE.sub("", text or "")
    text = text.replace("\u200b", " ")
    text = _WS_RE.sub(" ", text).strip()
    return text


def now_ms() -> int:
    return int(time.time() * 1000)


def ms_to_datetime(ms: int | float) -> datetime:
    return datetime.fromtimestamp(float(ms) / 1000.0, tz=timezone.utc)


def ms_to_iso(ms: int | float | None) -> str | None:
    if ms is None:
        return None
    return ms_to_datetime(ms).isoformat()


def to_epoch_ms(value) -> int | None:
    """Platforms report seconds or milliseconds; anything below 1e11 is treated as seconds."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    if v <= 0:
        return None
    if v < 1e11:
        v *= 1000.0
    return int(v)


def non_negative_int(value) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass
class RateLimiter:
    """
    Fixed-interval throttle, one per client instance.
    Consecutive call starts are never closer than min_interval_seconds.
    No burst cap beyond that spacing.
    """

    min_interval_seconds: float = 1.0
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    _last_ts: float | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def wait(self) -> float:
        """Block until the interval is satisfied; returns the seconds slept."""
        with self._lock:
            slept = 0.0
            if self._last_ts is not None:
                elapsed = self.clock() - self._last_ts
                if elapsed < self.min_interval_seconds:
                    slept = self.min_interval_seconds - elapsed
                    self.sleep(slept)
            self._last_ts = self.clock()
            return slept
