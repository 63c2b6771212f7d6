from __future__ import annotations


class TrackerError(Exception):
    """Base class for errors raised inside the tracker."""


class SourceUnavailable(TrackerError):
    """
    A platform call failed (HTTP error, timeout, malformed body).
    Always handled inside the source client by falling back to synthetic data.
    """

    def __init__(self, platform: str, reason: str):
        super().__init__(f"{platform}: {reason}")
        self.platform = platform
        self.reason = reason


class PipelineStageFailure(TrackerError):
    """Unexpected error inside Cleaner/Classifier; the scheduler logs it and skips the chain."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage} stage failed: {type(cause).__name__}: {cause}")
        self.stage = stage
        self.cause = cause


class InvalidTransition(TrackerError):
    """Review action not allowed from the post's current status."""


class UnknownPlatform(TrackerError, ValueError):
    """Platform name outside xiaohongshu / weibo / douyin."""

    def __init__(self, name: object):
        super().__init__(f"Unknown platform {name!r}")
        self.name = name
