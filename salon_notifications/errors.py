"""Error taxonomy for the dispatch pipeline.

Every error carries a `retryable` flag. The consumer only looks at that flag
(through `is_retryable`) and never at provider- or directory-specific types.
"""

from __future__ import annotations


class NotificationError(Exception):
    retryable = True

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class MalformedEventError(NotificationError, ValueError):
    retryable = False


class MissingTenantError(MalformedEventError):
    pass


class UnknownEventKindError(MalformedEventError):
    pass


class DirectoryError(NotificationError):
    """A directory read failed; directories are assumed eventually available."""


class DirectoryTimeoutError(DirectoryError):
    pass


class TenantNotFoundError(DirectoryError):
    retryable = False


class TemplateRenderError(NotificationError):
    retryable = False


class TransportError(NotificationError, RuntimeError):
    """A channel provider rejected or failed a send."""


class PartialDeliveryError(NotificationError):
    def __init__(self, failed_channels: list[str]) -> None:
        super().__init__(f"channels failed: {', '.join(failed_channels)}")
        self.failed_channels = failed_channels


class StageError(NotificationError):
    """Wraps a failure with the pipeline stage it happened in."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"{stage}: {cause}", retryable=is_retryable(cause))
        self.stage = stage
        self.cause = cause


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, NotificationError):
        return exc.retryable
    return True
