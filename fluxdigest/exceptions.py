"""
Domain errors and HTTP exception utilities.

Services raise the DigestError family; routes translate them into
HTTPException responses and use the require_* helpers for 404s.
"""

from typing import TypeVar

from fastapi import HTTPException

T = TypeVar("T")


class DigestError(Exception):
    """Base class for errors raised by the digest pipeline."""


class ConfigurationError(DigestError):
    """Missing or invalid AI / Miniflux configuration. Never retried."""


class ProviderError(DigestError):
    """An LLM provider answered with an error status or an unreadable body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MinifluxError(DigestError):
    """The Miniflux backend answered with an error status or an unreadable body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AITimeoutError(DigestError):
    """The AI call exceeded the hard generation timeout."""


class EmptyResponseError(DigestError):
    """The provider call succeeded but produced no text."""


class InvalidCronError(DigestError):
    """A cron expression that does not yield a next run time."""


class TaskBusyError(DigestError):
    """A scheduled task is already running."""


def require_resource(resource: T | None, detail: str = "Resource not found") -> T:
    """
    Raise 404 if resource is None, otherwise return the resource.

    Usage:
        digest = require_resource(db.get_digest(id), "Digest not found")
    """
    if resource is None:
        raise HTTPException(status_code=404, detail=detail)
    return resource


def require_digest(digest: T | None) -> T:
    """Raise 404 if digest is None."""
    return require_resource(digest, "Digest not found")


def require_task(task: T | None) -> T:
    """Raise 404 if scheduled task is None."""
    return require_resource(task, "Task not found")


def require_job(job: T | None) -> T:
    """Raise 404 if generation job is None (expired and unknown look the same)."""
    return require_resource(job, "Job not found")


def to_http_exception(error: DigestError) -> HTTPException:
    """Translate a domain error into the matching HTTP error."""
    if isinstance(error, (ConfigurationError, InvalidCronError)):
        status_code = 400
    elif isinstance(error, TaskBusyError):
        status_code = 409
    elif isinstance(error, AITimeoutError):
        status_code = 504
    elif isinstance(error, (ProviderError, MinifluxError, EmptyResponseError)):
        status_code = 502
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=str(error))
