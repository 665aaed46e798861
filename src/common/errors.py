"""errors.py
Failure taxonomy of the extraction pipeline.

Adapter-level errors (:class:`FetchError`, :class:`ParseError`,
:class:`OperationTimeoutError`) are raised close to the network/DOM work and
converted to a single :class:`ExtractionError` at the orchestrator boundary.
"""

from __future__ import annotations

from typing import Optional

ACCESS_DENIED_STATUSES = frozenset({401, 403})


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class InvalidInputError(PipelineError, ValueError):
    """Malformed URL, unsupported upload or missing required field."""


class FetchError(PipelineError):
    """Network failure, non-2xx status or access denial."""

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status

    @property
    def is_access_denied(self) -> bool:
        return self.status in ACCESS_DENIED_STATUSES


class ParseError(PipelineError):
    """Page or PDF structure did not match expectations."""


class OperationTimeoutError(PipelineError, TimeoutError):
    """A network, render or parse deadline was exceeded."""


class BusyError(OperationTimeoutError):
    """No rendering session became free within the queue deadline."""


class ClassificationError(PipelineError):
    """The discipline model failed on a non-empty input."""


class ExtractionError(PipelineError):
    """Terminal failure of one extraction request.

    ``reason`` is ``"source"`` (could not reach or parse the source),
    ``"timeout"``, ``"content"`` (source parsed but no usable title) or
    ``"internal"`` (an unexpected failure inside the pipeline).
    """

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        reason: str = "source",
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.reason = reason
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return self.reason in {"source", "timeout"}
