"""Exception hierarchy for the ingestion pipeline.

Per-row errors (ValidationError, ConflictError) stay inside the batch loop.
Per-message errors stop at the consumer's message handler. Skips for wrong
file types and invalid rows are outcomes, not exceptions.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class StructuralError(PipelineError):
    """The message envelope is empty, not JSON, or missing required fields."""


class FileUnavailableError(PipelineError):
    """The file referenced by an upload event cannot be reached."""


class SpreadsheetError(PipelineError):
    """The file bytes could not be read as a workbook."""


class ValidationError(PipelineError):
    """A candidate record breaks the field rules."""


class ConflictError(PipelineError):
    """A candidate collides with a persisted record on a unique field."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"{field} already exists")


class EmptyBatchError(PipelineError):
    """No account was created from an upload."""


class PublishError(PipelineError):
    """A notification was not acknowledged by the bus."""
