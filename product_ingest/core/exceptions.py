"""
Pipeline failure taxonomy.

Every error surfaced by the ingestion pipeline derives from PipelineError.
Row-level rule violations are not exceptions: they are recorded as staging
row state by the validation engine.
"""


class PipelineError(Exception):
    """Base class for all ingestion pipeline failures."""

    def __init__(self, message: str, batch_id: str | None = None):
        self.message = message
        self.batch_id = batch_id
        super().__init__(message)


class ParseFailure(PipelineError):
    """The uploaded file could not be turned into product records."""

    def __init__(self, message: str, row_errors: list[tuple[int, str]] | None = None):
        super().__init__(message)
        self.row_errors = row_errors or []


class EmptySheet(ParseFailure):
    """The workbook contains no sheets."""


class EmptyFile(ParseFailure):
    """The first sheet has a header but no data rows."""


class StagingFailure(PipelineError):
    """Batch header or staging rows could not be written."""


class ValidationFailure(PipelineError):
    """Unexpected error while evaluating validation rules for a batch."""


class ChunkFailure(PipelineError):
    """A chunk's unit of work failed and was rolled back."""

    def __init__(self, message: str, batch_id: str | None = None, chunk_index: int | None = None):
        super().__init__(message, batch_id)
        self.chunk_index = chunk_index


class NotFoundFailure(PipelineError):
    """Unknown batch or product identifier."""


class InvalidStateTransition(PipelineError):
    """The requested operation is not allowed from the batch's current status."""

    def __init__(
        self,
        message: str,
        batch_id: str | None = None,
        current_status: str | None = None,
        requested_status: str | None = None,
    ):
        super().__init__(message, batch_id)
        self.current_status = current_status
        self.requested_status = requested_status
