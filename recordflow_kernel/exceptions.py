"""
Typed exception hierarchy for the record-processing engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The executor decides between "retry", "fail the chunk now" and "abort the
job before it starts" purely on exception type.  Matching on message text
would make that decision fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, log-safe)
  3. Exceptions carry structured DATA (surfaced as ``exc_*`` log fields)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RecordFlowError:

    RecordFlowError (base)
    |
    +-- ConfigurationError
    +-- InputSourceError
    |
    +-- PartitioningError
    |   +-- MalformedInputLineError     recovered: line skipped with warning
    |   +-- EmptyOrInvalidInputError    fatal: job aborted before execution
    |
    +-- FieldParseError                 recovered: field becomes absent
    |
    +-- ProcessingError
    |   +-- TransientProcessingError    retried with backoff
    |   |   +-- ChunkTimeoutError
    |   +-- WriterRejectionError        never retried
    |   +-- ChunkFailureError           terminal for the owning partition
    |
    +-- JobAbortedError
    +-- JobRunAlreadyExistsError

Propagation:
    record-level issues are absorbed as absent fields, chunk-level issues
    escalate to the owning partition, partition failures never reach sibling
    partitions, and only partitioning-phase errors abort the whole job.
"""

from __future__ import annotations

from pathlib import Path


class RecordFlowError(Exception):
    """
    Base exception for all engine errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "RECORDFLOW_ERROR"


# =============================================================================
# Configuration / input
# =============================================================================


class ConfigurationError(RecordFlowError):
    """Settings are missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid setting '{setting}': {reason}")


class InputSourceError(RecordFlowError):
    """The input source could not be opened or read."""

    code: str = "INPUT_SOURCE_ERROR"

    def __init__(self, source: Path | str, reason: str):
        self.source = str(source)
        self.reason = reason
        super().__init__(f"Failed to read input file {source}: {reason}")


# =============================================================================
# Partitioning
# =============================================================================


class PartitioningError(RecordFlowError):
    """Base exception for partitioning-phase errors."""

    code: str = "PARTITIONING_ERROR"


class MalformedInputLineError(PartitioningError):
    """A line has no parseable leading integer key.

    Recovered locally: the line is skipped and a warning is logged.
    """

    code: str = "MALFORMED_INPUT_LINE"

    def __init__(self, line: str, line_number: int | None = None):
        self.line = line
        self.line_number = line_number
        super().__init__(f"Malformed input line {line_number}: {line!r}")


class EmptyOrInvalidInputError(PartitioningError):
    """No valid key was found while scanning the input."""

    code: str = "EMPTY_OR_INVALID_INPUT"

    def __init__(self, source: Path | str):
        self.source = str(source)
        super().__init__(
            f"Input file {source} is empty or contains no valid IDs"
        )


# =============================================================================
# Record parsing
# =============================================================================


class FieldParseError(RecordFlowError):
    """A single field of a record could not be parsed."""

    code: str = "FIELD_PARSE_FAILURE"

    def __init__(self, field_name: str, raw_value: str | None, reason: str):
        self.field_name = field_name
        self.raw_value = raw_value
        self.reason = reason
        super().__init__(
            f"Cannot parse field '{field_name}' from {raw_value!r}: {reason}"
        )


# =============================================================================
# Chunk processing
# =============================================================================


class ProcessingError(RecordFlowError):
    """Base exception for transform/write failures."""

    code: str = "PROCESSING_ERROR"
    retryable: bool = True


class TransientProcessingError(ProcessingError):
    """A transform or write failed in a way that may succeed on retry."""

    code: str = "TRANSIENT_PROCESSING_FAILURE"

    def __init__(self, message: str, chunk_index: int | None = None):
        self.chunk_index = chunk_index
        super().__init__(message)


class ChunkTimeoutError(TransientProcessingError):
    """A chunk attempt ran past the configured per-chunk timeout."""

    code: str = "CHUNK_TIMEOUT"

    def __init__(self, chunk_index: int, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Chunk {chunk_index} exceeded timeout of {timeout_seconds}s",
            chunk_index=chunk_index,
        )


class WriterRejectionError(ProcessingError):
    """The writer refused a chunk; retrying cannot help."""

    code: str = "WRITER_REJECTION"
    retryable: bool = False

    def __init__(self, reason: str, record_index: int | None = None):
        self.reason = reason
        self.record_index = record_index
        super().__init__(f"Chunk rejected by writer: {reason}")


class ChunkFailureError(ProcessingError):
    """A chunk reached FAILED_TERMINAL; the owning partition stops."""

    code: str = "CHUNK_FAILURE"
    retryable: bool = False

    def __init__(
        self,
        partition_id: str,
        chunk_index: int,
        attempts: int,
        cause_code: str,
        cause_message: str,
    ):
        self.partition_id = partition_id
        self.chunk_index = chunk_index
        self.attempts = attempts
        self.cause_code = cause_code
        self.cause_message = cause_message
        super().__init__(
            f"Chunk {chunk_index} of {partition_id} failed after "
            f"{attempts} attempt(s): {cause_message}"
        )


# =============================================================================
# Job lifecycle
# =============================================================================


class JobAbortedError(RecordFlowError):
    """The job-level abort signal was raised."""

    code: str = "JOB_ABORTED"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} was aborted")


class JobRunAlreadyExistsError(RecordFlowError):
    """A job run with the same parameters has already been started."""

    code: str = "JOB_RUN_ALREADY_EXISTS"

    def __init__(self, idempotency_key: str, existing_job_id: str):
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id
        super().__init__(
            f"Job run already exists for {idempotency_key}: {existing_job_id}"
        )


def is_retryable(exc: BaseException) -> bool:
    """Return True when a failed chunk attempt may be retried.

    Unknown exceptions from transform or write are treated as transient.
    """
    if isinstance(exc, ProcessingError):
        return exc.retryable
    return isinstance(exc, Exception)


def error_code_of(exc: BaseException) -> str:
    """Machine-readable code for any exception."""
    return getattr(exc, "code", None) or type(exc).__name__
