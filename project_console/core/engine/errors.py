"""
Error taxonomy for the relationship resolution and batched query engine.

Recoverable conditions (NoRelationshipFound, PartialFailure, DeadlineExceeded)
are absorbed by the report pipelines and turned into a flagged best-effort
response. SchemaNotFound on a required object and ValidationRejected fail the
whole request.
"""

from typing import Any, Dict, List, Optional


class EngineError(Exception):
    """Base exception for the query engine."""

    pass


class RemoteStoreError(EngineError):
    """Transport or API failure talking to the remote object store."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class SchemaNotFound(EngineError):
    """
    Remote object (or field) could not be described.

    The underlying transport/permission error is attached as __cause__.
    Non-retryable.
    """

    def __init__(self, object_name: str, reason: str = ""):
        message = f"Object '{object_name}' could not be described"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.object_name = object_name


class NoRelationshipFound(EngineError):
    """No field or junction connects the two object types (degraded data, not fatal)."""

    def __init__(self, source_type: str, target_type: str, tried: Optional[List[str]] = None):
        super().__init__(
            f"No relationship found between {source_type} and {target_type}"
        )
        self.source_type = source_type
        self.target_type = target_type
        self.tried = tried or []


class PartialFailure(EngineError):
    """Some batches of a batched fetch failed."""

    def __init__(self, succeeded_batches: List[int], failed_batches: Dict[int, str]):
        super().__init__(
            f"{len(failed_batches)} of {len(succeeded_batches) + len(failed_batches)} batches failed"
        )
        self.succeeded_batches = succeeded_batches
        self.failed_batches = failed_batches


class DeadlineExceeded(EngineError):
    """The request's wall-clock budget ran out. Surfaced, never retried."""

    def __init__(self, step: str, elapsed_ms: int):
        super().__init__(f"Request timeout: processing took too long ({step}, {elapsed_ms}ms)")
        self.step = step
        self.elapsed_ms = elapsed_ms


class ValidationRejected(EngineError):
    """Input failed injection or shape checks; raised before any remote call."""

    pass


class UnknownField(EngineError):
    """A display field name does not map to any field on the schema."""

    def __init__(self, display_name: str, object_name: str):
        super().__init__(f"Unknown field '{display_name}' on {object_name}")
        self.display_name = display_name
        self.object_name = object_name


class RecordCreateFailed(EngineError):
    """The remote store rejected a create call with field-level errors."""

    def __init__(self, object_name: str, errors: List[Dict[str, Any]]):
        messages = "; ".join(str(e.get("message", e)) for e in errors) or "unknown error"
        super().__init__(f"Failed to create {object_name}: {messages}")
        self.object_name = object_name
        self.errors = errors
