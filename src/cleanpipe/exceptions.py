# Error taxonomy for the pipeline
# Cleaning errors are row-level, metric errors abort the whole view.
from typing import Any, List, Optional


class PipelineError(Exception):
    # Base error: missing required input, unsupported rerun, ...
    pass


class ConfigurationError(PipelineError):
    # Dataset / rule configuration rejected before the run starts
    def __init__(self, message: str, errors: Optional[Any] = None):
        super().__init__(message)
        self.errors = errors or {}


class MalformedFieldError(PipelineError):
    # A non-null value could not be coerced to its declared type
    def __init__(self, field: str, value: Any, expected_type: str, row_number: Optional[int] = None):
        self.field = field
        self.value = value
        self.expected_type = expected_type
        self.row_number = row_number
        super().__init__(
            f"Field '{field}' value {value!r} is not a valid {expected_type}"
            + (f" (row {row_number})" if row_number is not None else "")
        )

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "value": self.value,
            "expected_type": self.expected_type,
            "row_number": self.row_number,
        }


class AmbiguousBackfillError(PipelineError):
    # Siblings sharing a join key disagree on the value to propagate
    def __init__(self, field: str, join_key: List[str], key_value: Any, candidates: List[Any]):
        self.field = field
        self.join_key = join_key
        self.key_value = key_value
        self.candidates = candidates
        super().__init__(
            f"Cannot backfill '{field}' for {join_key}={key_value!r}: "
            f"siblings disagree ({candidates})"
        )


class MetricComputationError(PipelineError):
    # Raised while building a view; partial aggregates are never returned
    def __init__(self, view: str, message: str):
        self.view = view
        super().__init__(f"View '{view}' failed: {message}")
