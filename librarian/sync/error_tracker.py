"""
Failure taxonomy and per-batch failure reporting.

Exceptions:
- RemoteFetchError / RemoteWriteError: a call against the content repository
  API failed; `status` holds the HTTP status, None for transport failures.
- LocalIOError: the static mirror could not be read or written.
- MalformedContentError: a document lacks its `data` object or a required field.
- PublishError: the only error a publish request surfaces to its caller.

ErrorTracker collects the failures of one reconciliation batch. Each failure
is attached to the content item (`source_id`) it abandoned, or to none when
the whole batch was affected (folding, flushing).
"""

from collections import Counter
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Optional, Dict, Any


class ErrorSeverity(Enum):
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return list(ErrorSeverity).index(self)


@dataclass
class ItemFailure:
    """One failure recorded while applying a batch."""
    message: str
    source_id: Optional[str] = None
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Dict[str, Any] = field(default_factory=dict)
    recovery_suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['severity'] = self.severity.value
        return data


class SyncException(Exception):
    """Base class for librarian failures; `source_id` names the path or item concerned."""
    def __init__(self, message: str, source_id: Optional[str] = None, recovery_suggestion: Optional[str] = None):
        self.message = message
        self.source_id = source_id
        self.recovery_suggestion = recovery_suggestion
        super().__init__(message)


class RemoteError(SyncException):
    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        self.status = status
        super().__init__(message, **kwargs)


class RemoteFetchError(RemoteError):
    """A contents, ref, commit or history read failed (network, 4xx other than an allowed 404, 5xx)."""


class RemoteWriteError(RemoteError):
    """A blob, tree, commit, ref or pull request call failed."""


class LocalIOError(SyncException):
    pass


class MalformedContentError(SyncException):
    pass


class PublishError(SyncException):
    pass


class ErrorTracker:
    """Accumulates the failures of one reconciliation batch."""

    def __init__(self):
        self.errors: List[ItemFailure] = []

    def report(self, message: str, source_id: Optional[str] = None, severity: ErrorSeverity = ErrorSeverity.ERROR,
               details: Optional[Dict[str, Any]] = None, recovery_suggestion: Optional[str] = None) -> ItemFailure:
        failure = ItemFailure(message, source_id, severity, details or {}, recovery_suggestion)
        self.errors.append(failure)
        return failure

    def report_exception(self, exc: SyncException, severity: ErrorSeverity = ErrorSeverity.ERROR,
                         source_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> ItemFailure:
        """Record a librarian exception; `source_id` overrides the path the exception names."""
        merged = {'exception': type(exc).__name__}
        if isinstance(exc, RemoteError):
            merged['status'] = exc.status
        merged.update(details or {})
        return self.report(exc.message, source_id or exc.source_id, severity, merged, exc.recovery_suggestion)

    def get_errors(self, min_severity: ErrorSeverity = ErrorSeverity.WARNING) -> List[ItemFailure]:
        return [e for e in self.errors if e.severity.rank >= min_severity.rank]

    def failed_items(self) -> List[str]:
        """Keys of the items abandoned in this batch, in report order."""
        return [e.source_id for e in self.errors if e.source_id is not None]

    def has_critical_errors(self) -> bool:
        return any(e.severity is ErrorSeverity.CRITICAL for e in self.errors)

    def generate_report(self) -> Dict[str, Any]:
        counts = Counter(e.severity for e in self.errors)
        return {
            "total_errors": len(self.errors),
            "critical_count": counts[ErrorSeverity.CRITICAL],
            "error_count": counts[ErrorSeverity.ERROR],
            "warning_count": counts[ErrorSeverity.WARNING],
            "failed_items": self.failed_items(),
            "errors": [e.to_dict() for e in self.errors],
        }
