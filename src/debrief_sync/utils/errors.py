"""
Exception hierarchy for debrief-sync.

Every error raised across a component boundary is a DebriefError carrying
a stable code, a severity and category for log routing, whether a retry
can help, and an ErrorContext naming where it happened (component,
operation and, for sync failures, the composite key).
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .logging import get_logger


logger = get_logger("debrief-sync.errors")


class ErrorSeverity(Enum):
    """How loudly an error is reported."""
    DEBUG = "debug"
    WARNING = "warning"
    ERROR = "error"


class ErrorCategory(Enum):
    """Which subsystem an error belongs to."""
    NETWORK = "network"
    STORAGE = "storage"
    CODEC = "codec"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Where an error happened."""
    component: Optional[str] = None
    operation: Optional[str] = None
    key: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def fill(self, component: str, operation: str, metadata: Dict[str, Any]) -> None:
        """Fill in missing location fields without overwriting inner ones."""
        self.component = self.component or component
        self.operation = self.operation or operation
        self.key = self.key or metadata.get("key")
        for name, value in metadata.items():
            self.metadata.setdefault(name, value)


class DebriefError(Exception):
    """Base exception for all debrief-sync errors."""

    code = "DEBRIEF_ERROR"
    default_message = "debrief-sync failed"
    severity = ErrorSeverity.ERROR
    category = ErrorCategory.UNKNOWN
    is_retryable = False

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message or self.default_message
        self.context = context if context is not None else ErrorContext()
        self.cause = cause
        super().__init__(self.message)

    def get_suggestions(self) -> List[str]:
        """Hints shown to the user alongside the message."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        ctx = self.context
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "severity": self.severity.value,
                "category": self.category.value,
                "is_retryable": self.is_retryable,
                "suggestions": self.get_suggestions(),
                "cause": repr(self.cause) if self.cause is not None else None,
                "context": {
                    "component": ctx.component,
                    "operation": ctx.operation,
                    "key": ctx.key,
                    "metadata": ctx.metadata,
                    "occurred_at": ctx.occurred_at.isoformat(),
                },
            }
        }


class ConfigurationError(DebriefError):
    """Invalid or unreadable configuration."""
    code = "CONFIG_ERROR"
    default_message = "Invalid configuration"
    category = ErrorCategory.CONFIGURATION

    def get_suggestions(self) -> List[str]:
        return [
            "Check the syntax of the files passed with --config",
            "Check DEBRIEF_* environment variables (use __ between nested fields)",
        ]


class ValidationError(DebriefError):
    """A mutation was rejected before touching local state."""
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.WARNING

    def __init__(self, field: str, value: Any, constraint: str, **kwargs):
        self.field = field
        self.value = value
        self.constraint = constraint
        super().__init__(f"Invalid {field} {value!r}: {constraint}", **kwargs)

    def get_suggestions(self) -> List[str]:
        return [f"{self.field} {self.constraint}"]


class CodecError(DebriefError):
    """A multiplexed column could not be decoded.

    Raised inside the codec only; decoders catch it and fall back to the
    legacy interpretation.
    """
    code = "CODEC_ERROR"
    default_message = "Malformed encoded field"
    category = ErrorCategory.CODEC
    severity = ErrorSeverity.DEBUG


class RemoteStoreError(DebriefError):
    """The shared remote table could not be reached or rejected a request."""
    code = "REMOTE_STORE_ERROR"
    default_message = "Remote store error"
    category = ErrorCategory.NETWORK
    is_retryable = True


class RemoteReadError(RemoteStoreError):
    """A select against the remote store failed."""
    code = "REMOTE_READ_ERROR"
    default_message = "Failed to read from the remote store"
    severity = ErrorSeverity.WARNING


class RemoteWriteError(RemoteStoreError):
    """An upsert against the remote store failed."""
    code = "REMOTE_WRITE_ERROR"
    default_message = "Failed to save to the remote store"

    def get_suggestions(self) -> List[str]:
        return [
            "Your change is kept locally",
            "Edit the field again to retry the save",
        ]


class StorageError(DebriefError):
    """The local preference file could not be written."""
    code = "STORAGE_ERROR"
    default_message = "Local storage error"
    category = ErrorCategory.STORAGE


@contextmanager
def error_context(component: str, operation: str, reraise: bool = True, **metadata) -> Iterator[ErrorContext]:
    """
    Attach location to errors raised inside the block.

    DebriefErrors keep their type and get missing context filled in. Any
    other exception is wrapped in a DebriefError chained to the original.
    With reraise=False the error is only logged.
    """
    context = ErrorContext(component=component, operation=operation, key=metadata.get("key"), metadata=metadata)
    try:
        yield context
    except DebriefError as e:
        e.context.fill(component, operation, metadata)
        logger.warning("error_in_context", code=e.code, component=component, operation=operation,
                       key=e.context.key, error=e.message)
        if reraise:
            raise
    except Exception as e:
        wrapped = DebriefError(message=f"{type(e).__name__}: {e}", context=context, cause=e)
        logger.error("unexpected_error_in_context", component=component, operation=operation,
                     key=context.key, error=wrapped.message, exc_info=True)
        if reraise:
            raise wrapped from e


__all__ = [
    'DebriefError',
    'ErrorContext',
    'ErrorSeverity',
    'ErrorCategory',
    'ConfigurationError',
    'ValidationError',
    'CodecError',
    'RemoteStoreError',
    'RemoteReadError',
    'RemoteWriteError',
    'StorageError',
    'error_context',
]
