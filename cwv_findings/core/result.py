from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional


@dataclass
class TaskError:
    """Classified failure of one analysis task."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
            "timestamp": self.timestamp,
        }


@dataclass
class Result:
    """Success-with-value or failure-with-error; never both.

    Build with `Result.ok(...)` / `Result.err(...)` rather than the constructor.
    """
    success: bool
    value: Any = None
    error: Optional[TaskError] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, value: Any, **metadata) -> "Result":
        return cls(success=True, value=value, metadata=dict(metadata))

    @classmethod
    def err(cls, error: TaskError, **metadata) -> "Result":
        return cls(success=False, error=error, metadata=dict(metadata))

    def is_ok(self) -> bool:
        return self.success

    def is_err(self) -> bool:
        return not self.success

    def unwrap(self) -> Any:
        if not self.success:
            raise ValueError(f"Called unwrap on error result: {self.error.code}: {self.error.message}")
        return self.value

    def unwrap_or(self, default: Any) -> Any:
        return self.value if self.success else default

    def map(self, fn: Callable[[Any], Any]) -> "Result":
        if not self.success:
            return self
        return Result(success=True, value=fn(self.value), metadata=dict(self.metadata))
