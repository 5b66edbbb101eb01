from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar("T")

SUCCEEDED = "succeeded"
FAILED = "failed"
DISABLED = "disabled"


@dataclass
class StepResult(Generic[T]):
    """
    Outcome of one pipeline step. An empty ``items`` list with ``ok=True``
    means the step worked and found nothing; ``ok=False`` means it broke.
    """

    ok: bool
    items: List[T] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def success(cls, items: List[T]) -> "StepResult[T]":
        return cls(ok=True, items=list(items))

    @classmethod
    def failure(cls, reason: str) -> "StepResult[T]":
        return cls(ok=False, items=[], error=reason)

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class SourceReport:
    source: str
    status: str = SUCCEEDED
    extracted: int = 0
    dropped: int = 0
    persisted: int = 0
    with_images: int = 0
    errors: List[str] = field(default_factory=list)
    duration: float = 0.0
    exit_code: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    def fail(self, reason: str) -> "SourceReport":
        self.status = FAILED
        self.errors.append(reason)
        return self

    def as_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "status": self.status,
            "extracted": self.extracted,
            "dropped": self.dropped,
            "persisted": self.persisted,
            "with_images": self.with_images,
            "errors": list(self.errors),
            "duration": round(self.duration, 2),
        }
