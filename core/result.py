from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from core.exceptions import StorageFailure

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a storage call: a value on success, a failure otherwise, never both"""

    value: Optional[T] = None
    error: Optional[StorageFailure] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: StorageFailure) -> "Result[T]":
        return cls(error=error)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        """Return the value or raise the failure"""
        if self.error is not None:
            raise self.error
        return self.value
