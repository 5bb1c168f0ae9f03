"""Success/failure value returned across the sync shell and service boundary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from .errors import BookmarkError, ErrorKind, error_kind

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of an operation that must not raise to its caller.

    Attributes:
        ok: ``True`` when the operation succeeded.
        value: The produced value (``None`` on failure).
        error: The failure (``None`` on success).
    """

    ok: bool
    value: T | None = None
    error: BaseException | None = None

    @property
    def kind(self) -> ErrorKind | None:
        """Category of the failure, or ``None`` on success."""
        if self.error is None:
            return None
        return error_kind(self.error)

    def unwrap(self) -> T:
        """Return the value or re-raise the stored error."""
        if not self.ok:
            assert self.error is not None
            raise self.error
        return self.value  # type: ignore[return-value]

    def map(self, func: Callable[[T], U]) -> Result[U]:
        """Apply *func* to a successful value; failures pass through."""
        if not self.ok:
            return Result(ok=False, error=self.error)
        return success(func(self.value))  # type: ignore[arg-type]


def success(value: T) -> Result[T]:
    return Result(ok=True, value=value)


def failure(error: BaseException | str) -> Result:
    """Build a failed ``Result``; plain strings become ``BookmarkError``."""
    if isinstance(error, str):
        error = BookmarkError(error)
    return Result(ok=False, error=error)
