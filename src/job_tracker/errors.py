from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class TrackerError(Exception):
    """Base class for recoverable tracker failures."""

    code = "tracker_error"


class NotFound(TrackerError):
    code = "not_found"


class InvalidStage(TrackerError):
    code = "invalid_stage"


class InvalidRange(TrackerError):
    code = "invalid_range"


class StageInUse(TrackerError):
    code = "stage_in_use"


class InvalidField(TrackerError):
    code = "invalid_field"


class InvalidPolicy(TrackerError):
    code = "invalid_policy"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result handed back to UI collaborators instead of raising."""

    value: Optional[T] = None
    error: Optional[TrackerError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def message(self) -> str:
        return str(self.error) if self.error else ""

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


def capture(fn: Callable[..., T], *args: Any, **kwargs: Any) -> Outcome[T]:
    try:
        return Outcome(value=fn(*args, **kwargs))
    except TrackerError as e:
        return Outcome(error=e)
