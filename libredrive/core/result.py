"""
Typed Result Values
===================

Success/error variants for callers that prefer explicit handling over
exception propagation.

Usage:
    match attempt(service.download_file, file_id):
        case Ok(value=data):
            ...
        case Err(error=MetadataNotFound()):
            ...
        case Err(error=NotEnoughShards() as e):
            ...
        case Err(error=e):
            ...

Only LibreDriveError subclasses are captured. Anything else (programming
errors, KeyboardInterrupt) propagates normally.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

from libredrive.core.errors import LibreDriveError

T = TypeVar("T")
E = TypeVar("E", bound=LibreDriveError)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome carrying the operation's return value."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failed outcome carrying the typed error."""

    error: E

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Err[LibreDriveError]]


def attempt(func: Callable[..., T], *args, **kwargs) -> Result[T]:
    """
    Run an operation and wrap its outcome.

    Args:
        func: Callable to run
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Ok with the return value, or Err with the LibreDriveError raised
    """
    try:
        return Ok(func(*args, **kwargs))
    except LibreDriveError as e:
        return Err(e)
