"""Outcome of a ticket lifecycle operation the backend may refuse without failing."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    NO_OPEN_TICKET = "no_open_ticket"
    NO_SOLVED_TICKET = "no_solved_ticket"


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    @property
    def ok(self) -> bool:
        return self.error_code is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, code: ErrorCode, error: Optional[str] = None) -> "Result[T]":
        return cls(error=error or code.value.replace("_", " "), error_code=code)
