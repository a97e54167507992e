"""Typed success/failure values for parsing untrusted input.

Parsers return ``Ok(value)`` or ``Error(message)`` instead of raising, so the
HTTP and WebSocket layers can turn a bad payload into a 400 or an ``error``
message with a single ``match``.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar


_T = TypeVar("_T")
_E = TypeVar("_E")


@dataclass(frozen=True)
class Ok(Generic[_T]):  # noqa: UP046
    value: _T

    def __repr__(self):
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Error(Generic[_E]):  # noqa: UP046
    value: _E

    def __repr__(self):
        return f"Error({self.value!r})"


Result = Ok[_T] | Error[_E]
