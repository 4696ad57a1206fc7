"""Diff findings produced by the traffic matcher.

Findings are values, not exceptions: the matcher returns them grouped in
an ErrorBucket and the impact analyzer classifies the bucket.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class MatchErrorKind(str, Enum):
    LENGTH = "length"
    METHOD = "method"
    STATUS = "status"
    BASE_URL = "base_url"
    PATH = "path"
    REQUEST_HEADER = "request_header"
    RESPONSE_HEADER = "response_header"
    REQUEST_BODY = "request_body"
    RESPONSE = "response"


class ErrorType(str, Enum):
    """Which bucket a finding belongs to."""

    ADD = "add"
    REMOVE = "remove"
    CHANGE = "change"


def _show(value: Any) -> str:
    return "not-existing" if value is None else str(value)


@dataclass(frozen=True)
class DiffError:
    """One difference between old and new traffic.

    ``header_name`` is set for header findings; ``validation`` carries the
    schema validator diagnostics for body and response findings.
    """

    kind: MatchErrorKind
    old: Any = None
    new: Any = None
    header_name: str | None = None
    validation: str | None = None

    @property
    def message(self) -> str:
        old, new = _show(self.old), _show(self.new)
        if self.kind is MatchErrorKind.LENGTH:
            return f"Number of recorded HTTP calls do not match: {old} : {new}"
        if self.kind is MatchErrorKind.METHOD:
            return f'Request method does not match: "{old}" : "{new}"'
        if self.kind is MatchErrorKind.STATUS:
            return f'Status codes do not match: "{old}" : "{new}"'
        if self.kind is MatchErrorKind.BASE_URL:
            return f'Request Base URL does not match: "{old}" : "{new}"'
        if self.kind is MatchErrorKind.PATH:
            return f'Paths do not match: "{old}" : "{new}"'
        if self.kind is MatchErrorKind.REQUEST_HEADER:
            return (
                f'Request header "{self.header_name}" does not match: '
                f'"{old}" : "{new}"'
            )
        if self.kind is MatchErrorKind.RESPONSE_HEADER:
            return (
                f'Response header "{self.header_name}" does not match: '
                f'"{old}" - "{new}"'
            )
        if self.kind is MatchErrorKind.REQUEST_BODY:
            if self.validation is not None:
                return f"Request body does not match: {self.validation}"
            return f'Request body does not match: "{old}" : "{new}"'
        message = f'Response does not match: "{old}" : "{new}"'
        if self.validation is not None:
            message += "\n" + self.validation
        return message

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ErrorBucket:
    """Findings grouped into added, removed and changed."""

    added: tuple[DiffError, ...] = ()
    removed: tuple[DiffError, ...] = ()
    changed: tuple[DiffError, ...] = ()

    def of_type(self, error_type: ErrorType) -> tuple[DiffError, ...]:
        if error_type is ErrorType.ADD:
            return self.added
        if error_type is ErrorType.REMOVE:
            return self.removed
        return self.changed

    def count(self) -> int:
        return len(self.added) + len(self.removed) + len(self.changed)

    def is_empty(self) -> bool:
        return self.count() == 0
