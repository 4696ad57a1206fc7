"""Accumulator for diff findings, one instance per match call."""

from __future__ import annotations

import logging

from trafficpact.matching.errors import DiffError, ErrorBucket, ErrorType

logger = logging.getLogger(__name__)


class ErrorCollector:
    """Buckets DiffError findings by ErrorType.

    Holds no business logic; the taxonomy lives in ErrorType and the
    severity rules in the impact analyzer.
    """

    def __init__(self) -> None:
        self._errors: dict[ErrorType, list[DiffError]] = {t: [] for t in ErrorType}

    def add(self, error_type: ErrorType, error: DiffError) -> None:
        logger.debug("Collected %s finding: %s", error_type.value, error.kind.value)
        self._errors[error_type].append(error)

    def count(self) -> int:
        return sum(len(errors) for errors in self._errors.values())

    def drain(self) -> ErrorBucket:
        """Return the collected findings and reset the collector."""
        bucket = ErrorBucket(
            added=tuple(self._errors[ErrorType.ADD]),
            removed=tuple(self._errors[ErrorType.REMOVE]),
            changed=tuple(self._errors[ErrorType.CHANGE]),
        )
        self._errors = {t: [] for t in ErrorType}
        return bucket
