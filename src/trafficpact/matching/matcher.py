"""Structural diff between two recorded interaction sequences.

Interactions are compared positionally, which assumes the capability
issues its HTTP calls in a stable order. Request and response bodies are
compared by schema inference (see ``trafficpact.matching.schema``) rather
than deep equality.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from trafficpact.matching.collector import ErrorCollector
from trafficpact.matching.errors import DiffError, ErrorBucket, ErrorType, MatchErrorKind
from trafficpact.matching.schema import compare_structure
from trafficpact.recording.decoding import (
    decode_response,
    get_content_encoding,
    get_request_header_value,
    get_response_header_value,
    parse_body,
)
from trafficpact.recording.models import Interaction

logger = logging.getLogger(__name__)
sensitive_logger = logging.getLogger("trafficpact.sensitive")

REQUEST_HEADERS_TO_MATCH = ("Accept",)
RESPONSE_HEADERS_TO_MATCH = ("Content-Type", "Content-Encoding", "Content-Length")


@dataclass(frozen=True)
class MatchResult:
    """Outcome of a match; ``errors`` is None exactly when ``valid``."""

    valid: bool
    errors: ErrorBucket | None = None


def _header_text(value: str | list[str] | None) -> str | None:
    if isinstance(value, list):
        return ", ".join(value)
    return value


def _presence_type(old: Any, new: Any) -> ErrorType | None:
    """Classify a difference between two optional values."""
    if old is None and new is None:
        return None
    if old is None:
        return ErrorType.ADD
    if new is None:
        return ErrorType.REMOVE
    if old != new:
        return ErrorType.CHANGE
    return None


def _match_headers(old: Interaction, new: Interaction, collector: ErrorCollector) -> None:
    logger.debug("Matching request headers")
    for name in REQUEST_HEADERS_TO_MATCH:
        old_value = _header_text(get_request_header_value(name, old.request_headers))
        new_value = _header_text(get_request_header_value(name, new.request_headers))
        error_type = _presence_type(old_value, new_value)
        if error_type is not None:
            collector.add(
                error_type,
                DiffError(
                    MatchErrorKind.REQUEST_HEADER,
                    old=old_value,
                    new=new_value,
                    header_name=name,
                ),
            )

    logger.debug("Matching response headers")
    for name in RESPONSE_HEADERS_TO_MATCH:
        old_value = get_response_header_value(name, old.raw_headers)
        new_value = get_response_header_value(name, new.raw_headers)
        error_type = _presence_type(old_value, new_value)
        if error_type is not None:
            collector.add(
                error_type,
                DiffError(
                    MatchErrorKind.RESPONSE_HEADER,
                    old=old_value,
                    new=new_value,
                    header_name=name,
                ),
            )


def _match_structured(
    kind: MatchErrorKind,
    old_value: Any,
    new_value: Any,
    collector: ErrorCollector,
) -> None:
    if old_value is None and new_value is None:
        return
    if old_value is None:
        collector.add(ErrorType.ADD, DiffError(kind, old=None, new=new_value))
        return
    if new_value is None:
        collector.add(ErrorType.REMOVE, DiffError(kind, old=old_value, new=None))
        return

    forward, reverse = compare_structure(old_value, new_value)
    if forward is not None:
        sensitive_logger.debug("%s does not match: %s", kind.value, forward)
        collector.add(
            ErrorType.CHANGE,
            DiffError(kind, old=old_value, new=new_value, validation=forward),
        )
    elif reverse is not None:
        sensitive_logger.debug("%s was extended: %s", kind.value, reverse)
        collector.add(
            ErrorType.ADD,
            DiffError(kind, old=old_value, new=new_value, validation=reverse),
        )


def _structured_response(interaction: Interaction) -> Any:
    """Return the response in structured form, decoding it if encoded.

    Raises:
        DecodeUnsupportedError: For an unknown content encoding.
        DecodeError: For a malformed encoded response.
    """
    encoding = get_content_encoding(interaction)
    if encoding is None or interaction.response is None:
        return interaction.response
    if interaction.decoded_response is not None:
        return interaction.decoded_response
    return decode_response(interaction.response, encoding)


def _match_interaction(old: Interaction, new: Interaction, collector: ErrorCollector) -> None:
    logger.debug(
        "Matching HTTP calls %s%s : %s%s", old.scope, old.path, new.scope, new.path
    )

    if old.method != new.method:
        collector.add(
            ErrorType.CHANGE, DiffError(MatchErrorKind.METHOD, old=old.method, new=new.method)
        )
    if old.status != new.status:
        collector.add(
            ErrorType.CHANGE, DiffError(MatchErrorKind.STATUS, old=old.status, new=new.status)
        )
    if old.scope != new.scope:
        collector.add(
            ErrorType.CHANGE, DiffError(MatchErrorKind.BASE_URL, old=old.scope, new=new.scope)
        )
    if old.path != new.path:
        collector.add(
            ErrorType.CHANGE, DiffError(MatchErrorKind.PATH, old=old.path, new=new.path)
        )

    _match_headers(old, new, collector)

    logger.debug("Matching request body")
    _match_structured(
        MatchErrorKind.REQUEST_BODY, parse_body(old.body), parse_body(new.body), collector
    )

    logger.debug("Matching response")
    _match_structured(
        MatchErrorKind.RESPONSE,
        _structured_response(old),
        _structured_response(new),
        collector,
    )


def match_traffic(old: Sequence[Interaction], new: Sequence[Interaction]) -> MatchResult:
    """Compare old recorded traffic with newly recorded traffic.

    A length mismatch yields one LENGTH finding and only the common
    prefix is compared further. Inputs are never mutated.

    Raises:
        DecodeUnsupportedError: If a response uses an unsupported encoding.
        DecodeError: If an encoded response cannot be decoded.
    """
    collector = ErrorCollector()

    if len(old) != len(new):
        error = DiffError(MatchErrorKind.LENGTH, old=len(old), new=len(new))
        collector.add(ErrorType.ADD if len(new) > len(old) else ErrorType.REMOVE, error)

    for old_interaction, new_interaction in zip(old, new):
        _match_interaction(old_interaction, new_interaction, collector)

    if collector.count() == 0:
        logger.debug("No changes found")
        return MatchResult(valid=True)

    return MatchResult(valid=False, errors=collector.drain())
