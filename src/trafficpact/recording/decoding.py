"""Decoding helpers for recorded request bodies and responses.

Recorded bodies may be url-encoded form strings and recorded responses
may be transfer-encoded (gzip, deflate) lists of hex chunks. Both are
turned into structured values here before scrubbing or matching.
Unsupported encodings raise; they are never skipped silently.
"""

from __future__ import annotations

import binascii
import gzip
import json
import logging
import re
import zlib
from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import parse_qsl, unquote

from trafficpact.errors import DecodeError, DecodeUnsupportedError, UnexpectedError
from trafficpact.recording.models import Interaction

logger = logging.getLogger(__name__)

CONTENT_ENCODING_HEADER = "Content-Encoding"

_ISO_DATE_PATTERN = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2}(?:\.\d*)?)((-(\d{2}):(\d{2})|Z)?)"
)


def get_request_header_value(
    name: str, headers: Mapping[str, str | list[str]] | None
) -> str | list[str] | None:
    """Look up a request header case-insensitively."""
    if not headers:
        return None
    lowered = name.lower()
    for header_name, value in headers.items():
        if header_name.lower() == lowered:
            return value
    return None


def get_response_header_value(name: str, raw_headers: Sequence[str] | None) -> str | None:
    """Look up a header in a flat ``[name, value, name, value, ...]`` list.

    Only name positions are compared, so a header value that happens to
    equal ``name`` is never mistaken for a header name.
    """
    if not raw_headers:
        return None
    lowered = name.lower()
    for i in range(0, len(raw_headers) - 1, 2):
        if raw_headers[i].lower() == lowered:
            return raw_headers[i + 1]
    return None


def _maybe_json(value: str) -> Any:
    stripped = value.strip()
    if stripped.startswith(("{", "[")):
        try:
            return json.loads(stripped)
        except ValueError:
            return value
    return value


def parse_body(body: Any) -> Any:
    """Turn a recorded request body into a structured value.

    Returns None for a missing or empty body. Structured bodies pass
    through. A string holding a JSON object or array is decoded as JSON
    even when it contains ``=``. Other strings are treated as (possibly
    fully percent-encoded) ``application/x-www-form-urlencoded`` data;
    form values that look like JSON objects or arrays are decoded. A
    string without any ``=`` is JSON-decoded when possible and otherwise
    returned unchanged.
    """
    if body is None or body == "":
        return None
    if not isinstance(body, str):
        return body

    if body.lstrip().startswith(("{", "[")):
        try:
            return json.loads(body)
        except ValueError:
            pass

    text = body
    if "=" not in text and "=" in unquote(text):
        text = unquote(text)

    if "=" not in text:
        try:
            return json.loads(text)
        except ValueError:
            return body

    result: dict[str, Any] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        parsed = _maybe_json(value)
        if key in result:
            existing = result[key]
            if isinstance(existing, list):
                existing.append(parsed)
            else:
                result[key] = [existing, parsed]
        else:
            result[key] = parsed
    return result


def _decompress(data: bytes, encoding: str) -> bytes:
    if encoding in ("gzip", "x-gzip"):
        return gzip.decompress(data)
    if encoding == "deflate":
        try:
            return zlib.decompress(data)
        except zlib.error:
            # Some servers send raw deflate streams without the zlib header.
            return zlib.decompress(data, -zlib.MAX_WBITS)
    if encoding == "identity":
        return data
    raise DecodeUnsupportedError(encoding)


def decode_response(response: Any, content_encoding: str) -> Any:
    """Decode a transfer-encoded response recorded as hex chunks.

    Multiple encodings (``gzip, deflate``) are undone in reverse order.
    The payload is JSON-decoded when possible, otherwise returned as text.

    Raises:
        DecodeUnsupportedError: If an encoding is not supported.
        DecodeError: If the recorded response is not a list of hex chunks
            or cannot be decompressed.
    """
    encodings = [e.strip().lower() for e in content_encoding.split(",") if e.strip()]
    for encoding in encodings:
        if encoding not in ("gzip", "x-gzip", "deflate", "identity"):
            raise DecodeUnsupportedError(encoding)

    if not isinstance(response, list) or not all(isinstance(c, str) for c in response):
        raise DecodeError(
            f'Response is encoded by "{content_encoding}" and is not an array'
        )

    try:
        data = binascii.unhexlify("".join(response))
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Response chunks are not valid hex data: {exc}") from exc

    for encoding in reversed(encodings):
        try:
            data = _decompress(data, encoding)
        except (OSError, EOFError, zlib.error) as exc:
            raise DecodeError(
                f'Response could not be decoded with "{encoding}": {exc}'
            ) from exc

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Decoded response is not valid UTF-8: {exc}") from exc

    try:
        return json.loads(text)
    except ValueError:
        return text


def get_content_encoding(interaction: Interaction) -> str | None:
    return get_response_header_value(CONTENT_ENCODING_HEADER, interaction.raw_headers)


def decode_interactions(interactions: list[Interaction]) -> list[Interaction]:
    """Populate ``decoded_response`` for every transfer-encoded interaction."""
    for interaction in interactions:
        encoding = get_content_encoding(interaction)
        if encoding is None or interaction.response is None:
            continue
        logger.debug(
            "Decoding %s response of %s %s",
            encoding,
            interaction.method,
            interaction.path,
        )
        interaction.decoded_response = decode_response(interaction.response, encoding)
    return interactions


def assert_definitions_are_not_strings(definitions: Sequence[Any]) -> None:
    """Reject raw string definitions returned by a misconfigured backend."""
    for definition in definitions:
        if isinstance(definition, str):
            raise UnexpectedError("definition is a string, not object")


def remove_timestamp(payload: str) -> str:
    """Strip ISO-8601 timestamps so error strings compare stably."""
    return _ISO_DATE_PATTERN.sub("", payload)
