"""Bidirectional placeholder substitution for recorded interactions.

Scrubbing replaces secrets, integration parameters and selected input
values with placeholder tokens before a recording is written; restoring
puts the real values back before recorded traffic is replayed. Both
directions run the same placement rules with search and replacement
swapped, so ``restore(scrub(x)) == x`` for traffic that does not already
contain a placeholder token.

Every search matches the raw value and its percent-encoded form.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import quote

from trafficpact.models.security import ApiKeyPlacement, HttpScheme, SecurityType
from trafficpact.recording.decoding import get_content_encoding
from trafficpact.recording.models import Interaction
from trafficpact.recording.placeholders import (
    PlaceholderKind,
    PlaceholderSpec,
    ScrubDirection,
)

logger = logging.getLogger(__name__)
# Secret values are only ever logged here; keep it disabled in shared logs.
sensitive_logger = logging.getLogger("trafficpact.sensitive")

AUTH_HEADER_NAME = "Authorization"
WWW_AUTH_HEADER_NAME = "WWW-Authenticate"
URL_ENCODED_SUFFIX = "__URLENCODED"

_HTTP_SCHEME_PREFIX: dict[HttpScheme, str] = {
    HttpScheme.BASIC: "Basic",
    HttpScheme.BEARER: "Bearer",
    HttpScheme.DIGEST: "Digest",
}


def encode_uri_component(value: str) -> str:
    """Percent-encode like JavaScript's encodeURIComponent."""
    return quote(value, safe="!~*'()")


def includes(payload: str, value: str) -> bool:
    if value == "":
        return False
    return value in payload or encode_uri_component(value) in payload


def replace_value(payload: str, search: str, replacement: str) -> str:
    """Replace every raw or percent-encoded occurrence of ``search``.

    Empty ``search`` is a no-op.
    """
    if search == "":
        return payload
    forms = sorted({search, encode_uri_component(search)}, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(form) for form in forms))
    return pattern.sub(lambda _: replacement, payload)


def _url_substitutions(
    search: str, replacement: str, direction: ScrubDirection
) -> dict[str, str]:
    """Map each searched form to its replacement inside URL-encoded text.

    A value recorded percent-encoded scrubs to ``<token>__URLENCODED``
    and a raw one to ``<token>``, so restoring writes back the form that
    was recorded.
    """
    if direction is ScrubDirection.SCRUB:
        token = encode_uri_component(replacement)
        forms = {search: token}
        encoded = encode_uri_component(search)
        if encoded != search:
            forms[encoded] = token + URL_ENCODED_SUFFIX
        return forms

    encoded_token = encode_uri_component(search)
    forms = {
        search + URL_ENCODED_SUFFIX: encode_uri_component(replacement),
        encoded_token + URL_ENCODED_SUFFIX: encode_uri_component(replacement),
    }
    forms.setdefault(search, replacement)
    forms.setdefault(encoded_token, replacement)
    return forms


def replace_url_value(
    payload: str, search: str, replacement: str, direction: ScrubDirection
) -> str:
    """Like ``replace_value``, keeping raw and percent-encoded forms apart."""
    if search == "":
        return payload
    forms = _url_substitutions(search, replacement, direction)
    pattern = re.compile(
        "|".join(re.escape(form) for form in sorted(forms, key=len, reverse=True))
    )
    return pattern.sub(lambda match: forms[match.group(0)], payload)


def _replace_in_structure(value: Any, search: str, replacement: str) -> Any:
    """Replace inside every string (keys included) of a JSON-like value."""
    if isinstance(value, str):
        return replace_value(value, search, replacement)
    if isinstance(value, list):
        return [_replace_in_structure(item, search, replacement) for item in value]
    if isinstance(value, dict):
        return {
            replace_value(k, search, replacement) if isinstance(k, str) else k:
                _replace_in_structure(v, search, replacement)
            for k, v in value.items()
        }
    return value


def _structure_includes(value: Any, search: str) -> bool:
    if isinstance(value, str):
        return includes(value, search)
    if isinstance(value, list):
        return any(_structure_includes(item, search) for item in value)
    if isinstance(value, dict):
        return any(
            (isinstance(k, str) and includes(k, search)) or _structure_includes(v, search)
            for k, v in value.items()
        )
    return False


def _split_path(path: str) -> tuple[str, str | None, str | None]:
    fragment = None
    if "#" in path:
        path, fragment = path.split("#", 1)
    query = None
    if "?" in path:
        path, query = path.split("?", 1)
    return path, query, fragment


def _join_path(pathname: str, query: str | None, fragment: str | None) -> str:
    result = pathname
    if query is not None:
        result += "?" + query
    if fragment is not None:
        result += "#" + fragment
    return result


def _is_form_encoded(body: str) -> bool:
    """Form bodies carry percent-encoded values, JSON and text bodies do not."""
    stripped = body.lstrip()
    return "=" in body and not stripped.startswith(("{", "["))


def _find_header(headers: dict[str, Any], name: str) -> str | None:
    lowered = name.lower()
    for header_name in headers:
        if header_name.lower() == lowered:
            return header_name
    return None


# -- Location-specific replacements --
#
# Each function takes (interaction, search, replacement), plus the
# direction where URL encoding is involved, and never fails
# when its target location is absent.


def replace_in_headers(interaction: Interaction, search: str, replacement: str) -> None:
    headers = interaction.request_headers
    if not headers:
        return
    for name, value in list(headers.items()):
        if isinstance(value, list):
            if any(includes(v, search) for v in value):
                logger.debug("Replacing value in request header")
                sensitive_logger.debug("Request header %s: %s", name, value)
                headers[name] = [replace_value(v, search, replacement) for v in value]
        elif includes(value, search):
            logger.debug("Replacing value in request header")
            sensitive_logger.debug("Request header %s: %s", name, value)
            headers[name] = replace_value(value, search, replacement)


def replace_in_raw_headers(interaction: Interaction, search: str, replacement: str) -> None:
    if not interaction.raw_headers:
        return
    replaced = []
    for header in interaction.raw_headers:
        if includes(header, search):
            logger.debug("Replacing value in raw header")
            sensitive_logger.debug("Raw header: %s", header)
            header = replace_value(header, search, replacement)
        replaced.append(header)
    interaction.raw_headers = replaced


def replace_in_body(
    interaction: Interaction,
    search: str,
    replacement: str,
    direction: ScrubDirection,
) -> None:
    body = interaction.body
    if body is None or body == "":
        return

    if isinstance(body, str):
        if includes(body, search):
            logger.debug("Replacing value in request body")
            sensitive_logger.debug("Request body: %s", body)
            if _is_form_encoded(body):
                interaction.body = replace_url_value(body, search, replacement, direction)
            else:
                interaction.body = replace_value(body, search, replacement)
        return

    if _structure_includes(body, search):
        logger.debug("Replacing value in request body")
        sensitive_logger.debug("Request body: %s", body)
        interaction.body = _replace_in_structure(body, search, replacement)


def replace_in_response(interaction: Interaction, search: str, replacement: str) -> None:
    # An encoded response is a list of hex chunks; only its decoded form
    # can contain plain values.
    targets = ["decoded_response"]
    if get_content_encoding(interaction) is None:
        targets.insert(0, "response")

    for target in targets:
        value = getattr(interaction, target)
        if value is None:
            continue
        if _structure_includes(value, search):
            logger.debug("Replacing value in %s", target)
            sensitive_logger.debug("%s: %s", target, value)
            setattr(interaction, target, _replace_in_structure(value, search, replacement))


def replace_in_scope(interaction: Interaction, search: str, replacement: str) -> None:
    if includes(interaction.scope, search):
        logger.debug("Replacing value in scope")
        sensitive_logger.debug("Scope: %s", interaction.scope)
        interaction.scope = replace_value(interaction.scope, search, replacement)


def replace_in_path(
    interaction: Interaction,
    search: str,
    replacement: str,
    direction: ScrubDirection,
) -> None:
    pathname, query, fragment = _split_path(interaction.path)
    if includes(pathname, search):
        logger.debug("Replacing value in path")
        sensitive_logger.debug("Request path: %s", pathname)
        pathname = replace_url_value(pathname, search, replacement, direction)
        interaction.path = _join_path(pathname, query, fragment)


def replace_in_query(
    interaction: Interaction,
    search: str,
    replacement: str,
    direction: ScrubDirection,
    only_param: str | None = None,
) -> None:
    pathname, query, fragment = _split_path(interaction.path)
    if not query:
        return

    changed = False
    pairs = []
    for pair in query.split("&"):
        key, sep, value = pair.partition("=")
        if sep and (only_param is None or key == only_param) and includes(value, search):
            logger.debug("Replacing value in query")
            sensitive_logger.debug("Query %s: %s", key, value)
            value = replace_url_value(value, search, replacement, direction)
            changed = True
        pairs.append(f"{key}{sep}{value}")

    if changed:
        interaction.path = _join_path(pathname, "&".join(pairs), fragment)


# -- Credential placement --


def _replace_auth_header(
    interaction: Interaction,
    header: str,
    prefix: str,
    search: str,
    replacement: str,
    direction: ScrubDirection,
) -> None:
    headers = interaction.request_headers
    if not headers:
        return
    name = _find_header(headers, header)
    if name is None:
        return

    logger.debug("Replacing %s token in %s header", prefix, header)
    value = headers[name]
    if isinstance(value, list):
        value = ", ".join(value)
    if direction is ScrubDirection.SCRUB:
        # The header may carry a token obtained at runtime rather than the
        # configured one; it is replaced wholesale.
        headers[name] = f"{prefix} {replacement}"
    else:
        headers[name] = replace_value(value, search, replacement)


def _replace_digest_raw_headers(
    interaction: Interaction,
    header_names: set[str],
    search: str,
    replacement: str,
    direction: ScrubDirection,
) -> None:
    if not interaction.raw_headers:
        return
    lowered = {h.lower() for h in header_names}
    raw = list(interaction.raw_headers)
    for i in range(0, len(raw) - 1, 2):
        if raw[i].lower() in lowered:
            if direction is ScrubDirection.SCRUB:
                raw[i + 1] = f"Digest {replacement}"
            else:
                raw[i + 1] = replace_value(raw[i + 1], search, replacement)
    interaction.raw_headers = raw


def _replace_api_key(
    interaction: Interaction,
    spec: PlaceholderSpec,
    search: str,
    replacement: str,
    direction: ScrubDirection,
) -> None:
    scheme = spec.scheme
    assert scheme is not None
    logger.debug("Replacing api-key at declared location %s", scheme.placement)

    if scheme.placement is ApiKeyPlacement.HEADER:
        headers = interaction.request_headers
        if headers and scheme.name is not None:
            name = _find_header(headers, scheme.name)
            if name is not None and isinstance(headers[name], str):
                headers[name] = replace_value(headers[name], search, replacement)
        replace_in_raw_headers(interaction, search, replacement)
    elif scheme.placement is ApiKeyPlacement.QUERY:
        if scheme.name is not None:
            replace_in_query(
                interaction, search, replacement, direction, only_param=scheme.name
            )
    elif scheme.placement is ApiKeyPlacement.PATH:
        replace_in_path(interaction, search, replacement, direction)
    elif scheme.placement is ApiKeyPlacement.BODY:
        replace_in_body(interaction, search, replacement, direction)

    # API keys also leak through echoes in unrelated places.
    replace_in_headers(interaction, search, replacement)
    replace_in_raw_headers(interaction, search, replacement)
    replace_in_body(interaction, search, replacement, direction)
    replace_in_response(interaction, search, replacement)
    replace_in_scope(interaction, search, replacement)
    replace_in_path(interaction, search, replacement, direction)
    replace_in_query(interaction, search, replacement, direction)


def replace_credential_in_interaction(
    interaction: Interaction, spec: PlaceholderSpec, direction: ScrubDirection
) -> None:
    """Apply credential placement rules for one security scheme.

    Bearer and basic tokens live only in the Authorization header and
    its raw-header echo. Digest tokens also cover WWW-Authenticate and
    the scheme's custom authorization/challenge headers. API keys are
    replaced at their declared location and anywhere else they appear.
    """
    search, replacement = spec.substitution(direction)
    if search == "":
        return
    scheme = spec.scheme
    if scheme is None:
        return

    if scheme.type is SecurityType.APIKEY:
        _replace_api_key(interaction, spec, search, replacement, direction)
        return

    assert scheme.scheme is not None
    prefix = _HTTP_SCHEME_PREFIX[scheme.scheme]

    if scheme.scheme is HttpScheme.DIGEST:
        digest_headers = {
            h
            for h in (scheme.authorization_header, scheme.challenge_header)
            if h is not None
        }
        if scheme.authorization_header is None or scheme.challenge_header is None:
            digest_headers |= {AUTH_HEADER_NAME, WWW_AUTH_HEADER_NAME}
        for header in sorted(digest_headers):
            _replace_auth_header(interaction, header, prefix, search, replacement, direction)
        _replace_digest_raw_headers(
            interaction,
            digest_headers | {AUTH_HEADER_NAME, WWW_AUTH_HEADER_NAME},
            search,
            replacement,
            direction,
        )
        return

    _replace_auth_header(interaction, AUTH_HEADER_NAME, prefix, search, replacement, direction)
    replace_in_raw_headers(interaction, search, replacement)


def replace_parameter_in_interaction(
    interaction: Interaction, spec: PlaceholderSpec, direction: ScrubDirection
) -> None:
    """Integration parameters may appear anywhere, including the scope."""
    search, replacement = spec.substitution(direction)
    if search == "":
        return
    replace_in_headers(interaction, search, replacement)
    replace_in_raw_headers(interaction, search, replacement)
    replace_in_body(interaction, search, replacement, direction)
    replace_in_response(interaction, search, replacement)
    replace_in_scope(interaction, search, replacement)
    replace_in_path(interaction, search, replacement, direction)
    replace_in_query(interaction, search, replacement, direction)


def replace_input_in_interaction(
    interaction: Interaction, spec: PlaceholderSpec, direction: ScrubDirection
) -> None:
    """Input values may appear anywhere except the scope."""
    search, replacement = spec.substitution(direction)
    if search == "":
        return
    replace_in_headers(interaction, search, replacement)
    replace_in_raw_headers(interaction, search, replacement)
    replace_in_body(interaction, search, replacement, direction)
    replace_in_response(interaction, search, replacement)
    replace_in_path(interaction, search, replacement, direction)
    replace_in_query(interaction, search, replacement, direction)


_REPLACERS: dict[
    PlaceholderKind, Callable[[Interaction, PlaceholderSpec, ScrubDirection], None]
] = {
    PlaceholderKind.CREDENTIAL: replace_credential_in_interaction,
    PlaceholderKind.PARAMETER: replace_parameter_in_interaction,
    PlaceholderKind.INPUT: replace_input_in_interaction,
}


def apply_placeholders(
    interactions: Sequence[Interaction],
    specs: Sequence[PlaceholderSpec],
    direction: ScrubDirection,
) -> None:
    """Scrub or restore every spec in every interaction, in place.

    Restoring walks the specs in reverse so that values substituted
    last during scrubbing are restored first.
    """
    ordered = list(specs) if direction is ScrubDirection.SCRUB else list(reversed(specs))
    logger.debug("Applying %d placeholder specs (%s)", len(ordered), direction.value)
    for interaction in interactions:
        for spec in ordered:
            logger.debug("Going through %s %s", spec.kind.value, spec.name)
            _REPLACERS[spec.kind](interaction, spec, direction)


_LEAK_MESSAGES: dict[PlaceholderKind, str] = {
    PlaceholderKind.CREDENTIAL: "Value for security scheme '{name}' was found in recorded HTTP traffic.",
    PlaceholderKind.PARAMETER: "Value for integration parameter '{name}' was found in recorded HTTP traffic.",
    PlaceholderKind.INPUT: "Value for input variable '{name}' was found in recorded HTTP traffic.",
}


def find_leaks(
    interactions: Sequence[Interaction], specs: Sequence[PlaceholderSpec]
) -> list[str]:
    """Report specs whose raw value is still present after scrubbing.

    Purely advisory: every finding is logged as a warning and returned,
    nothing is raised.
    """
    warnings: list[str] = []
    leaked: set[tuple[PlaceholderKind, str]] = set()
    for interaction in interactions:
        serialized = json.dumps(interaction.to_json_dict(), ensure_ascii=False)
        for spec in specs:
            key = (spec.kind, spec.name)
            if key in leaked or not includes(serialized, spec.raw_value):
                continue
            leaked.add(key)
            message = _LEAK_MESSAGES[spec.kind].format(name=spec.name)
            logger.warning(message)
            warnings.append(message)
    return warnings


class CredentialScrubber:
    """Holds a resolved placeholder table and applies it to traffic."""

    def __init__(self, specs: Sequence[PlaceholderSpec]) -> None:
        self.specs = list(specs)

    def apply(self, interactions: Sequence[Interaction], direction: ScrubDirection) -> None:
        apply_placeholders(interactions, self.specs, direction)

    def scrub(self, interactions: Sequence[Interaction]) -> None:
        self.apply(interactions, ScrubDirection.SCRUB)

    def restore(self, interactions: Sequence[Interaction]) -> None:
        self.apply(interactions, ScrubDirection.RESTORE)

    def find_leaks(self, interactions: Sequence[Interaction]) -> list[str]:
        return find_leaks(interactions, self.specs)
