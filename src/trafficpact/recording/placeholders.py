"""Placeholder resolution for secrets, integration parameters and inputs.

Resolution is an explicit step that runs before scrubbing: it turns
security values (with ``$NAME`` indirection), integration parameters and
selected test inputs into a flat list of PlaceholderSpec entries. The
indirection lookup is injected so tests never touch the process
environment.
"""

from __future__ import annotations

import base64
import logging
import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import jmespath
import jmespath.exceptions

from trafficpact.errors import UnexpectedError, ValueNotScalarError
from trafficpact.models.security import SecurityScheme, SecurityValues

logger = logging.getLogger(__name__)

HIDDEN_CREDENTIALS_PLACEHOLDER = "SECURITY_"
HIDDEN_PARAMETERS_PLACEHOLDER = "PARAMS_"
HIDDEN_INPUT_PLACEHOLDER = "INPUT_"

Lookup = Callable[[str], "str | None"]


class PlaceholderKind(str, Enum):
    CREDENTIAL = "credential"
    PARAMETER = "parameter"
    INPUT = "input"


_PREFIXES: dict[PlaceholderKind, str] = {
    PlaceholderKind.CREDENTIAL: HIDDEN_CREDENTIALS_PLACEHOLDER,
    PlaceholderKind.PARAMETER: HIDDEN_PARAMETERS_PLACEHOLDER,
    PlaceholderKind.INPUT: HIDDEN_INPUT_PLACEHOLDER,
}


class ScrubDirection(str, Enum):
    """SCRUB replaces raw values with tokens, RESTORE does the reverse."""

    SCRUB = "scrub"
    RESTORE = "restore"


@dataclass(frozen=True)
class PlaceholderSpec:
    """One value to substitute, plus its placeholder token.

    ``scheme`` is only set for credentials and drives where the
    credential may be placed.
    """

    kind: PlaceholderKind
    name: str
    raw_value: str
    placeholder_token: str
    scheme: SecurityScheme | None = None

    def substitution(self, direction: ScrubDirection) -> tuple[str, str]:
        """Return ``(search, replacement)`` for the given direction."""
        if direction is ScrubDirection.SCRUB:
            return self.raw_value, self.placeholder_token
        return self.placeholder_token, self.raw_value


def compose_placeholder(kind: PlaceholderKind, name: str) -> str:
    return _PREFIXES[kind] + name


def _dereference(value: str, lookup: Lookup) -> str:
    if value.startswith("$"):
        return lookup(value[1:]) or ""
    return value


def resolve_credential(values: SecurityValues, lookup: Lookup = os.environ.get) -> str:
    """Resolve the raw wire value of a credential.

    Basic auth resolves to base64(``user:password``), which is what
    appears in the Authorization header.
    """
    logger.debug("Resolving security value: %s", values.id)

    if values.apikey is not None:
        return _dereference(values.apikey, lookup)
    if values.username is not None and values.password is not None:
        user = _dereference(values.username, lookup)
        password = _dereference(values.password, lookup)
        return base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    if values.token is not None:
        return _dereference(values.token, lookup)
    if values.digest is not None:
        return _dereference(values.digest, lookup)

    raise UnexpectedError("Unexpected security value")


def _assert_scalar(name: str, value: Any) -> str:
    if value is None:
        raise ValueNotScalarError(name, "is not defined")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ValueNotScalarError(name)


def search_input_values(
    payload: Mapping[str, Any], accessors: Sequence[str] | None
) -> dict[str, Any] | None:
    """Pick input values by JMESPath expression, e.g. ``"user.email"``.

    Raises:
        ValueNotScalarError: If an accessed value is missing or is not a
            scalar.
    """
    if accessors is None:
        return None

    result: dict[str, Any] = {}
    for accessor in accessors:
        try:
            current = jmespath.search(accessor, dict(payload))
        except jmespath.exceptions.JMESPathError as exc:
            raise ValueNotScalarError(accessor, "is not a valid accessor") from exc
        _assert_scalar(accessor, current)
        result[accessor] = current
    return result


def resolve_placeholders(
    schemes: Sequence[SecurityScheme] = (),
    values: Sequence[SecurityValues] = (),
    parameters: Mapping[str, str] | None = None,
    inputs: Mapping[str, Any] | None = None,
    lookup: Lookup = os.environ.get,
) -> list[PlaceholderSpec]:
    """Resolve every substitutable value into a flat list of specs.

    Credentials come first, then integration parameters, then inputs;
    the scrubber applies them in this order. Schemes without a matching
    value are skipped.

    Raises:
        ValueNotScalarError: If an input or parameter is not a scalar.
    """
    specs: list[PlaceholderSpec] = []
    values_by_id = {v.id: v for v in values}

    for scheme in schemes:
        security_values = values_by_id.get(scheme.id)
        if security_values is None:
            logger.debug("No security values for scheme %s, skipping", scheme.id)
            continue
        specs.append(
            PlaceholderSpec(
                kind=PlaceholderKind.CREDENTIAL,
                name=scheme.id,
                raw_value=resolve_credential(security_values, lookup),
                placeholder_token=compose_placeholder(PlaceholderKind.CREDENTIAL, scheme.id),
                scheme=scheme,
            )
        )

    for name, value in (parameters or {}).items():
        specs.append(
            PlaceholderSpec(
                kind=PlaceholderKind.PARAMETER,
                name=name,
                raw_value=_assert_scalar(name, _dereference_any(value, lookup)),
                placeholder_token=compose_placeholder(PlaceholderKind.PARAMETER, name),
            )
        )

    for name, value in (inputs or {}).items():
        specs.append(
            PlaceholderSpec(
                kind=PlaceholderKind.INPUT,
                name=name,
                raw_value=_assert_scalar(name, value),
                placeholder_token=compose_placeholder(PlaceholderKind.INPUT, name),
            )
        )

    return specs


def _dereference_any(value: Any, lookup: Lookup) -> Any:
    if isinstance(value, str):
        return _dereference(value, lookup)
    return value
