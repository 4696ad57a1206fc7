"""Typed error surface for trafficpact.

Configuration errors (missing fixture, index, hash or base URL) and decode
errors are fatal and propagate to the test. Diff findings are never raised;
they are returned as values by the matcher.
"""

from __future__ import annotations


class TrafficPactError(Exception):
    """Base class for all trafficpact errors.

    Carries a ``kind`` so the CLI and test output can render
    ``Kind: message`` consistently.
    """

    kind = "TrafficPactError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class UnexpectedError(TrafficPactError):
    kind = "UnexpectedError"


# -- Not found --


class RecordingsNotFoundError(TrafficPactError):
    """Base for every "recording could not be located" condition."""

    kind = "RecordingsNotFoundError"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or (
                "Recordings could not be found for running mocked tests.\n"
                "You must call the live API first to record API traffic.\n"
                "Set TRAFFICPACT_LIVE_API to call the API and record traffic."
            )
        )


class RecordingsFileNotFoundError(RecordingsNotFoundError):
    kind = "RecordingsFileNotFoundError"

    def __init__(self, path: str) -> None:
        super().__init__(f"Recordings file at path {path!r} not found.")
        self.path = path


class RecordingsIndexNotFoundError(RecordingsNotFoundError):
    kind = "RecordingsIndexNotFoundError"

    def __init__(self, path: str, index: str) -> None:
        super().__init__(
            f"Recordings file at path {path!r} does not contain recordings "
            f"for index {index!r}."
        )
        self.path = path
        self.index = index


class RecordingsHashNotFoundError(RecordingsNotFoundError):
    kind = "RecordingsHashNotFoundError"

    def __init__(self, path: str, index: str, content_hash: str) -> None:
        super().__init__(
            f"Recordings file at path {path!r} does not contain recordings "
            f"for index {index!r} with hash {content_hash!r}."
        )
        self.path = path
        self.index = index
        self.content_hash = content_hash


# -- Decoding --


class DecodeError(TrafficPactError):
    """A recorded body or response could not be decoded."""

    kind = "DecodeError"


class DecodeUnsupportedError(DecodeError):
    kind = "DecodeUnsupportedError"

    def __init__(self, encoding: str) -> None:
        super().__init__(f"Content encoding {encoding!r} is not supported.")
        self.encoding = encoding


# -- Configuration --


class BaseUrlMissingError(TrafficPactError):
    kind = "BaseUrlMissingError"

    def __init__(self, provider: str) -> None:
        super().__init__(
            f"No base URL was found for provider {provider!r}, "
            "configure a service for it."
        )
        self.provider = provider


class ValueNotScalarError(TrafficPactError):
    kind = "ValueNotScalarError"

    def __init__(self, name: str, reason: str = "is not a scalar value") -> None:
        super().__init__(f"Value {name!r} {reason}.")
        self.name = name


class LifecycleStateError(TrafficPactError):
    kind = "LifecycleStateError"


class NonDeterministicTrafficError(TrafficPactError):
    """Two consecutive recording passes produced incompatible traffic."""

    kind = "NonDeterministicTrafficError"
