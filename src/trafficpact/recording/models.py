"""Pydantic models for recorded HTTP traffic.

An Interaction is one recorded request/response pair, serialized with
the exact key names of the on-disk recording format. A RecordingFile
maps index keys to content hashes to ordered interaction lists.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, RootModel


class RecordingType(str, Enum):
    """Phase of a test run that produced a recording."""

    MAIN = "main"
    PREPARE = "prepare"
    TEARDOWN = "teardown"


class Interaction(BaseModel):
    """One recorded HTTP call.

    ``None`` means the field was not recorded and is omitted on
    serialization. An empty-string body is a real (empty) body.
    Unknown keys written by a backend are preserved.
    """

    model_config = {"extra": "allow", "populate_by_name": True}

    scope: str
    method: str | None = None
    path: str
    status: int | None = None
    request_headers: dict[str, str | list[str]] | None = Field(
        default=None, alias="reqheaders"
    )
    raw_headers: list[str] | None = Field(default=None, alias="rawHeaders")
    body: Any = None
    response: Any = None
    decoded_response: Any = Field(default=None, alias="decodedResponse")

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize using the on-disk key names.

        Only top-level ``None`` fields are dropped; nulls inside bodies
        and responses are recorded data and are kept.
        """
        data = self.model_dump(mode="json", by_alias=True)
        return {key: value for key, value in data.items() if value is not None}


InteractionSet = list[Interaction]


def compose_recording_index(key: str, recording_type: RecordingType) -> str:
    """Build the index key, prefixing non-main phases (``prepare-<key>``)."""
    if recording_type is RecordingType.MAIN:
        return key
    return f"{recording_type.value}-{key}"


class RecordingFile(RootModel[dict[str, dict[str, list[Interaction]]]]):
    """Hash-addressed collection of interaction sets.

    At most one interaction set exists per (index, hash) pair; ``put``
    replaces an entry wholesale and never merges field by field.
    """

    root: dict[str, dict[str, list[Interaction]]] = Field(default_factory=dict)

    def get(self, index: str, content_hash: str) -> InteractionSet | None:
        hashes = self.root.get(index)
        if hashes is None:
            return None
        return hashes.get(content_hash)

    def put(self, index: str, content_hash: str, interactions: InteractionSet) -> None:
        self.root.setdefault(index, {})[content_hash] = list(interactions)

    def merge(self, other: "RecordingFile") -> None:
        """Merge every entry of ``other`` into this file (other wins)."""
        for index, hashes in other.root.items():
            for content_hash, interactions in hashes.items():
                self.put(index, content_hash, interactions)

    def to_json_dict(self) -> dict[str, dict[str, list[dict[str, Any]]]]:
        return {
            index: {
                content_hash: [i.to_json_dict() for i in interactions]
                for content_hash, interactions in hashes.items()
            }
            for index, hashes in self.root.items()
        }
