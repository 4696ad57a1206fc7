"""Recording subpackage for traffic capture, scrubbing, and replay.

Provides the on-disk interaction models, placeholder resolution and the
bidirectional credential scrubber, body/response decoding, content
hashing, and the TrafficBackend boundary. The lifecycle controller lives
in trafficpact.recording.controller.
"""

from trafficpact.recording.backend import TrafficBackend
from trafficpact.recording.hashing import generate_hash
from trafficpact.recording.models import (
    Interaction,
    InteractionSet,
    RecordingFile,
    RecordingType,
    compose_recording_index,
)
from trafficpact.recording.placeholders import (
    PlaceholderKind,
    PlaceholderSpec,
    ScrubDirection,
    resolve_placeholders,
)
from trafficpact.recording.scrubber import CredentialScrubber, find_leaks

__all__ = [
    "CredentialScrubber",
    "Interaction",
    "InteractionSet",
    "PlaceholderKind",
    "PlaceholderSpec",
    "RecordingFile",
    "RecordingType",
    "ScrubDirection",
    "TrafficBackend",
    "compose_recording_index",
    "find_leaks",
    "generate_hash",
    "resolve_placeholders",
]
