"""Storage subpackage for recording file persistence."""

from trafficpact.storage.recording_store import RecordingStore, compose_recording_path

__all__ = ["RecordingStore", "compose_recording_path"]
