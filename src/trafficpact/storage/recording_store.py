"""JSON file storage for recorded HTTP traffic.

A recording base path ``recordings/my-test`` maps to three kinds of
files:

    recordings/
        my-test.json          # Main recording file
        my-test-new.json      # Candidate file written when traffic changed
        old/
            my-test_0.json    # Archived main files, first unused n

Writes are atomic (write to .tmp, then rename) so a crash never leaves a
partial recording file. Promotion of a candidate is a multi-step
read-merge-rename sequence and assumes exclusive access to the path.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from trafficpact.errors import (
    RecordingsFileNotFoundError,
    RecordingsHashNotFoundError,
    RecordingsIndexNotFoundError,
)
from trafficpact.recording.models import InteractionSet, RecordingFile

logger = logging.getLogger(__name__)

CANDIDATE_SUFFIX = "-new"
ARCHIVE_DIR = "old"


def compose_recording_path(base: Path, version: str | None = None) -> Path:
    """Compose a recording file path from its base path.

    Args:
        base: Recording path without extension.
        version: ``None`` for the main file, ``"new"`` for the candidate
            file, or an archive number for ``old/<name>_<n>.json``.

    Returns:
        The composed path.
    """
    base = Path(base)
    if version is None:
        return base.with_name(f"{base.name}.json")
    if version == "new":
        return base.with_name(f"{base.name}{CANDIDATE_SUFFIX}.json")
    return base.parent / ARCHIVE_DIR / f"{base.name}_{version}.json"


class RecordingStore:
    """Persist and query interaction sets in hash-addressed JSON files."""

    def read_file(self, path: Path) -> RecordingFile | None:
        """Load a whole recording file.

        Returns:
            The parsed RecordingFile, or None if the file does not exist.
        """
        path = Path(path)
        if not path.exists():
            return None
        content = path.read_text(encoding="utf-8")
        if not content.strip():
            return RecordingFile()
        return RecordingFile.model_validate_json(content)

    def write_file(self, path: Path, recording_file: RecordingFile) -> None:
        """Serialize a whole recording file atomically."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        content = json.dumps(recording_file.to_json_dict(), indent=2, ensure_ascii=False)

        # Atomic write: write to .tmp then rename
        tmp_file = path.with_name(f"{path.name}.tmp")
        tmp_file.write_text(content, encoding="utf-8")
        tmp_file.replace(path)

    def find(self, path: Path, index: str, content_hash: str) -> InteractionSet | None:
        """Look up an interaction set, returning None when anything is missing."""
        recording_file = self.read_file(path)
        if recording_file is None:
            return None
        return recording_file.get(index, content_hash)

    def read(self, path: Path, index: str, content_hash: str) -> InteractionSet:
        """Load the interaction set stored under (index, hash).

        Raises:
            RecordingsFileNotFoundError: If the file does not exist.
            RecordingsIndexNotFoundError: If the index key is missing.
            RecordingsHashNotFoundError: If the hash is missing in the index.
        """
        logger.debug("Loading recordings from %s", path)
        recording_file = self.read_file(path)
        if recording_file is None:
            raise RecordingsFileNotFoundError(str(path))

        hashes = recording_file.root.get(index)
        if hashes is None:
            raise RecordingsIndexNotFoundError(str(path), index)

        interactions = hashes.get(content_hash)
        if interactions is None:
            raise RecordingsHashNotFoundError(str(path), index, content_hash)

        return interactions

    def write(
        self,
        path: Path,
        index: str,
        content_hash: str,
        interactions: InteractionSet,
    ) -> None:
        """Store an interaction set, replacing any existing (index, hash) entry.

        Every other entry of the file is preserved.
        """
        recording_file = self.read_file(path) or RecordingFile()
        recording_file.put(index, content_hash, interactions)
        logger.debug(
            "Writing %d interactions to %s [%s/%s]",
            len(interactions),
            path,
            index,
            content_hash,
        )
        self.write_file(path, recording_file)

    def next_archive_path(self, base: Path) -> Path:
        """Return ``old/<name>_<n>.json`` for the first unused n."""
        n = 0
        while compose_recording_path(base, str(n)).exists():
            n += 1
        return compose_recording_path(base, str(n))

    def can_promote(self, base: Path) -> bool:
        return compose_recording_path(base, "new").exists()

    def promote_candidate(self, base: Path) -> Path | None:
        """Merge the candidate file into the main file.

        Candidate entries win on (index, hash) collision. The pre-merge
        main file is archived under ``old/`` and the candidate file is
        deleted. Not safe under concurrent writers to the same path.

        Returns:
            The archive path of the previous main file, or None when
            there was no main file to archive.

        Raises:
            RecordingsFileNotFoundError: If the candidate file is missing.
        """
        main_path = compose_recording_path(base)
        candidate_path = compose_recording_path(base, "new")

        candidate = self.read_file(candidate_path)
        if candidate is None:
            raise RecordingsFileNotFoundError(str(candidate_path))

        current = self.read_file(main_path)
        archive_path = None
        merged = RecordingFile()
        if current is not None:
            merged.merge(current)
            archive_path = self.next_archive_path(base)
            archive_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("Archiving %s to %s", main_path, archive_path)
            main_path.rename(archive_path)
        merged.merge(candidate)

        self.write_file(main_path, merged)
        candidate_path.unlink()
        logger.info("Promoted %s into %s", candidate_path, main_path)
        return archive_path
