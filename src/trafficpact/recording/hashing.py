"""Content hash generation for recording entries.

A test run is addressed inside a recording file by an md5 hash of the
test name, or of its input when no name is available.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def generate_hash(
    input_payload: Mapping[str, Any] | None = None, test_name: str | None = None
) -> str:
    """Return the content hash for a test run.

    The test name wins when given; otherwise the input is serialized as
    JSON with sorted keys so equal inputs always hash equally.
    """
    if test_name:
        logger.debug("Generating hash from test name: %s", test_name)
        return _md5(test_name)

    serialized = json.dumps(input_payload or {}, sort_keys=True, ensure_ascii=False)
    logger.debug("Generating hash from input")
    return _md5(serialized)
