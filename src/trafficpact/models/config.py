"""Project configuration model for trafficpact.

Captures trafficpact.yaml fields with sensible defaults, plus the
policy flags that CI jobs flip through environment variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from fnmatch import fnmatchcase
from pathlib import Path

from pydantic import BaseModel, Field

CONFIG_FILE_NAME = "trafficpact.yaml"

# Environment variable -> RecordingConfig field
ENV_FLAGS: dict[str, str] = {
    "USE_NEW_TRAFFIC": "use_candidate",
    "UPDATE_TRAFFIC": "promote_candidate",
    "ENFORCE_TWO_PASS": "enforce_two_pass",
    "STORE_NEW_TRAFFIC": "allow_candidate_on_diff",
}
LIVE_PATTERN_ENV = "TRAFFICPACT_LIVE_API"


def parse_boolean_env(value: str | None) -> bool:
    """Only the literal string 'true' enables a flag."""
    return value == "true"


class RecordingConfig(BaseModel):
    """Configuration for recording and replay behavior.

    ``live_pattern`` selects which profile/provider/use-case triples call
    the live API; everything else is replayed from fixtures.
    """

    model_config = {"extra": "forbid"}

    fixtures_dir: str = "recordings"
    fixture_name: str = "recording"
    live_pattern: str | None = None
    use_candidate: bool = False
    promote_candidate: bool = False
    enforce_two_pass: bool = False
    allow_candidate_on_diff: bool = False
    process_recordings: bool = True

    def with_env_overrides(
        self, environ: Mapping[str, str] | None = None
    ) -> "RecordingConfig":
        """Return a copy with policy flags taken from the environment.

        Variables that are unset leave the configured value untouched.
        """
        env = os.environ if environ is None else environ
        update: dict[str, object] = {}
        for variable, field_name in ENV_FLAGS.items():
            if variable in env:
                update[field_name] = parse_boolean_env(env[variable])
        if LIVE_PATTERN_ENV in env:
            update["live_pattern"] = env[LIVE_PATTERN_ENV]
        return self.model_copy(update=update)


class ProjectConfig(BaseModel):
    """Project-level configuration loaded from trafficpact.yaml."""

    model_config = {"extra": "forbid"}

    recording: RecordingConfig = Field(default_factory=RecordingConfig)


def match_live_pattern(
    pattern: str | None,
    profile_id: str,
    provider_name: str,
    use_case_name: str,
) -> bool:
    """Check a ``profile:provider:usecase`` triple against a live pattern.

    The pattern is a comma-separated list of fnmatch expressions. Each
    expression may name fewer than three segments; missing trailing
    segments match anything, so ``"*"`` and ``"my-profile"`` are valid.
    """
    if not pattern:
        return False

    target = (profile_id, provider_name, use_case_name)
    for expression in pattern.split(","):
        expression = expression.strip()
        if not expression:
            continue
        segments = expression.split(":")
        if len(segments) > 3:
            continue
        segments += ["*"] * (3 - len(segments))
        if all(fnmatchcase(value, seg) for value, seg in zip(target, segments)):
            return True
    return False


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) looking for trafficpact.yaml.

    Args:
        start: Starting path (file or directory). Defaults to cwd.

    Returns:
        Path to the directory containing trafficpact.yaml, or cwd if
        none is found.
    """
    current = (start or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    while current != current.parent:
        if (current / CONFIG_FILE_NAME).exists():
            return current
        current = current.parent
    return Path.cwd()


def load_project_config(project_root: Path | None = None) -> ProjectConfig:
    """Load ProjectConfig from trafficpact.yaml. Returns defaults if not found.

    Args:
        project_root: Path to the project root directory. If None,
            uses find_project_root() to locate it.

    Returns:
        Validated ProjectConfig instance.
    """
    if project_root is None:
        project_root = find_project_root()
    config_path = project_root / CONFIG_FILE_NAME
    if not config_path.exists():
        return ProjectConfig()
    import yaml

    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if raw is None:
        return ProjectConfig()
    return ProjectConfig.model_validate(raw)
