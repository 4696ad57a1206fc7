"""Tests for configuration loading, env overrides and live patterns."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from trafficpact.models.config import (
    ProjectConfig,
    RecordingConfig,
    find_project_root,
    load_project_config,
    match_live_pattern,
    parse_boolean_env,
)


class TestParseBooleanEnv:
    """Only the literal 'true' enables a flag."""

    @pytest.mark.parametrize("value", ["true"])
    def test_true(self, value: str) -> None:
        assert parse_boolean_env(value) is True

    @pytest.mark.parametrize("value", [None, "", "1", "TRUE", "yes", "false"])
    def test_everything_else_is_false(self, value: str | None) -> None:
        assert parse_boolean_env(value) is False


class TestRecordingConfig:
    """Tests for RecordingConfig defaults and environment overrides."""

    def test_defaults(self) -> None:
        config = RecordingConfig()
        assert config.fixtures_dir == "recordings"
        assert config.live_pattern is None
        assert config.use_candidate is False
        assert config.promote_candidate is False
        assert config.enforce_two_pass is False
        assert config.allow_candidate_on_diff is False
        assert config.process_recordings is True

    def test_extra_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RecordingConfig(unknown=True)

    def test_env_overrides_flags(self) -> None:
        config = RecordingConfig().with_env_overrides(
            {
                "USE_NEW_TRAFFIC": "true",
                "UPDATE_TRAFFIC": "true",
                "ENFORCE_TWO_PASS": "yes",
                "STORE_NEW_TRAFFIC": "true",
                "TRAFFICPACT_LIVE_API": "my-profile:*",
            }
        )
        assert config.use_candidate is True
        assert config.promote_candidate is True
        assert config.enforce_two_pass is False
        assert config.allow_candidate_on_diff is True
        assert config.live_pattern == "my-profile:*"

    def test_unset_env_keeps_configured_values(self) -> None:
        config = RecordingConfig(promote_candidate=True).with_env_overrides({})
        assert config.promote_candidate is True

    def test_env_overrides_return_a_copy(self) -> None:
        original = RecordingConfig()
        original.with_env_overrides({"USE_NEW_TRAFFIC": "true"})
        assert original.use_candidate is False


class TestMatchLivePattern:
    """Tests for profile:provider:usecase pattern matching."""

    def test_no_pattern_never_matches(self) -> None:
        assert match_live_pattern(None, "p", "prov", "uc") is False
        assert match_live_pattern("", "p", "prov", "uc") is False

    def test_star_matches_everything(self) -> None:
        assert match_live_pattern("*", "p", "prov", "uc") is True

    def test_full_triple(self) -> None:
        assert match_live_pattern("p:prov:uc", "p", "prov", "uc") is True
        assert match_live_pattern("p:prov:other", "p", "prov", "uc") is False

    def test_missing_trailing_segments_match_anything(self) -> None:
        assert match_live_pattern("p", "p", "prov", "uc") is True
        assert match_live_pattern("p:prov", "p", "prov", "uc") is True
        assert match_live_pattern("p:other", "p", "prov", "uc") is False

    def test_comma_separated_alternatives(self) -> None:
        assert match_live_pattern("x:*, p:prov:*", "p", "prov", "uc") is True

    def test_wildcards_within_segments(self) -> None:
        assert match_live_pattern("*:prov-*:*", "p", "prov-eu", "uc") is True


class TestLoadProjectConfig:
    """Tests for trafficpact.yaml loading."""

    def test_missing_file_returns_defaults(self, tmp_path: Path) -> None:
        assert load_project_config(tmp_path) == ProjectConfig()

    def test_empty_file_returns_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "trafficpact.yaml").write_text("")
        assert load_project_config(tmp_path) == ProjectConfig()

    def test_loads_recording_section(self, tmp_path: Path) -> None:
        (tmp_path / "trafficpact.yaml").write_text(
            "recording:\n  fixtures_dir: fixtures\n  live_pattern: 'p:*'\n"
        )
        config = load_project_config(tmp_path)
        assert config.recording.fixtures_dir == "fixtures"
        assert config.recording.live_pattern == "p:*"

    def test_find_project_root_walks_up(self, tmp_path: Path) -> None:
        (tmp_path / "trafficpact.yaml").write_text("")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == tmp_path.resolve()
