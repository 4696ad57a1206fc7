"""Tests for the record/replay lifecycle controller."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from trafficpact.errors import (
    BaseUrlMissingError,
    LifecycleStateError,
    NonDeterministicTrafficError,
    RecordingsFileNotFoundError,
    RecordingsNotFoundError,
)
from trafficpact.matching.analyzer import ImpactLevel
from trafficpact.models.config import ENV_FLAGS, LIVE_PATTERN_ENV, RecordingConfig
from trafficpact.models.security import SecurityScheme
from trafficpact.recording.backend import TrafficBackend
from trafficpact.recording.controller import (
    LifecycleMode,
    LifecycleState,
    RecordingContext,
    RecordingLifecycleController,
)
from trafficpact.recording.models import Interaction, RecordingType
from trafficpact.recording.placeholders import PlaceholderKind, PlaceholderSpec
from trafficpact.storage.recording_store import RecordingStore, compose_recording_path

TOKEN = "tok-9f8e7d"
BEARER_SPEC = PlaceholderSpec(
    PlaceholderKind.CREDENTIAL,
    "bearer",
    TOKEN,
    "SECURITY_bearer",
    SecurityScheme(id="bearer", type="http", scheme="bearer"),
)


class FakeBackend(TrafficBackend):
    """In-memory backend returning pre-seeded captures in order."""

    def __init__(self, captures: list[list[Interaction]] | None = None) -> None:
        self.captures = list(captures or [])
        self.calls: list[str] = []
        self.mocks: list[Interaction] | None = None

    def start_recording(self) -> None:
        self.calls.append("start_recording")

    def stop_recording(self) -> list[Interaction]:
        self.calls.append("stop_recording")
        return self.captures.pop(0) if self.captures else []

    def load_mocks(self, interactions: list[Interaction]) -> None:
        self.calls.append("load_mocks")
        self.mocks = interactions

    def disable_net_connect(self) -> None:
        self.calls.append("disable_net_connect")

    def enable_net_connect(self) -> None:
        self.calls.append("enable_net_connect")

    def restore(self) -> None:
        self.calls.append("restore")


def _interaction(status: int = 200, response=None, token: str = TOKEN) -> Interaction:
    return Interaction.model_validate(
        {
            "scope": "https://api.example.com",
            "method": "GET",
            "path": "/items",
            "status": status,
            "reqheaders": {"Authorization": f"Bearer {token}"},
            "response": response if response is not None else {"id": 1},
        }
    )


def _context(**kwargs) -> RecordingContext:
    defaults = {
        "profile_id": "profile",
        "provider_name": "provider",
        "use_case_name": "UseCase",
        "content_hash": "hash1",
        "base_url": "https://api.example.com",
        "placeholders": [BEARER_SPEC],
    }
    defaults.update(kwargs)
    return RecordingContext(**defaults)


def _controller(
    tmp_path: Path,
    backend: FakeBackend,
    live: bool,
    **config,
) -> RecordingLifecycleController:
    return RecordingLifecycleController(
        RecordingStore(),
        backend,
        RecordingConfig(**config),
        recording_base=tmp_path / "rec",
        is_live=lambda context: live,
    )


async def _perform() -> str:
    return "result"


class TestRecordingContext:
    """Tests for the index key."""

    def test_index_key(self) -> None:
        assert _context().index_key == "profile/provider/UseCase"
        assert (
            _context(recording_type=RecordingType.PREPARE).index_key
            == "prepare-profile/provider/UseCase"
        )


class TestReplay:
    """Replaying stored traffic."""

    @pytest.mark.asyncio
    async def test_replay_restores_credentials_and_blocks_network(self, tmp_path: Path) -> None:
        RecordingStore().write(
            compose_recording_path(tmp_path / "rec"),
            "profile/provider/UseCase",
            "hash1",
            [_interaction(token="SECURITY_bearer")],
        )
        backend = FakeBackend()
        controller = _controller(tmp_path, backend, live=False)

        outcome = await controller.run(_perform, _context())

        assert outcome.result == "result"
        assert outcome.mode is LifecycleMode.REPLAY
        assert backend.mocks is not None
        assert backend.mocks[0].request_headers == {"Authorization": f"Bearer {TOKEN}"}
        assert backend.calls == ["load_mocks", "disable_net_connect", "restore", "enable_net_connect"]
        assert controller.state is LifecycleState.CLOSED

    @pytest.mark.asyncio
    async def test_replay_does_not_modify_stored_file(self, tmp_path: Path) -> None:
        path = compose_recording_path(tmp_path / "rec")
        RecordingStore().write(path, "profile/provider/UseCase", "hash1", [_interaction(token="SECURITY_bearer")])
        before = path.read_text()

        await _controller(tmp_path, FakeBackend(), live=False).run(_perform, _context())

        assert path.read_text() == before

    @pytest.mark.asyncio
    async def test_missing_recording_is_fatal_and_tears_down(self, tmp_path: Path) -> None:
        backend = FakeBackend()
        controller = _controller(tmp_path, backend, live=False)

        with pytest.raises(RecordingsNotFoundError):
            await controller.run(_perform, _context())

        assert backend.calls == ["restore", "enable_net_connect"]
        assert controller.state is LifecycleState.CLOSED

    @pytest.mark.asyncio
    async def test_missing_base_url_is_fatal(self, tmp_path: Path) -> None:
        RecordingStore().write(
            compose_recording_path(tmp_path / "rec"), "profile/provider/UseCase", "hash1", [_interaction()]
        )
        with pytest.raises(BaseUrlMissingError):
            await _controller(tmp_path, FakeBackend(), live=False).run(
                _perform, _context(base_url=None)
            )

    @pytest.mark.asyncio
    async def test_unprocessed_replay_skips_restore(self, tmp_path: Path) -> None:
        RecordingStore().write(
            compose_recording_path(tmp_path / "rec"),
            "profile/provider/UseCase",
            "hash1",
            [_interaction(token="SECURITY_bearer")],
        )
        backend = FakeBackend()
        await _controller(tmp_path, backend, live=False).run(
            _perform, _context(process_recordings=False, base_url=None)
        )
        assert backend.mocks[0].request_headers == {"Authorization": "Bearer SECURITY_bearer"}

    @pytest.mark.asyncio
    async def test_before_load_hook_receives_restored_interactions(self, tmp_path: Path) -> None:
        RecordingStore().write(
            compose_recording_path(tmp_path / "rec"),
            "profile/provider/UseCase",
            "hash1",
            [_interaction(token="SECURITY_bearer")],
        )
        seen: list[list[Interaction]] = []

        async def before_load(interactions: list[Interaction]) -> None:
            seen.append(list(interactions))

        await _controller(tmp_path, FakeBackend(), live=False).run(
            _perform, _context(before_load=before_load)
        )

        assert len(seen) == 1
        assert seen[0][0].request_headers == {"Authorization": f"Bearer {TOKEN}"}

    @pytest.mark.asyncio
    async def test_use_candidate_reads_new_file(self, tmp_path: Path) -> None:
        RecordingStore().write(
            compose_recording_path(tmp_path / "rec", "new"),
            "profile/provider/UseCase",
            "hash1",
            [_interaction(status=201)],
        )
        backend = FakeBackend()
        await _controller(tmp_path, backend, live=False, use_candidate=True).run(_perform, _context())
        assert backend.mocks[0].status == 201

    @pytest.mark.asyncio
    async def test_use_candidate_without_file_is_fatal(self, tmp_path: Path) -> None:
        RecordingStore().write(
            compose_recording_path(tmp_path / "rec"), "profile/provider/UseCase", "hash1", [_interaction()]
        )
        with pytest.raises(RecordingsFileNotFoundError):
            await _controller(tmp_path, FakeBackend(), live=False, use_candidate=True).run(
                _perform, _context()
            )


class TestRecord:
    """Recording live traffic."""

    @pytest.mark.asyncio
    async def test_record_scrubs_and_writes_main_file(self, tmp_path: Path) -> None:
        backend = FakeBackend([[_interaction()]])
        controller = _controller(tmp_path, backend, live=True)

        outcome = await controller.run(_perform, _context())

        main = compose_recording_path(tmp_path / "rec")
        assert outcome.mode is LifecycleMode.RECORD
        assert outcome.written_path == main
        assert outcome.analysis is None
        stored = RecordingStore().read(main, "profile/provider/UseCase", "hash1")
        assert stored[0].request_headers == {"Authorization": "Bearer SECURITY_bearer"}
        assert TOKEN not in main.read_text()
        assert backend.calls == ["start_recording", "stop_recording", "restore", "enable_net_connect"]

    @pytest.mark.asyncio
    async def test_exception_during_recording_restores_backend(self, tmp_path: Path) -> None:
        backend = FakeBackend()
        controller = _controller(tmp_path, backend, live=True)

        async def failing() -> None:
            raise RuntimeError("network down")

        with pytest.raises(RuntimeError, match="network down"):
            await controller.run(failing, _context())

        assert backend.calls[-2:] == ["restore", "enable_net_connect"]
        assert controller.state is LifecycleState.CLOSED
        assert not compose_recording_path(tmp_path / "rec").exists()

    @pytest.mark.asyncio
    async def test_failing_restore_still_enables_network(self, tmp_path: Path) -> None:
        class BrokenRestoreBackend(FakeBackend):
            def restore(self) -> None:
                super().restore()
                raise RuntimeError("restore failed")

        backend = BrokenRestoreBackend([[_interaction()]])
        controller = _controller(tmp_path, backend, live=True)

        with pytest.raises(RuntimeError, match="restore failed"):
            await controller.run(_perform, _context())

        assert backend.calls[-2:] == ["restore", "enable_net_connect"]
        assert controller.state is LifecycleState.CLOSED

    @pytest.mark.asyncio
    async def test_process_recordings_disabled_in_config_skips_scrub(self, tmp_path: Path) -> None:
        backend = FakeBackend([[_interaction()]])
        controller = _controller(tmp_path, backend, live=True, process_recordings=False)

        await controller.run(_perform, _context(base_url=None))

        stored = RecordingStore().read(
            compose_recording_path(tmp_path / "rec"), "profile/provider/UseCase", "hash1"
        )
        assert stored[0].request_headers == {"Authorization": f"Bearer {TOKEN}"}

    @pytest.mark.asyncio
    async def test_before_save_hook_and_leak_warning(self, tmp_path: Path, caplog) -> None:
        backend = FakeBackend([[_interaction(response={"echo": TOKEN})]])

        def before_save(interactions: list[Interaction]) -> None:
            interactions[0].status = 299

        with caplog.at_level(logging.WARNING, logger="trafficpact.recording.scrubber"):
            await _controller(tmp_path, backend, live=True).run(
                _perform, _context(before_save=before_save)
            )

        stored = RecordingStore().read(
            compose_recording_path(tmp_path / "rec"), "profile/provider/UseCase", "hash1"
        )
        assert stored[0].status == 299
        assert "security scheme 'bearer'" in caplog.text

    @pytest.mark.asyncio
    async def test_existing_recording_is_overwritten_without_candidate_policy(self, tmp_path: Path) -> None:
        main = compose_recording_path(tmp_path / "rec")
        RecordingStore().write(main, "profile/provider/UseCase", "hash1", [_interaction(status=500)])

        outcome = await _controller(tmp_path, FakeBackend([[_interaction()]]), live=True).run(
            _perform, _context()
        )

        assert outcome.written_path == main
        assert RecordingStore().read(main, "profile/provider/UseCase", "hash1")[0].status == 200

    @pytest.mark.asyncio
    async def test_unchanged_traffic_is_not_written_to_candidate(self, tmp_path: Path) -> None:
        main = compose_recording_path(tmp_path / "rec")
        RecordingStore().write(
            main, "profile/provider/UseCase", "hash1", [_interaction(token="SECURITY_bearer")]
        )

        outcome = await _controller(
            tmp_path, FakeBackend([[_interaction()]]), live=True, allow_candidate_on_diff=True
        ).run(_perform, _context())

        assert outcome.written_path is None
        assert outcome.analysis is not None
        assert outcome.analysis.impact is ImpactLevel.NONE
        assert not compose_recording_path(tmp_path / "rec", "new").exists()

    @pytest.mark.asyncio
    async def test_changed_traffic_is_written_to_candidate(self, tmp_path: Path) -> None:
        main = compose_recording_path(tmp_path / "rec")
        RecordingStore().write(
            main, "profile/provider/UseCase", "hash1", [_interaction(token="SECURITY_bearer")]
        )

        outcome = await _controller(
            tmp_path, FakeBackend([[_interaction(status=404)]]), live=True, allow_candidate_on_diff=True
        ).run(_perform, _context())

        candidate = compose_recording_path(tmp_path / "rec", "new")
        assert outcome.written_path == candidate
        assert outcome.analysis.impact is ImpactLevel.MAJOR
        assert RecordingStore().read(main, "profile/provider/UseCase", "hash1")[0].status == 200
        assert RecordingStore().read(candidate, "profile/provider/UseCase", "hash1")[0].status == 404


class TestEmptyRecordings:
    """Empty captures are stored once."""

    @pytest.mark.asyncio
    async def test_empty_capture_is_written(self, tmp_path: Path) -> None:
        outcome = await _controller(tmp_path, FakeBackend([[]]), live=True).run(_perform, _context())
        main = compose_recording_path(tmp_path / "rec")
        assert outcome.written_path == main
        assert RecordingStore().read(main, "profile/provider/UseCase", "hash1") == []

    @pytest.mark.asyncio
    async def test_empty_capture_over_stored_empty_set_writes_nothing(self, tmp_path: Path) -> None:
        main = compose_recording_path(tmp_path / "rec")
        RecordingStore().write(main, "profile/provider/UseCase", "hash1", [])
        before = main.stat().st_mtime_ns

        outcome = await _controller(tmp_path, FakeBackend([[]]), live=True).run(_perform, _context())

        assert outcome.written_path is None
        assert main.stat().st_mtime_ns == before


class TestTwoPass:
    """Two-pass consistency enforcement."""

    @pytest.mark.asyncio
    async def test_consistent_passes_are_recorded(self, tmp_path: Path) -> None:
        calls = []

        async def perform() -> int:
            calls.append(1)
            return len(calls)

        backend = FakeBackend([[_interaction()], [_interaction()]])
        outcome = await _controller(tmp_path, backend, live=True, enforce_two_pass=True).run(
            perform, _context()
        )

        assert len(calls) == 2
        assert outcome.result == 1
        assert outcome.written_path is not None

    @pytest.mark.asyncio
    async def test_inconsistent_passes_raise(self, tmp_path: Path) -> None:
        backend = FakeBackend([[_interaction()], [_interaction(), _interaction()]])
        controller = _controller(tmp_path, backend, live=True, enforce_two_pass=True)

        with pytest.raises(NonDeterministicTrafficError):
            await controller.run(_perform, _context())

        assert backend.calls[-2:] == ["restore", "enable_net_connect"]
        assert not compose_recording_path(tmp_path / "rec").exists()


class TestPromotionAndState:
    """Candidate promotion toggle and lifecycle state rules."""

    @pytest.mark.asyncio
    async def test_promote_candidate_after_run(self, tmp_path: Path) -> None:
        base = tmp_path / "rec"
        store = RecordingStore()
        store.write(compose_recording_path(base), "profile/provider/UseCase", "hash1", [_interaction(token="SECURITY_bearer")])
        store.write(compose_recording_path(base, "new"), "profile/provider/UseCase", "hash1", [_interaction(status=201, token="SECURITY_bearer")])

        await _controller(tmp_path, FakeBackend(), live=False, promote_candidate=True).run(
            _perform, _context()
        )

        assert not compose_recording_path(base, "new").exists()
        assert (tmp_path / "old" / "rec_0.json").exists()
        assert store.read(compose_recording_path(base), "profile/provider/UseCase", "hash1")[0].status == 201

    @pytest.mark.asyncio
    async def test_controller_runs_only_once(self, tmp_path: Path) -> None:
        controller = _controller(tmp_path, FakeBackend([[]]), live=True)
        await controller.run(_perform, _context())
        with pytest.raises(LifecycleStateError):
            await controller.run(_perform, _context())

    @pytest.mark.asyncio
    async def test_default_predicate_uses_live_pattern(self, tmp_path: Path) -> None:
        backend = FakeBackend([[]])
        controller = RecordingLifecycleController(
            RecordingStore(),
            backend,
            RecordingConfig(live_pattern="profile:provider:*"),
            recording_base=tmp_path / "rec",
        )
        outcome = await controller.run(_perform, _context())
        assert outcome.mode is LifecycleMode.RECORD


class TestFromProject:
    """Building a controller from trafficpact.yaml and environment flags."""

    @pytest.fixture(autouse=True)
    def _clean_environment(self, monkeypatch) -> None:
        for variable in [*ENV_FLAGS, LIVE_PATTERN_ENV]:
            monkeypatch.delenv(variable, raising=False)

    def test_reads_yaml_and_resolves_fixtures_under_root(self, tmp_path: Path) -> None:
        (tmp_path / "trafficpact.yaml").write_text(
            "recording:\n"
            "  fixtures_dir: fixtures\n"
            "  fixture_name: api\n"
            "  allow_candidate_on_diff: true\n"
            "  process_recordings: false\n"
        )

        controller = RecordingLifecycleController.from_project(
            RecordingStore(), FakeBackend(), project_root=tmp_path, environ={}
        )

        assert controller.recording_base == tmp_path / "fixtures" / "api"
        assert controller.config.allow_candidate_on_diff is True
        assert controller.config.process_recordings is False

    def test_environment_overrides_yaml(self, tmp_path: Path, monkeypatch) -> None:
        (tmp_path / "trafficpact.yaml").write_text("recording:\n  enforce_two_pass: true\n")
        monkeypatch.setenv("ENFORCE_TWO_PASS", "false")
        monkeypatch.setenv("USE_NEW_TRAFFIC", "true")
        monkeypatch.setenv("TRAFFICPACT_LIVE_API", "profile:*")

        controller = RecordingLifecycleController.from_project(
            RecordingStore(), FakeBackend(), project_root=tmp_path
        )

        assert controller.config.enforce_two_pass is False
        assert controller.config.use_candidate is True
        assert controller.config.live_pattern == "profile:*"

    def test_project_root_is_discovered_from_cwd(self, tmp_path: Path, monkeypatch) -> None:
        (tmp_path / "trafficpact.yaml").write_text("recording:\n  fixture_name: found\n")
        nested = tmp_path / "tests" / "unit"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)

        controller = RecordingLifecycleController.from_project(RecordingStore(), FakeBackend())

        assert controller.recording_base == tmp_path.resolve() / "recordings" / "found"

    @pytest.mark.asyncio
    async def test_live_pattern_from_environment_selects_record_mode(
        self, tmp_path: Path, monkeypatch
    ) -> None:
        monkeypatch.setenv("TRAFFICPACT_LIVE_API", "profile:provider:UseCase")
        backend = FakeBackend([[_interaction()]])
        controller = RecordingLifecycleController.from_project(
            RecordingStore(), backend, project_root=tmp_path
        )

        outcome = await controller.run(_perform, _context())

        assert outcome.mode is LifecycleMode.RECORD
        assert outcome.written_path == compose_recording_path(tmp_path / "recordings" / "recording")
