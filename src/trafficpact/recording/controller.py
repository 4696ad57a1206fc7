"""Record-vs-replay lifecycle for one test run.

The controller decides whether a run calls the live API or replays a
stored recording, then drives the backend, scrubber, matcher and store
in strict sequence:

    record: capture -> decode -> scrub -> before_save -> leak check
            -> match against stored traffic -> write main or candidate
    replay: read -> restore -> before_load -> serve mocks, block network

Whatever happens inside a run, the backend is restored and live network
access re-enabled before the controller returns or raises.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from trafficpact.errors import (
    BaseUrlMissingError,
    LifecycleStateError,
    NonDeterministicTrafficError,
)
from trafficpact.matching.analyzer import AnalysisResult, ImpactLevel, analyze_impact
from trafficpact.matching.matcher import match_traffic
from trafficpact.models.config import (
    RecordingConfig,
    find_project_root,
    load_project_config,
    match_live_pattern,
)
from trafficpact.recording.backend import TrafficBackend
from trafficpact.recording.decoding import (
    assert_definitions_are_not_strings,
    decode_interactions,
)
from trafficpact.recording.models import (
    Interaction,
    RecordingType,
    compose_recording_index,
)
from trafficpact.recording.placeholders import PlaceholderSpec, ScrubDirection
from trafficpact.recording.scrubber import apply_placeholders, find_leaks
from trafficpact.storage.recording_store import RecordingStore, compose_recording_path

logger = logging.getLogger(__name__)

Hook = Callable[[list[Interaction]], "Awaitable[None] | None"]
Perform = Callable[[], Awaitable[Any]]


class LifecycleState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    REPLAYING = "replaying"
    CLOSED = "closed"


class LifecycleMode(str, Enum):
    RECORD = "record"
    REPLAY = "replay"


_TRANSITIONS: dict[LifecycleState, set[LifecycleState]] = {
    LifecycleState.IDLE: {LifecycleState.RECORDING, LifecycleState.REPLAYING},
    LifecycleState.RECORDING: {LifecycleState.CLOSED},
    LifecycleState.REPLAYING: {LifecycleState.CLOSED},
    LifecycleState.CLOSED: set(),
}


@dataclass
class RecordingContext:
    """Everything the controller needs to know about one test run.

    ``placeholders`` come from ``resolve_placeholders``. Hooks may be
    plain or async callables and receive the interaction list, which
    they may mutate in place.
    """

    profile_id: str
    provider_name: str
    use_case_name: str
    content_hash: str
    base_url: str | None = None
    recording_type: RecordingType = RecordingType.MAIN
    placeholders: list[PlaceholderSpec] = field(default_factory=list)
    before_save: Hook | None = None
    before_load: Hook | None = None
    process_recordings: bool = True

    @property
    def index_key(self) -> str:
        key = f"{self.profile_id}/{self.provider_name}/{self.use_case_name}"
        return compose_recording_index(key, self.recording_type)


@dataclass
class LifecycleOutcome:
    """Result of a controller run.

    ``analysis`` is set when new traffic was matched against a stored
    recording; ``written_path`` is None when nothing was written.
    """

    result: Any
    mode: LifecycleMode
    analysis: AnalysisResult | None = None
    written_path: Path | None = None


async def _call_hook(hook: Hook | None, interactions: list[Interaction]) -> None:
    if hook is None:
        return
    outcome = hook(interactions)
    if inspect.isawaitable(outcome):
        await outcome


class RecordingLifecycleController:
    """Drives a single record or replay pass.

    A controller handles exactly one run: Idle -> Recording | Replaying
    -> Closed. Create a new controller for the next run.

    File access assumes exclusive use of the recording path for the
    duration of the run.
    """

    def __init__(
        self,
        store: RecordingStore,
        backend: TrafficBackend,
        config: RecordingConfig,
        recording_base: Path | None = None,
        is_live: Callable[[RecordingContext], bool] | None = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self.config = config
        self.recording_base = (
            Path(recording_base)
            if recording_base is not None
            else Path(config.fixtures_dir) / config.fixture_name
        )
        self._is_live = is_live or self._match_live_pattern
        self._state = LifecycleState.IDLE

    @classmethod
    def from_project(
        cls,
        store: RecordingStore,
        backend: TrafficBackend,
        project_root: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "RecordingLifecycleController":
        """Build a controller from trafficpact.yaml plus environment flags.

        Relative ``fixtures_dir`` values resolve against the project root.
        """
        if project_root is None:
            project_root = find_project_root()
        config = load_project_config(project_root).recording.with_env_overrides(environ)
        recording_base = project_root / config.fixtures_dir / config.fixture_name
        return cls(store, backend, config, recording_base=recording_base)

    @property
    def state(self) -> LifecycleState:
        return self._state

    def _transition(self, target: LifecycleState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise LifecycleStateError(
                f"Cannot move from {self._state.value!r} to {target.value!r}"
            )
        logger.debug("Lifecycle %s -> %s", self._state.value, target.value)
        self._state = target

    def _processes(self, context: RecordingContext) -> bool:
        """Placeholders are applied only when both config and context allow it."""
        return self.config.process_recordings and context.process_recordings

    def _match_live_pattern(self, context: RecordingContext) -> bool:
        return match_live_pattern(
            self.config.live_pattern,
            context.profile_id,
            context.provider_name,
            context.use_case_name,
        )

    async def run(self, perform: Perform, context: RecordingContext) -> LifecycleOutcome:
        """Record or replay traffic around an awaited ``perform`` call.

        Raises:
            LifecycleStateError: If this controller already ran.
            RecordingsNotFoundError: In replay mode, if no recording exists.
            BaseUrlMissingError: If recordings are processed without a base URL.
            NonDeterministicTrafficError: If two-pass enforcement detects
                differing traffic.
        """
        if self._state is not LifecycleState.IDLE:
            raise LifecycleStateError(
                f"Controller is {self._state.value!r}, a run requires 'idle'"
            )

        live = self._is_live(context)
        logger.info(
            "%s %s",
            "Recording" if live else "Replaying",
            context.index_key,
        )
        try:
            if live:
                outcome = await self._record(perform, context)
            else:
                outcome = await self._replay(perform, context)
        finally:
            self._teardown()

        if self.config.promote_candidate and self.store.can_promote(self.recording_base):
            self.store.promote_candidate(self.recording_base)

        return outcome

    def _teardown(self) -> None:
        try:
            self.backend.restore()
        finally:
            try:
                self.backend.enable_net_connect()
            finally:
                # A failure before the first transition still closes the run.
                self._state = LifecycleState.CLOSED
        logger.debug("Restored HTTP traffic and enabled outgoing requests")

    # -- Replay --

    async def _replay(self, perform: Perform, context: RecordingContext) -> LifecycleOutcome:
        self._transition(LifecycleState.REPLAYING)

        path = compose_recording_path(
            self.recording_base, "new" if self.config.use_candidate else None
        )
        stored = self.store.read(path, context.index_key, context.content_hash)
        interactions = [i.model_copy(deep=True) for i in stored]

        if self._processes(context) and interactions:
            if context.base_url is None:
                raise BaseUrlMissingError(context.provider_name)
            apply_placeholders(interactions, context.placeholders, ScrubDirection.RESTORE)

        if context.before_load is not None:
            logger.debug("Calling 'before_load' hook on loaded recordings")
        await _call_hook(context.before_load, interactions)

        self.backend.load_mocks(interactions)
        self.backend.disable_net_connect()

        result = await perform()
        self._transition(LifecycleState.CLOSED)
        return LifecycleOutcome(result=result, mode=LifecycleMode.REPLAY)

    # -- Record --

    def _capture(self, context: RecordingContext) -> list[Interaction]:
        interactions = self.backend.stop_recording()
        assert_definitions_are_not_strings(interactions)
        if not interactions:
            return []

        decode_interactions(interactions)
        if self._processes(context):
            if context.base_url is None:
                raise BaseUrlMissingError(context.provider_name)
            apply_placeholders(interactions, context.placeholders, ScrubDirection.SCRUB)
        return interactions

    async def _record(self, perform: Perform, context: RecordingContext) -> LifecycleOutcome:
        self._transition(LifecycleState.RECORDING)

        self.backend.start_recording()
        result = await perform()
        interactions = self._capture(context)

        if self.config.enforce_two_pass:
            logger.debug("Running second recording pass")
            self.backend.start_recording()
            await perform()
            self._check_two_pass(interactions, self._capture(context))

        if interactions:
            if context.before_save is not None:
                logger.debug("Calling 'before_save' hook on recorded interactions")
            await _call_hook(context.before_save, interactions)
            if context.placeholders:
                find_leaks(interactions, context.placeholders)

        written_path, analysis = self._store_recording(context, interactions)
        self._transition(LifecycleState.CLOSED)
        return LifecycleOutcome(
            result=result,
            mode=LifecycleMode.RECORD,
            analysis=analysis,
            written_path=written_path,
        )

    def _check_two_pass(self, first: list[Interaction], second: list[Interaction]) -> None:
        match = match_traffic(first, second)
        if match.valid:
            return
        assert match.errors is not None
        impact = analyze_impact(match.errors)
        if impact is not ImpactLevel.NONE:
            details = "; ".join(
                e.message for e in match.errors.added + match.errors.removed + match.errors.changed
            )
            raise NonDeterministicTrafficError(
                f"Two recording passes produced {impact.value} differences: {details}"
            )

    def _store_recording(
        self, context: RecordingContext, interactions: list[Interaction]
    ) -> tuple[Path | None, AnalysisResult | None]:
        """Write captured traffic to the main or candidate file.

        Returns:
            ``(written_path, analysis)``. Nothing is written when an empty
            set meets a stored empty set, or when candidate matching finds
            no impact.
        """
        main_path = compose_recording_path(self.recording_base)
        candidate_path = compose_recording_path(self.recording_base, "new")
        index, content_hash = context.index_key, context.content_hash

        existing = self.store.find(main_path, index, content_hash)

        if existing is not None and not existing and not interactions:
            logger.debug("Empty recording already stored, nothing to write")
            return None, None

        if existing is not None and self.config.allow_candidate_on_diff:
            match = match_traffic(existing, interactions)
            analysis = AnalysisResult.from_bucket(
                match.errors,
                profile_id=context.profile_id,
                provider_name=context.provider_name,
                use_case_name=context.use_case_name,
                recording_path=str(main_path),
            )
            logger.debug("Matched incoming traffic with stored traffic: %s", analysis.impact.value)
            if analysis.impact is ImpactLevel.NONE:
                logger.debug("No impact, incoming traffic is not stored")
                return None, analysis

            self.store.write(candidate_path, index, content_hash, interactions)
            logger.info(
                "Traffic changed with %s impact, written to %s",
                analysis.impact.value,
                candidate_path,
            )
            return candidate_path, analysis

        self.store.write(main_path, index, content_hash, interactions)
        return main_path, None
