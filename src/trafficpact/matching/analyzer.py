"""Impact classification of traffic differences.

Severity follows semantic versioning from the consumer's point of view:
response shape and status matter most, purely additive response content
is non-breaking, and request-only differences are the least severe.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from trafficpact.matching.errors import DiffError, ErrorBucket, MatchErrorKind


class ImpactLevel(str, Enum):
    """Ordered severity: NONE < PATCH < MINOR < MAJOR."""

    NONE = "none"
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ImpactLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, ImpactLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, ImpactLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, ImpactLevel):
            return NotImplemented
        return self.rank >= other.rank


_RANKS = {
    ImpactLevel.NONE: 0,
    ImpactLevel.PATCH: 1,
    ImpactLevel.MINOR: 2,
    ImpactLevel.MAJOR: 3,
}


def _has(errors: tuple[DiffError, ...], *kinds: MatchErrorKind) -> bool:
    return any(error.kind in kinds for error in errors)


def is_major(bucket: ErrorBucket) -> bool:
    removed_or_changed = bucket.removed + bucket.changed
    return (
        _has(removed_or_changed, MatchErrorKind.RESPONSE, MatchErrorKind.RESPONSE_HEADER)
        or _has(bucket.changed, MatchErrorKind.STATUS)
        or _has(bucket.added + bucket.removed, MatchErrorKind.LENGTH)
    )


def is_minor(bucket: ErrorBucket) -> bool:
    return _has(bucket.added, MatchErrorKind.RESPONSE, MatchErrorKind.RESPONSE_HEADER)


def analyze_impact(bucket: ErrorBucket) -> ImpactLevel:
    """Map collected findings to an ImpactLevel.

    Any finding not covered by the MAJOR or MINOR rules is PATCH. This
    catch-all is deliberate and also applies to finding kinds added in
    the future.
    """
    if is_major(bucket):
        return ImpactLevel.MAJOR
    if is_minor(bucket):
        return ImpactLevel.MINOR
    if not bucket.is_empty():
        return ImpactLevel.PATCH
    return ImpactLevel.NONE


class AnalysisResult(BaseModel):
    """Impact of a re-recording, for reporting."""

    model_config = {"extra": "forbid"}

    profile_id: str
    provider_name: str
    use_case_name: str
    recording_path: str
    impact: ImpactLevel
    errors: dict[str, list[str]] = Field(default_factory=dict)

    @classmethod
    def from_bucket(
        cls,
        bucket: ErrorBucket | None,
        *,
        profile_id: str,
        provider_name: str,
        use_case_name: str,
        recording_path: str,
    ) -> "AnalysisResult":
        bucket = bucket or ErrorBucket()
        return cls(
            profile_id=profile_id,
            provider_name=provider_name,
            use_case_name=use_case_name,
            recording_path=recording_path,
            impact=analyze_impact(bucket),
            errors={
                "added": [e.message for e in bucket.added],
                "removed": [e.message for e in bucket.removed],
                "changed": [e.message for e in bucket.changed],
            },
        )
