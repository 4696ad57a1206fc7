"""Matching subpackage: structural traffic diff and impact analysis."""

from trafficpact.matching.analyzer import AnalysisResult, ImpactLevel, analyze_impact
from trafficpact.matching.collector import ErrorCollector
from trafficpact.matching.errors import DiffError, ErrorBucket, ErrorType, MatchErrorKind
from trafficpact.matching.matcher import MatchResult, match_traffic

__all__ = [
    "AnalysisResult",
    "DiffError",
    "ErrorBucket",
    "ErrorCollector",
    "ErrorType",
    "ImpactLevel",
    "MatchErrorKind",
    "MatchResult",
    "analyze_impact",
    "match_traffic",
]
