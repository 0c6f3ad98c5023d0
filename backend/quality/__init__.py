"""Quality model, release-name parser and release scorer."""

from quality.model import (
    CandidateRelease,
    Protocol,
    QualityTarget,
    ReleaseFilterRule,
    ReleaseQuality,
    Resolution,
    Source,
    resolution_rank,
    source_rank,
)
from quality.parser import parse_release
from quality.scorer import (
    ScoredCandidate,
    ScoreResult,
    Verdict,
    meets_target,
    pick_best,
    score_quality,
    score_release,
)

__all__ = [
    "CandidateRelease",
    "Protocol",
    "QualityTarget",
    "ReleaseFilterRule",
    "ReleaseQuality",
    "Resolution",
    "Source",
    "resolution_rank",
    "source_rank",
    "parse_release",
    "ScoredCandidate",
    "ScoreResult",
    "Verdict",
    "meets_target",
    "pick_best",
    "score_quality",
    "score_release",
]
