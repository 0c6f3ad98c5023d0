"""Release scoring: pure (preset, filters, candidate) -> score + verdict.

Scores are additive over strictly ordered tiers: every weight is larger
than the sum of all maximum contributions below it, so a gain in a higher
tier (resolution > source > HDR > audio > codec > edition > season pack)
always outweighs any combination of lower-tier gains.

Rejections never produce a score: filter failures, resolution/source below
the preset floor, and torrent seeders below the preset minimum.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum

from quality.model import (
    CandidateRelease,
    QualityTarget,
    ReleaseFilterRule,
    ReleaseQuality,
    resolution_rank,
    source_rank,
)

logger = logging.getLogger(__name__)

RESOLUTION_WEIGHT = 100_000
SOURCE_WEIGHT = 10_000
HDR_WEIGHT = 1_000
AUDIO_WEIGHT = 100
CODEC_BONUS = 50
EDITION_BONUS = 25
SEASON_PACK_BONUS = 8
TRUSTED_GROUP_BONUS = 5
ANIME_PREFERENCE_BONUS = 3
PROPER_BONUS = 2

MAX_AUDIO_OVERLAP = 9

MUST_CONTAIN = "must_contain"
MUST_NOT_CONTAIN = "must_not_contain"


class Verdict(StrEnum):
    ACCEPT = "accept"
    REJECT = "reject"


@dataclass
class ScoreResult:
    score: int
    verdict: Verdict
    reasons: list[str] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.verdict == Verdict.ACCEPT


@dataclass
class ScoredCandidate:
    """A candidate paired with its score, used for selection."""

    candidate: CandidateRelease
    result: ScoreResult

    @property
    def score(self) -> int:
        return self.result.score


def matches_filter(rule: ReleaseFilterRule, title: str) -> bool | None:
    """Check a single filter against a title.

    Returns:
        True/False for match/no match, None when the regex is invalid
        (the rule is then ignored).
    """
    if rule.is_regex:
        try:
            return re.search(rule.value, title, re.IGNORECASE) is not None
        except re.error as e:
            logger.warning("Ignoring invalid release filter regex %r: %s", rule.value, e)
            return None
    return rule.value.lower() in title.lower()


def check_filters(filters: list[ReleaseFilterRule], title: str) -> str | None:
    """Return a rejection reason if the title fails any filter, else None."""
    for rule in filters:
        if rule.filter_type != MUST_NOT_CONTAIN:
            continue
        if matches_filter(rule, title):
            return f"Matches must_not_contain filter '{rule.value}'"

    for rule in filters:
        if rule.filter_type != MUST_CONTAIN:
            continue
        if matches_filter(rule, title) is False:
            return f"Missing must_contain filter '{rule.value}'"

    return None


def _capped_rank(rank: int, target_rank: int) -> int:
    """Credit a rank up to the target; overshooting earns nothing extra."""
    if target_rank <= 0:
        return rank
    return min(rank, target_rank)


def score_quality(target: QualityTarget, quality: ReleaseQuality) -> tuple[int, list[str]]:
    """Tiered score of detected quality against a target, no verdict.

    Also used to score the file an item currently holds.
    """
    reasons: list[str] = []
    score = 0

    res = _capped_rank(quality.resolution_rank, resolution_rank(target.resolution))
    score += res * RESOLUTION_WEIGHT
    reasons.append(f"resolution {quality.resolution or '?'} (+{res * RESOLUTION_WEIGHT})")

    src = _capped_rank(quality.source_rank, source_rank(target.source))
    score += src * SOURCE_WEIGHT
    reasons.append(f"source {quality.source or '?'} (+{src * SOURCE_WEIGHT})")

    hdr_overlap = len(quality.hdr_formats & target.hdr_formats)
    if hdr_overlap:
        score += hdr_overlap * HDR_WEIGHT
        reasons.append(f"hdr {sorted(quality.hdr_formats & target.hdr_formats)} (+{hdr_overlap * HDR_WEIGHT})")

    audio_overlap = min(len(quality.audio_formats & target.audio_formats), MAX_AUDIO_OVERLAP)
    if audio_overlap:
        score += audio_overlap * AUDIO_WEIGHT
        reasons.append(f"audio overlap {audio_overlap} (+{audio_overlap * AUDIO_WEIGHT})")

    if target.codec not in ("", "any") and quality.codec == target.codec:
        score += CODEC_BONUS
        reasons.append(f"codec {quality.codec} (+{CODEC_BONUS})")

    if target.preferred_edition not in ("", "any") and quality.edition == target.preferred_edition:
        score += EDITION_BONUS
        reasons.append(f"edition {quality.edition} (+{EDITION_BONUS})")

    if target.prefer_season_packs and quality.season_pack:
        score += SEASON_PACK_BONUS
        reasons.append(f"season pack (+{SEASON_PACK_BONUS})")

    if target.prefer_dual_audio and quality.dual_audio:
        score += ANIME_PREFERENCE_BONUS
        reasons.append(f"dual audio (+{ANIME_PREFERENCE_BONUS})")
    if target.prefer_dubbed and quality.dubbed:
        score += ANIME_PREFERENCE_BONUS
        reasons.append(f"dubbed (+{ANIME_PREFERENCE_BONUS})")

    if quality.proper or quality.repack:
        score += PROPER_BONUS
        reasons.append(f"proper/repack (+{PROPER_BONUS})")

    return score, reasons


def score_release(
    target: QualityTarget,
    filters: list[ReleaseFilterRule],
    candidate: CandidateRelease,
    trusted: bool = False,
) -> ScoreResult:
    """Score a candidate release against a preset and its filters.

    Args:
        target: The effective quality preset.
        filters: Release filters attached to the preset.
        candidate: The indexer result (quality already parsed).
        trusted: True when the release group is on the trusted list.

    Returns:
        ScoreResult; rejected results carry score 0 and the reason.
    """
    reason = check_filters(filters, candidate.title)
    if reason:
        return ScoreResult(0, Verdict.REJECT, [reason])

    quality = candidate.quality
    floor = resolution_rank(target.floor_resolution)
    if quality.resolution_rank < floor:
        return ScoreResult(
            0, Verdict.REJECT,
            [f"Resolution {quality.resolution or 'unknown'} below floor {target.floor_resolution}"],
        )

    required_source = source_rank(target.source)
    if required_source and quality.source_rank < required_source:
        return ScoreResult(
            0, Verdict.REJECT,
            [f"Source {quality.source or 'unknown'} below floor {target.source}"],
        )

    if candidate.is_torrent and candidate.seeders < target.min_seeders:
        return ScoreResult(
            0, Verdict.REJECT,
            [f"Seeders {candidate.seeders} below minimum {target.min_seeders}"],
        )

    score, reasons = score_quality(target, quality)
    if trusted:
        score += TRUSTED_GROUP_BONUS
        reasons.append(f"trusted group {candidate.release_group} (+{TRUSTED_GROUP_BONUS})")

    return ScoreResult(score, Verdict.ACCEPT, reasons)


def selection_key(scored: ScoredCandidate) -> tuple:
    """Sort key: score desc, seeders desc, indexer priority asc, size asc."""
    c = scored.candidate
    return (-scored.score, -c.seeders, c.indexer_priority, c.size)


def pick_best(scored: list[ScoredCandidate]) -> ScoredCandidate | None:
    """Select the winning accepted candidate, or None."""
    accepted = [s for s in scored if s.result.accepted]
    if not accepted:
        return None
    return min(accepted, key=selection_key)


def meets_target(target: QualityTarget, quality: ReleaseQuality) -> bool:
    """True when held quality reaches the preset's resolution and source."""
    if quality.resolution_rank < resolution_rank(target.resolution):
        return False
    if quality.source_rank < source_rank(target.source):
        return False
    return True
