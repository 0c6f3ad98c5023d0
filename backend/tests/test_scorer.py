"""Tests for release scoring and selection."""

import pytest

from quality.model import CandidateRelease, Protocol, QualityTarget, ReleaseFilterRule
from quality.parser import parse_release
from quality.scorer import (
    ScoredCandidate,
    ScoreResult,
    Verdict,
    meets_target,
    pick_best,
    score_release,
)


def _candidate(title, seeders=10, protocol=Protocol.TORRENT, priority=25, size=1000):
    return CandidateRelease(title=title, seeders=seeders, protocol=protocol,
                            indexer_priority=priority, size=size, quality=parse_release(title))


@pytest.fixture
def target():
    return QualityTarget(resolution="1080p", source="web", min_seeders=3)


class TestRejections:
    def test_seeder_floor(self, target):
        result = score_release(target, [], _candidate("Movie.2020.1080p.WEB-DL-GRP", seeders=1))
        assert result.verdict == Verdict.REJECT
        assert result.score == 0
        assert "Seeders" in result.reasons[0]

    def test_seeders_ignored_for_usenet(self, target):
        result = score_release(target, [], _candidate("Movie.2020.1080p.WEB-DL-GRP", seeders=0,
                                                      protocol=Protocol.USENET))
        assert result.accepted

    def test_below_resolution_floor(self, target):
        result = score_release(target, [], _candidate("Movie.2020.720p.WEB-DL-GRP"))
        assert not result.accepted
        assert "Resolution" in result.reasons[0]

    def test_min_resolution_lowers_floor(self):
        target = QualityTarget(resolution="1080p", min_resolution="720p", source="web", min_seeders=0)
        assert score_release(target, [], _candidate("Movie.2020.720p.WEB-DL-GRP")).accepted

    def test_below_source_floor(self):
        target = QualityTarget(resolution="1080p", source="bluray", min_seeders=0)
        result = score_release(target, [], _candidate("Movie.2020.1080p.WEB-DL-GRP"))
        assert not result.accepted
        assert "Source" in result.reasons[0]

    def test_floor_rejects_regardless_of_extras(self):
        target = QualityTarget(resolution="2160p", source="remux", min_seeders=0,
                               hdr_formats={"dv", "hdr10"}, audio_formats={"atmos", "truehd"})
        title = "Movie.2020.1080p.BluRay.REMUX.DV.HDR10.TrueHD.Atmos-GRP"
        assert not score_release(target, [], _candidate(title, seeders=999)).accepted

    def test_must_not_contain(self, target):
        rules = [ReleaseFilterRule("must_not_contain", "HDCAM")]
        assert not score_release(target, rules, _candidate("Movie.2020.1080p.HDCAM.WEB-GRP")).accepted

    def test_must_contain(self, target):
        rules = [ReleaseFilterRule("must_contain", r"\bx265\b", is_regex=True)]
        assert not score_release(target, rules, _candidate("Movie.2020.1080p.WEB-DL.x264-GRP")).accepted
        assert score_release(target, rules, _candidate("Movie.2020.1080p.WEB-DL.x265-GRP")).accepted

    def test_invalid_regex_is_ignored(self, target):
        rules = [ReleaseFilterRule("must_not_contain", "([unclosed", is_regex=True)]
        assert score_release(target, rules, _candidate("Movie.2020.1080p.WEB-DL-GRP")).accepted


class TestScoreOrdering:
    def test_resolution_outweighs_all_lower_tiers(self):
        target = QualityTarget(resolution="2160p", min_resolution="1080p", source="any",
                               hdr_formats={"dv", "hdr10"}, audio_formats={"atmos", "truehd"},
                               codec="hevc", min_seeders=0)
        plain_uhd = score_release(target, [], _candidate("Movie.2020.2160p.HDTV-GRP"))
        loaded_hd = score_release(
            target, [], _candidate("Movie.2020.1080p.BluRay.REMUX.DV.HDR10.TrueHD.Atmos.x265-GRP"))
        assert plain_uhd.accepted and loaded_hd.accepted
        assert plain_uhd.score > loaded_hd.score

    def test_source_outweighs_hdr_and_audio(self):
        target = QualityTarget(resolution="1080p", source="any", hdr_formats={"hdr10"},
                               audio_formats={"atmos", "truehd"}, min_seeders=0)
        bluray = score_release(target, [], _candidate("Movie.2020.1080p.BluRay-GRP"))
        web = score_release(target, [], _candidate("Movie.2020.1080p.WEB-DL.HDR10.TrueHD.Atmos-GRP"))
        assert bluray.score > web.score

    def test_overshooting_target_resolution_earns_nothing(self, target):
        at_target = score_release(target, [], _candidate("Movie.2020.1080p.WEB-DL-GRP"))
        above = score_release(target, [], _candidate("Movie.2020.2160p.WEB-DL-GRP"))
        assert at_target.score == above.score

    def test_trusted_group_bonus(self, target):
        candidate = _candidate("Movie.2020.1080p.WEB-DL-GRP")
        plain = score_release(target, [], candidate)
        trusted = score_release(target, [], candidate, trusted=True)
        assert trusted.score == plain.score + 5

    def test_scoring_is_pure(self, target):
        candidate = _candidate("Movie.2020.1080p.WEB-DL.DDP5.1.x264-GRP")
        first = score_release(target, [], candidate)
        second = score_release(target, [], candidate)
        assert (first.score, first.verdict) == (second.score, second.verdict)


class TestPickBest:
    @staticmethod
    def _scored(score, seeders=10, priority=25, size=1000, title="x"):
        return ScoredCandidate(_candidate(title, seeders=seeders, priority=priority, size=size),
                               ScoreResult(score, Verdict.ACCEPT))

    def test_highest_score_wins(self):
        best = pick_best([self._scored(90, title="low"), self._scored(100, title="high")])
        assert best.candidate.title == "high"

    def test_seeders_break_score_tie(self):
        best = pick_best([self._scored(100, seeders=5, title="few"),
                          self._scored(100, seeders=50, title="many")])
        assert best.candidate.title == "many"

    def test_indexer_priority_breaks_remaining_tie(self):
        best = pick_best([self._scored(100, priority=50, title="low-prio"),
                          self._scored(100, priority=10, title="high-prio")])
        assert best.candidate.title == "high-prio"

    def test_rejected_never_selected(self):
        rejected = ScoredCandidate(_candidate("r"), ScoreResult(0, Verdict.REJECT, ["nope"]))
        assert pick_best([rejected]) is None
        assert pick_best([]) is None


def test_meets_target():
    target = QualityTarget(resolution="1080p", source="bluray")
    assert meets_target(target, parse_release("Movie.2020.1080p.BluRay-GRP"))
    assert not meets_target(target, parse_release("Movie.2020.1080p.WEB-DL-GRP"))
    assert not meets_target(target, parse_release("Movie.2020.720p.BluRay-GRP"))
