"""Tests for the exclusion, group trust and blocklist gate."""

from datetime import UTC, datetime, timedelta

import pytest

from db.models.decisions import BlocklistEntry
from db.repositories.blocklist import BlocklistRepository
from db.repositories.exclusions import ExclusionRepository
from db.repositories.groups import GroupTrustRepository
from extensions import db
from trust_gate import TrustGate


@pytest.fixture
def gate(app):
    return TrustGate()


def test_clean_candidate_admitted(gate, movie, candidate_factory):
    decision = gate.admit(candidate_factory("Arrival.2016.1080p.WEB-DL-GRP"), movie)
    assert decision.admitted
    assert not decision.trusted


def test_blocked_group_rejected(gate, movie, candidate_factory):
    GroupTrustRepository().block_group("grp", reason="fakes")
    decision = gate.admit(candidate_factory("Arrival.2016.1080p.WEB-DL-GRP"), movie)
    assert not decision.admitted
    assert "blocked" in decision.reason


def test_trusted_group_overrides_block(gate, movie, candidate_factory):
    groups = GroupTrustRepository()
    groups.block_group("GRP")
    groups.trust_group("GRP")
    decision = gate.admit(candidate_factory("Arrival.2016.1080p.WEB-DL-GRP"), movie)
    assert decision.admitted
    assert decision.trusted


def test_blocklisted_title_rejected(gate, movie, candidate_factory):
    BlocklistRepository().add_entry("Arrival.2016.1080p.WEB-DL-GRP", media_id=movie["id"])
    decision = gate.admit(candidate_factory("arrival 2016 1080p web dl grp"), movie)
    assert not decision.admitted
    assert decision.reason == "Release is blocklisted"


def test_expired_blocklist_entry_ignored(gate, movie, candidate_factory):
    entry = BlocklistRepository().add_entry("Arrival.2016.1080p.WEB-DL-GRP", expires_in_hours=24)
    row = db.session.get(BlocklistEntry, entry["id"])
    row.expires_at = (datetime.now(UTC) - timedelta(hours=1)).isoformat()
    db.session.commit()

    assert gate.admit(candidate_factory("Arrival.2016.1080p.WEB-DL-GRP"), movie).admitted
    assert BlocklistRepository().purge_expired() == 1


def test_manual_entry_never_expires(app):
    entry = BlocklistRepository().add_entry("Some.Release-GRP", expires_in_hours=1, is_manual=True)
    assert entry["expires_at"] is None


def test_media_exclusion(gate, movie, candidate_factory):
    ExclusionRepository().add_media_exclusion(movie["id"], reason="owned on disc")
    decision = gate.admit(candidate_factory("Arrival.2016.1080p.WEB-DL-GRP"), movie)
    assert not decision.admitted
    assert "excluded" in decision.reason


def test_indexer_library_exclusion(gate, movie, library, candidate_factory):
    ExclusionRepository().add_indexer_exclusion(7, library["id"])
    assert not gate.admit(candidate_factory("Arrival.2016.1080p.WEB-DL-GRP", indexer_id=7), movie).admitted
    assert gate.admit(candidate_factory("Arrival.2016.1080p.WEB-DL-GRP", indexer_id=8), movie).admitted


def test_exclusion_checked_before_group_trust(gate, movie, candidate_factory):
    GroupTrustRepository().trust_group("GRP")
    ExclusionRepository().add_media_exclusion(movie["id"], reason="owned on disc")
    decision = gate.admit(candidate_factory("Arrival.2016.1080p.WEB-DL-GRP"), movie)
    assert not decision.admitted
    assert decision.reason == "Media item is excluded"
