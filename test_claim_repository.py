"""Tests for the copy-on-write claim repository."""

from dataclasses import FrozenInstanceError, replace
from datetime import date

import pytest

from claimguard.models.claim import Claim
from claimguard.storage.claim_repository import ClaimRepository


def _claim(claim_id: str, timestamp: int = 1_700_000_000, verified: bool = False, value=None) -> Claim:
    return Claim(
        id=claim_id,
        policy_number="POL-1",
        provider="ACME",
        claim_date=date(2024, 1, 1),
        public_amount_hint=100,
        encrypted_amount_handle=f"0x{claim_id}",
        is_verified=verified,
        creator="0xabc",
        timestamp=timestamp,
        decrypted_value=value,
    )


def test_empty_repository():
    repo = ClaimRepository()
    assert repo.snapshot() == ()
    assert len(repo) == 0
    assert repo.get("missing") is None
    assert "missing" not in repo


def test_replace_orders_by_timestamp_then_id():
    repo = ClaimRepository()
    repo.replace([_claim("b", 20), _claim("c", 10), _claim("a", 20)])

    assert [c.id for c in repo.snapshot()] == ["c", "a", "b"]
    assert repo.version == 1


def test_previous_snapshot_is_unaffected_by_replace():
    repo = ClaimRepository()
    repo.replace([_claim("a")])
    old_snapshot = repo.snapshot()
    old_mapping = repo.as_mapping()

    repo.replace([_claim("a"), _claim("b")])

    assert [c.id for c in old_snapshot] == ["a"]
    assert list(old_mapping) == ["a"]
    assert len(repo) == 2


def test_mapping_is_read_only():
    repo = ClaimRepository()
    repo.replace([_claim("a")])

    with pytest.raises(TypeError):
        repo.as_mapping()["b"] = _claim("b")


def test_duplicate_ids_are_rejected():
    repo = ClaimRepository()
    with pytest.raises(ValueError):
        repo.replace([_claim("a"), _claim("a")])
    assert repo.version == 0


def test_verified_claim_never_regresses():
    repo = ClaimRepository()
    repo.replace([_claim("a", verified=True, value=500)])

    repo.replace([_claim("a")])

    kept = repo.get("a")
    assert kept.is_verified is True
    assert kept.decrypted_value == 500


def test_stale_generation_is_discarded():
    repo = ClaimRepository()
    older = repo.next_generation()
    newer = repo.next_generation()

    assert repo.replace([_claim("new")], generation=newer) is True
    assert repo.replace([_claim("old")], generation=older) is False
    assert [c.id for c in repo.snapshot()] == ["new"]


def test_claims_are_immutable():
    repo = ClaimRepository()
    repo.replace([_claim("a")])
    claim = repo.get("a")

    with pytest.raises(FrozenInstanceError):
        claim.is_verified = True
    assert replace(claim, provider="Other").id == "a"
