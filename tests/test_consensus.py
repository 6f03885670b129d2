"""
Unit tests for the consensus rules.

Tests:
- Proof of Work search and validity
- Validator registry
- Proof of Stake selection (including the stake-weighted distribution)
- Consensus engine dispatch
"""

import random
import threading
from dataclasses import replace
from decimal import Decimal

import pytest
from src.blockchain.block import BlockHeader, ConsensusKind, PosProof, PowProof
from src.blockchain.config import DEFAULT_DIFFICULTY, ChainConfig
from src.blockchain.errors import (
    BlockFault, MiningCancelled, MiningExhausted, NoValidatorsAvailable, ValidatorError,
)
from src.blockchain.validators import ValidatorRegistry
from src.consensus.engine import ConsensusEngine
from src.consensus.pos import GENESIS_VALIDATOR, ProofOfStake, finalize_pos, select_validator
from src.consensus.pow import ProofOfWork, finalize_pow
from src.core_crypto.hashing import get_hash_function, zero_hash


@pytest.fixture
def sha256():
    return get_hash_function("sha256")


@pytest.fixture
def header(sha256):
    return BlockHeader(
        index=1,
        timestamp=1_700_000_000,
        previous_hash=sha256(b"previous"),
        merkle_root=sha256(b"merkle"),
    )


@pytest.fixture
def registry():
    reg = ValidatorRegistry()
    reg.register("Alice", 1000)
    reg.register("Bob", 500)
    reg.register("Charlie", 2000)
    reg.register("David", 750)
    return reg


class TestProofOfWork:
    """Tests for Proof of Work."""

    def test_mining_meets_target(self, sha256, header):
        pow = ProofOfWork(sha256, difficulty=2)
        sealed, attempts = pow.mine(header)
        assert sealed.hash.startswith("00")
        assert sealed.proof.difficulty == 2
        assert attempts == sealed.proof.nonce
        assert pow.is_valid(sealed)

    def test_difficulty_zero_first_attempt(self, sha256, header):
        """Difficulty 0 accepts the first nonce tried, which is 1."""
        sealed, attempts = ProofOfWork(sha256, difficulty=0).mine(header)
        assert attempts == 1
        assert sealed.proof.nonce == 1

    def test_first_qualifying_nonce(self, sha256, header):
        """No nonce below the found one meets the target."""
        sealed, _ = ProofOfWork(sha256, difficulty=1).mine(header)
        for nonce in range(1, sealed.proof.nonce):
            candidate = header.compute_hash(sha256, PowProof(nonce, 1))
            assert not candidate.startswith("0")

    def test_hash_recomputes(self, sha256, header):
        sealed, _ = finalize_pow(header, 1, sha256)
        assert sealed.compute_hash(sha256) == sealed.hash

    def test_tampered_nonce_invalid(self, sha256, header):
        pow = ProofOfWork(sha256, difficulty=1)
        sealed, _ = pow.mine(header)
        forged = replace(sealed, proof=PowProof(sealed.proof.nonce + 1, 1))
        assert pow.check(forged) is BlockFault.HASH_MISMATCH
        assert not pow.is_valid(forged)

    def test_tampered_fields_invalid(self, sha256, header):
        """Changing any hashed field without re-mining breaks validity."""
        pow = ProofOfWork(sha256, difficulty=1)
        sealed, _ = pow.mine(header)
        for forged in (
            replace(sealed, merkle_root=sha256(b"other")),
            replace(sealed, previous_hash=sha256(b"other")),
            replace(sealed, timestamp=sealed.timestamp + 1),
            replace(sealed, index=7),
        ):
            assert not pow.is_valid(forged)

    def test_recomputed_but_insufficient_work(self, sha256, header):
        """A consistent hash that misses the prefix is still invalid."""
        sealed = header.seal(PowProof(nonce=1, difficulty=64), sha256)
        assert sealed.compute_hash(sha256) == sealed.hash
        assert ProofOfWork(sha256).check(sealed) is BlockFault.INSUFFICIENT_WORK

    def test_validity_uses_stored_difficulty(self, sha256, header):
        sealed, _ = ProofOfWork(sha256, difficulty=2).mine(header)
        assert ProofOfWork(sha256, difficulty=0).is_valid(sealed)

    def test_max_attempts(self, sha256, header):
        pow = ProofOfWork(sha256, difficulty=10, max_attempts=5)
        with pytest.raises(MiningExhausted) as info:
            pow.mine(header)
        assert info.value.attempts == 5

    def test_cancellation(self, sha256, header):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(MiningCancelled):
            ProofOfWork(sha256, difficulty=10).mine(header, cancel=cancel)

    def test_invalid_difficulty_rejected(self, sha256):
        with pytest.raises(ValueError):
            ProofOfWork(sha256, difficulty=-1)
        with pytest.raises(ValueError):
            ProofOfWork(sha256, difficulty=65)

    def test_helpers(self):
        assert ProofOfWork.hash_meets_target("00ab", 2)
        assert not ProofOfWork.hash_meets_target("0a0b", 2)
        assert ProofOfWork.hash_meets_target("ffff", 0)
        assert ProofOfWork.count_leading_zeros("000f") == 3
        assert ProofOfWork.target_prefix(3) == "000"


class TestValidatorRegistry:
    """Tests for the validator registry."""

    def test_register(self, registry):
        assert len(registry) == 4
        assert "Alice" in registry
        assert registry.addresses() == ["Alice", "Bob", "Charlie", "David"]
        assert registry.total_stake == Decimal(4250)

    def test_duplicate_rejected(self, registry):
        with pytest.raises(ValidatorError):
            registry.register("Alice", 1)

    def test_bad_stake_rejected(self):
        reg = ValidatorRegistry()
        with pytest.raises(ValidatorError):
            reg.register("Eve", -5)
        with pytest.raises(ValidatorError):
            reg.register("Eve", float("nan"))
        with pytest.raises(ValidatorError):
            reg.register("", 10)

    def test_add_stake(self, registry):
        assert registry.add_stake("Bob", "250.5") == Decimal("750.5")
        assert registry.stake_of("Bob") == Decimal("750.5")
        with pytest.raises(ValidatorError):
            registry.add_stake("Bob", 0)
        with pytest.raises(ValidatorError):
            registry.add_stake("Nobody", 10)

    def test_snapshots_are_copies(self, registry):
        """Mutating a returned validator must not touch the registry."""
        alice = registry.get("Alice")
        alice.stake = Decimal(1)
        alice.blocks_validated = 99
        assert registry.stake_of("Alice") == Decimal(1000)
        assert registry.get("Alice").blocks_validated == 0

    def test_record_validation(self, registry):
        assert registry.record_validation("Charlie") == 1
        assert registry.record_validation("Charlie") == 2
        assert registry.get("Charlie").blocks_validated == 2

    def test_find_unknown(self, registry):
        assert registry.find("Zed") is None
        with pytest.raises(ValidatorError):
            registry.get("Zed")

    def test_round_trip(self, registry):
        registry.record_validation("Bob")
        restored = ValidatorRegistry.from_dict(registry.to_dict())
        assert restored.addresses() == registry.addresses()
        assert restored.get("Bob").blocks_validated == 1
        assert restored.total_stake == registry.total_stake


class TestProofOfStake:
    """Tests for Proof of Stake selection and sealing."""

    def test_empty_registry_raises(self, sha256, header):
        with pytest.raises(NoValidatorsAvailable):
            ProofOfStake(sha256, ValidatorRegistry(), random.Random(1)).finalize(header)

    def test_zero_total_stake_raises(self, sha256):
        reg = ValidatorRegistry()
        reg.register("Idle", 0)
        with pytest.raises(NoValidatorsAvailable):
            select_validator(reg, random.Random(1))

    def test_finalize_embeds_snapshot(self, sha256, header, registry):
        pos = ProofOfStake(sha256, registry, random.Random(3))
        sealed = pos.finalize(header)
        address = sealed.proof.validator
        assert address in registry
        assert sealed.proof.stake_snapshot == registry.stake_of(address)
        assert registry.get(address).blocks_validated == 1
        assert pos.is_valid(sealed)

    def test_snapshot_not_live(self, sha256, header, registry):
        """A later top-up does not change a sealed block."""
        sealed = finalize_pos(header, registry, sha256, random.Random(3))
        registry.add_stake(sealed.proof.validator, 10_000)
        assert ProofOfStake(sha256, registry).is_valid(sealed)
        assert sealed.proof.stake_snapshot != registry.stake_of(sealed.proof.validator)

    def test_seeded_selection_reproducible(self, registry):
        first = [select_validator(registry, random.Random(11)) for _ in range(3)]
        second = [select_validator(registry, random.Random(11)) for _ in range(3)]
        assert first == second

    def test_single_validator_always_selected(self):
        reg = ValidatorRegistry()
        reg.register("Solo", 1)
        rng = random.Random(5)
        assert {select_validator(reg, rng) for _ in range(50)} == {"Solo"}

    def test_zero_stake_never_selected(self):
        reg = ValidatorRegistry()
        reg.register("Idle", 0)
        reg.register("Busy", 10)
        rng = random.Random(9)
        assert {select_validator(reg, rng) for _ in range(200)} == {"Busy"}

    def test_selection_frequency_tracks_stake(self, registry):
        """Observed frequencies converge to stake / total stake."""
        rng = random.Random(2024)
        counts = {address: 0 for address in registry.addresses()}
        draws = 10_000
        for _ in range(draws):
            counts[select_validator(registry, rng)] += 1

        total = float(registry.total_stake)
        for validator in registry:
            expected = float(validator.stake) / total
            assert counts[validator.address] / draws == pytest.approx(expected, abs=0.02)

    def test_tampered_validator_invalid(self, sha256, header, registry):
        pos = ProofOfStake(sha256, registry, random.Random(3))
        sealed = pos.finalize(header)
        forged = replace(sealed, proof=PosProof("Mallory", sealed.proof.stake_snapshot))
        assert pos.check(forged) is BlockFault.HASH_MISMATCH

    def test_tampered_stake_invalid(self, sha256, header, registry):
        pos = ProofOfStake(sha256, registry, random.Random(3))
        sealed = pos.finalize(header)
        forged = replace(sealed, proof=PosProof(sealed.proof.validator, Decimal("999999")))
        assert not pos.is_valid(forged)

    def test_genesis_seal(self, sha256, header):
        reg = ValidatorRegistry()
        sealed = ProofOfStake(sha256, reg).seal_genesis(header)
        assert sealed.proof.validator == GENESIS_VALIDATOR
        assert sealed.proof.stake_snapshot == 0
        assert len(reg) == 0


class TestConsensusEngine:
    """Tests for the dispatching engine."""

    def test_dispatch_on_proof(self, sha256, header, registry):
        engine = ConsensusEngine(sha256, difficulty=1, registry=registry, rng=random.Random(1))
        pow_header, attempts = engine.finalize(header, ConsensusKind.POW)
        pos_header, one = engine.finalize(header, ConsensusKind.POS)

        assert attempts >= 1 and one == 1
        assert engine.check(pow_header) is None
        assert engine.check(pos_header) is None

    def test_default_difficulty_matches_config(self, sha256):
        assert ConsensusEngine(sha256).difficulty == DEFAULT_DIFFICULTY
        assert ProofOfWork(sha256).difficulty == DEFAULT_DIFFICULTY
        assert ChainConfig().difficulty == DEFAULT_DIFFICULTY

    def test_unsealed_header_malformed(self, sha256, header):
        engine = ConsensusEngine(sha256)
        assert engine.check(header) is BlockFault.MALFORMED

    def test_non_hex_fields_malformed(self, sha256, header):
        engine = ConsensusEngine(sha256, difficulty=0)
        sealed, _ = engine.pow.mine(header)
        assert engine.check(replace(sealed, previous_hash="xyz")) is BlockFault.MALFORMED

    def test_negative_nonce_malformed(self, sha256, header):
        engine = ConsensusEngine(sha256, difficulty=0)
        sealed, _ = engine.pow.mine(header)
        forged = replace(sealed, proof=PowProof(-1, 0))
        assert engine.check(forged) is BlockFault.MALFORMED

    def test_sentinel_genesis(self, sha256):
        engine = ConsensusEngine(sha256, difficulty=1)
        genesis = BlockHeader(0, 0, zero_hash(sha256), zero_hash(sha256))
        sealed = engine.seal_genesis(genesis, ConsensusKind.POW)
        assert sealed.hash.startswith("0")
        assert engine.is_valid(sealed)
