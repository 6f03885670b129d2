"""
Proof of Stake

One weighted draw per block, no search:

1. total = sum of all registered stakes
2. r = uniform draw in [0, total) from the caller's PRNG
3. walk validators in registration order accumulating stake
4. the first validator whose cumulative stake is strictly greater than r
   seals the block

The header embeds the validator's address and a snapshot of its stake,
the self-hash is computed once, and the validator's counter is bumped.

The PRNG is an explicit random.Random owned by the caller, so selection is
reproducible under a seed. It is not a verifiable random function.
"""

import logging
import random
from decimal import Decimal
from typing import Optional

from ..blockchain.block import BlockHeader, PosProof
from ..blockchain.errors import BlockFault, NoValidatorsAvailable
from ..blockchain.validators import ValidatorRegistry
from ..core_crypto.hashing import HashFunction


logger = logging.getLogger(__name__)

GENESIS_VALIDATOR = "genesis"


def select_validator(registry: ValidatorRegistry, rng: random.Random) -> str:
    """
    Stake-weighted draw.

    Returns:
        Address of the selected validator

    Raises:
        NoValidatorsAvailable: Empty registry, or no validator holds stake
    """
    validators = registry.snapshot()
    if not validators:
        raise NoValidatorsAvailable("No validators registered")

    total = sum((v.stake for v in validators), Decimal(0))
    if total <= 0:
        raise NoValidatorsAvailable("No registered validator holds any stake")

    r = Decimal(rng.random()) * total
    cumulative = Decimal(0)
    for validator in validators:
        cumulative += validator.stake
        if cumulative > r:
            logger.debug("Draw %.4f of %s selected %s", r, total, validator.address)
            return validator.address

    # Decimal rounding of r can land exactly on total
    return [v for v in validators if v.stake > 0][-1].address


class ProofOfStake:
    """Stake-weighted validator selection over a ValidatorRegistry."""

    def __init__(self, hash_function: HashFunction, registry: ValidatorRegistry,
                 rng: Optional[random.Random] = None):
        self.hash_function = hash_function
        self.registry = registry
        self.rng = rng if rng is not None else random.Random()

    def select_validator(self) -> str:
        return select_validator(self.registry, self.rng)

    def finalize(self, header: BlockHeader) -> BlockHeader:
        """
        Select a validator and seal the header.

        Raises:
            NoValidatorsAvailable: If nobody can be selected; the registry
                is left untouched
        """
        with self.registry.lock:
            address = self.select_validator()
            proof = PosProof(validator=address, stake_snapshot=self.registry.stake_of(address))
            sealed = header.seal(proof, self.hash_function)
            count = self.registry.record_validation(address)

        logger.info("Block #%d sealed by %s (stake %s, %d blocks validated) hash=%s...",
                    header.index, address, proof.stake_snapshot, count, sealed.hash[:16])
        return sealed

    def seal_genesis(self, header: BlockHeader) -> BlockHeader:
        """Seal a genesis header with the reserved zero-stake validator; no draw."""
        return header.seal(PosProof(GENESIS_VALIDATOR, Decimal(0)), self.hash_function)

    def check(self, header: BlockHeader) -> Optional[BlockFault]:
        """None if the stored hash matches the recomputed one."""
        if not isinstance(header.proof, PosProof):
            return BlockFault.MALFORMED
        if header.compute_hash(self.hash_function) != header.hash:
            return BlockFault.HASH_MISMATCH
        return None

    def is_valid(self, header: BlockHeader) -> bool:
        try:
            return self.check(header) is None
        except (ValueError, OverflowError):
            return False


def finalize_pos(
    header: BlockHeader,
    registry: ValidatorRegistry,
    hash_function: HashFunction,
    rng: Optional[random.Random] = None,
) -> BlockHeader:
    """Select a validator from registry and seal the header."""
    return ProofOfStake(hash_function, registry, rng).finalize(header)
