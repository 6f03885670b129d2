"""
Consensus engine: one entry point for both consensus rules.

finalize() seals a header under the requested kind; check() validates a
sealed header by looking at the proof it carries, so a single chain can
hold PoW and PoS blocks side by side.
"""

import random
import threading
from typing import Optional, Tuple

from ..blockchain.block import BlockHeader, ConsensusKind, PosProof, PowProof
from ..blockchain.config import DEFAULT_DIFFICULTY
from ..blockchain.errors import BlockFault
from ..blockchain.validators import ValidatorRegistry
from ..core_crypto.hashing import HashFunction, is_hex_digest
from .pos import ProofOfStake
from .pow import ProofOfWork


class ConsensusEngine:

    def __init__(
        self,
        hash_function: HashFunction,
        difficulty: int = DEFAULT_DIFFICULTY,
        registry: Optional[ValidatorRegistry] = None,
        rng: Optional[random.Random] = None,
        max_attempts: Optional[int] = None,
    ):
        self.hash_function = hash_function
        self.registry = registry if registry is not None else ValidatorRegistry()
        self.pow = ProofOfWork(hash_function, difficulty, max_attempts)
        self.pos = ProofOfStake(hash_function, self.registry, rng)

    @property
    def difficulty(self) -> int:
        return self.pow.difficulty

    @difficulty.setter
    def difficulty(self, value: int) -> None:
        self.pow.difficulty = value

    def finalize(
        self,
        header: BlockHeader,
        kind: ConsensusKind,
        cancel: Optional[threading.Event] = None,
    ) -> Tuple[BlockHeader, int]:
        """
        Seal a header.

        Returns:
            Tuple of (sealed header, hash attempts); PoS always takes one
        """
        if kind is ConsensusKind.POW:
            return self.pow.mine(header, cancel=cancel)
        return self.pos.finalize(header), 1

    def seal_genesis(self, header: BlockHeader, kind: ConsensusKind) -> BlockHeader:
        if kind is ConsensusKind.POW:
            sealed, _ = self.pow.mine(header)
            return sealed
        return self.pos.seal_genesis(header)

    def check(self, header: BlockHeader) -> Optional[BlockFault]:
        """
        Per-block validity for whichever rule sealed the header.

        Never raises: unparseable fields are reported as MALFORMED.
        """
        for value in (header.previous_hash, header.merkle_root, header.hash):
            if not is_hex_digest(value, self.hash_function):
                return BlockFault.MALFORMED
        try:
            if isinstance(header.proof, PowProof):
                return self.pow.check(header)
            if isinstance(header.proof, PosProof):
                return self.pos.check(header)
        except (ValueError, OverflowError, TypeError, AttributeError):
            return BlockFault.MALFORMED
        return BlockFault.MALFORMED

    def is_valid(self, header: BlockHeader) -> bool:
        return self.check(header) is None
