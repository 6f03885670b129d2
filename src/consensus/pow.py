"""
Proof of Work

Difficulty is the number of leading '0' hex characters a block hash must
have. The search starts at nonce 0 and increments before every attempt, so
the first nonce tried is 1; difficulty 0 accepts the first attempt.

Expected cost is about 16 ** difficulty attempts. The search is unbounded
unless the caller passes max_attempts, and can be stopped between attempts
with a threading.Event.
"""

import logging
import threading
from typing import Optional, Tuple

from ..blockchain.block import BlockHeader, PowProof
from ..blockchain.config import DEFAULT_DIFFICULTY
from ..blockchain.errors import BlockFault, MiningCancelled, MiningExhausted
from ..core_crypto.hashing import HashFunction, hash_width


logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 100_000  # Attempts between progress log lines


class ProofOfWork:
    """
    Nonce search against a hex-prefix target.

    Example:
        >>> pow = ProofOfWork(get_hash_function(), difficulty=2)
        >>> sealed, attempts = pow.mine(header)
        >>> sealed.hash.startswith("00")
        True
    """

    def __init__(self, hash_function: HashFunction, difficulty: int = DEFAULT_DIFFICULTY,
                 max_attempts: Optional[int] = None):
        """
        Args:
            hash_function: Injected hash function
            difficulty: Leading hex zeros required (0 to digest width)
            max_attempts: Optional cap; None searches until found
        """
        self.hash_function = hash_function
        self.max_attempts = max_attempts
        self.difficulty = difficulty

    @property
    def difficulty(self) -> int:
        return self._difficulty

    @difficulty.setter
    def difficulty(self, value: int) -> None:
        self._check_difficulty(value)
        self._difficulty = value

    def _check_difficulty(self, value: int) -> None:
        width = hash_width(self.hash_function)
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= width:
            raise ValueError(f"Difficulty must be an integer between 0 and {width}")

    @staticmethod
    def target_prefix(difficulty: int) -> str:
        return "0" * difficulty

    @staticmethod
    def hash_meets_target(block_hash: str, difficulty: int) -> bool:
        """Check the leading-zero condition for a hex hash."""
        return block_hash.startswith("0" * difficulty)

    @staticmethod
    def count_leading_zeros(block_hash: str) -> int:
        """Leading '0' hex characters in a hash."""
        return len(block_hash) - len(block_hash.lstrip("0"))

    def mine(
        self,
        header: BlockHeader,
        difficulty: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Tuple[BlockHeader, int]:
        """
        Search for a nonce and seal the header.

        Args:
            header: Unsealed header
            difficulty: Override for this block (defaults to self.difficulty)
            cancel: Event checked between attempts

        Returns:
            Tuple of (sealed header, number of attempts)

        Raises:
            MiningExhausted: If max_attempts is reached
            MiningCancelled: If cancel is set
        """
        if difficulty is None:
            difficulty = self._difficulty
        else:
            self._check_difficulty(difficulty)

        target = self.target_prefix(difficulty)
        # Only the proof changes between attempts.
        common = header.common_preimage()
        nonce = 0
        attempts = 0

        while True:
            if cancel is not None and cancel.is_set():
                logger.info("Mining block #%d cancelled after %d attempts",
                            header.index, attempts)
                raise MiningCancelled(attempts)
            if self.max_attempts is not None and attempts >= self.max_attempts:
                logger.warning("Mining block #%d gave up after %d attempts",
                               header.index, attempts)
                raise MiningExhausted(attempts)

            nonce += 1
            attempts += 1
            proof = PowProof(nonce=nonce, difficulty=difficulty)
            block_hash = self.hash_function(common + proof.encode())

            if block_hash.startswith(target):
                break
            if attempts % PROGRESS_INTERVAL == 0:
                logger.debug("Block #%d attempt %d: %s...", header.index, attempts, block_hash[:10])

        logger.info("Mined block #%d at difficulty %d: nonce=%d attempts=%d hash=%s...",
                    header.index, difficulty, nonce, attempts, block_hash[:16])
        sealed = BlockHeader(
            index=header.index,
            timestamp=header.timestamp,
            previous_hash=header.previous_hash,
            merkle_root=header.merkle_root,
            proof=proof,
            hash=block_hash,
        )
        return sealed, attempts

    def check(self, header: BlockHeader) -> Optional[BlockFault]:
        """
        Validate a sealed PoW header against its own stored difficulty.

        Returns:
            None if valid, otherwise the fault
        """
        proof = header.proof
        if not isinstance(proof, PowProof):
            return BlockFault.MALFORMED
        if header.compute_hash(self.hash_function) != header.hash:
            return BlockFault.HASH_MISMATCH
        if not self.hash_meets_target(header.hash, proof.difficulty):
            return BlockFault.INSUFFICIENT_WORK
        return None

    def is_valid(self, header: BlockHeader) -> bool:
        try:
            return self.check(header) is None
        except (ValueError, OverflowError):
            return False


def finalize_pow(
    header: BlockHeader,
    difficulty: int,
    hash_function: HashFunction,
    max_attempts: Optional[int] = None,
) -> Tuple[BlockHeader, int]:
    """Mine a header at the given difficulty; returns (sealed header, attempts)."""
    return ProofOfWork(hash_function, difficulty, max_attempts).mine(header)
