"""
Blockchain Ledger Module

Append-only chain of blocks where:
- each block commits its transactions with a Merkle root
- each block links to its predecessor by hash
- each block is sealed by Proof of Work or Proof of Stake

Guarantees:
- Immutable blocks (frozen dataclasses)
- Appends are all-or-nothing and serialized by a lock
- Validation walks the whole chain, never raises unless asked to,
  and reports the first failing block
"""

import json
import logging
import random
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ..consensus.engine import ConsensusEngine
from ..core_crypto.hashing import HashFunction, get_hash_function, zero_hash
from ..core_crypto.merkle import MerkleTree, ProofStep
from .block import Block, BlockHeader, ConsensusKind
from .config import DEFAULT_CONFIG, ChainConfig
from .errors import BlockFault, InvalidChainLink, LedgerError
from .transaction import (
    Amount, Transaction, TransactionLike, as_transactions,
    compute_merkle_root, transaction_hashes,
)
from .validators import Validator, ValidatorRegistry


logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time())


# ============================================================================
# Verification Result
# ============================================================================

@dataclass(frozen=True)
class ChainVerification:
    """Outcome of a full-chain walk."""

    valid: bool
    failing_index: Optional[int] = None
    fault: Optional[BlockFault] = None
    detail: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid

    def raise_for_fault(self) -> None:
        if not self.valid:
            raise InvalidChainLink(self.failing_index, self.fault, self.detail)


# ============================================================================
# Blockchain
# ============================================================================

class Blockchain:
    """
    A blockchain with pluggable consensus.

    Features:
    - Merkle root for transaction integrity
    - Hash chaining over an injected hash function
    - Proof of Work or Proof of Stake per block
    - Full chain validation with fault reporting
    - Merkle inclusion proofs
    """

    def __init__(
        self,
        config: ChainConfig = DEFAULT_CONFIG,
        registry: Optional[ValidatorRegistry] = None,
        hash_function: Optional[HashFunction] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        genesis_transactions: Iterable[TransactionLike] = (),
    ):
        """
        Initialize a new blockchain and seal its genesis block.

        Args:
            config: Consensus kind, difficulty, hash algorithm
            registry: Validators for PoS blocks (a new empty one by default)
            hash_function: Overrides config.hash_algorithm
            clock: Timestamp source for new blocks
            rng: PRNG for PoS selection (seed it for reproducibility)
            genesis_transactions: Optional genesis payload (empty by default)
        """
        self._config = config
        self._hash = hash_function if hash_function is not None else get_hash_function(config.hash_algorithm)
        self._clock = clock if clock is not None else system_clock
        self._engine = ConsensusEngine(
            self._hash,
            difficulty=config.difficulty,
            registry=registry,
            rng=rng,
            max_attempts=config.max_attempts,
        )
        self._chain: List[Block] = []
        self._pending_transactions: List[Transaction] = []
        self._lock = threading.RLock()
        self._last_attempts = 0

        self._create_genesis_block(as_transactions(genesis_transactions))

    @classmethod
    def genesis(
        cls,
        consensus_kind: Union[ConsensusKind, str] = ConsensusKind.POW,
        config: Optional[ChainConfig] = None,
        **kwargs: Any,
    ) -> 'Blockchain':
        """Build a chain holding only its genesis block."""
        base = config if config is not None else DEFAULT_CONFIG
        return cls(replace(base, consensus_kind=consensus_kind), **kwargs)

    def _create_genesis_block(self, transactions: Tuple[Transaction, ...]) -> None:
        header = BlockHeader(
            index=0,
            timestamp=self._config.genesis_timestamp,
            previous_hash=self.sentinel_hash,
            merkle_root=compute_merkle_root(transactions, self._hash),
        )
        sealed = self._engine.seal_genesis(header, self._config.consensus_kind)
        self._chain.append(Block(sealed, transactions))
        logger.info("Genesis block sealed (%s): %s...",
                    self._config.consensus_kind.value, sealed.hash[:16])

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def chain(self) -> List[Block]:
        """Copy of the block list."""
        with self._lock:
            return list(self._chain)

    @property
    def length(self) -> int:
        return len(self._chain)

    def __len__(self) -> int:
        return len(self._chain)

    def __getitem__(self, index: int) -> Block:
        return self._chain[index]

    def __iter__(self) -> Iterator[Block]:
        return iter(self.chain)

    @property
    def last_block(self) -> Block:
        return self._chain[-1]

    @property
    def head_hash(self) -> str:
        return self._chain[-1].hash

    @property
    def sentinel_hash(self) -> str:
        """previous_hash of the genesis block."""
        return zero_hash(self._hash)

    @property
    def config(self) -> ChainConfig:
        return self._config

    @property
    def consensus_kind(self) -> ConsensusKind:
        return self._config.consensus_kind

    @property
    def hash_function(self) -> HashFunction:
        return self._hash

    @property
    def registry(self) -> ValidatorRegistry:
        return self._engine.registry

    @property
    def difficulty(self) -> int:
        """Difficulty used for the next PoW block."""
        return self._engine.difficulty

    @difficulty.setter
    def difficulty(self, value: int) -> None:
        with self._lock:
            self._engine.difficulty = value
        logger.info("PoW difficulty set to %d", value)

    @property
    def last_attempts(self) -> int:
        """Hash attempts spent sealing the most recent appended block."""
        return self._last_attempts

    def register_validator(self, address: str, stake: Amount) -> Validator:
        """Shortcut for registry.register()."""
        return self.registry.register(address, stake)

    # ------------------------------------------------------------------
    # Appending
    # ------------------------------------------------------------------

    def append(
        self,
        transactions: Iterable[TransactionLike],
        consensus: Optional[Union[ConsensusKind, str]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Block:
        """
        Seal a new block over the given transactions and append it.

        Args:
            transactions: Transactions or (id, sender, receiver, amount) tuples
            consensus: Override of the configured consensus kind for this block
            cancel: Event that aborts a PoW search

        Returns:
            The appended block

        Raises:
            MalformedTransaction: Invalid transaction data
            NoValidatorsAvailable: PoS with nobody to select
            MiningExhausted / MiningCancelled: PoW search stopped
        """
        txs = as_transactions(transactions)
        kind = ConsensusKind.parse(consensus) if consensus is not None else self._config.consensus_kind

        with self._lock:
            prev_block = self.last_block
            header = BlockHeader(
                index=prev_block.index + 1,
                timestamp=self._clock(),
                previous_hash=prev_block.hash,
                merkle_root=compute_merkle_root(txs, self._hash),
            )
            try:
                sealed, attempts = self._engine.finalize(header, kind, cancel=cancel)
            except Exception as exc:
                logger.warning("Block #%d not appended: %s", header.index, exc)
                raise

            self._chain.append(Block(sealed, txs))
            self._last_attempts = attempts
            return self._chain[-1]

    def add_transaction(self, transaction: TransactionLike) -> int:
        """
        Add a transaction to the pending pool.

        Returns:
            Number of pending transactions
        """
        tx, = as_transactions([transaction])
        with self._lock:
            self._pending_transactions.append(tx)
            return len(self._pending_transactions)

    @property
    def pending_transactions(self) -> List[Transaction]:
        return list(self._pending_transactions)

    def commit_pending(self, consensus: Optional[Union[ConsensusKind, str]] = None) -> Block:
        """
        Seal the pending pool into a block.

        The pool is only cleared if the append succeeds.

        Raises:
            ValueError: If there are no pending transactions
        """
        with self._lock:
            if not self._pending_transactions:
                raise ValueError("No pending transactions to commit")
            block = self.append(self._pending_transactions, consensus=consensus)
            self._pending_transactions.clear()
            return block

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_block(self, position: int, block: Block,
                     prev_block: Optional[Block]) -> Optional[Tuple[BlockFault, str]]:
        if block.index != position:
            return BlockFault.BAD_INDEX, f"expected index {position}, got {block.index}"

        if prev_block is None and block.previous_hash != self.sentinel_hash:
            return BlockFault.BAD_GENESIS, "genesis previous_hash is not the sentinel"

        try:
            computed_root = compute_merkle_root(block.transactions, self._hash)
        except (ValueError, AttributeError, TypeError):
            return BlockFault.MALFORMED, "transactions cannot be hashed"
        if computed_root != block.merkle_root:
            return BlockFault.MERKLE_MISMATCH, "transactions do not match merkle root"

        fault = self._engine.check(block.header)
        if fault is not None:
            return fault, None

        if prev_block is not None and block.previous_hash != prev_block.hash:
            return BlockFault.BROKEN_LINK, "previous_hash does not match block #%d" % prev_block.index

        return None

    def verify(self) -> ChainVerification:
        """
        Validate the entire blockchain without raising.

        Checks, for every block: index, merkle root, self-hash, consensus
        proof, then the link to the previous block.

        Returns:
            ChainVerification naming the first failing block, if any
        """
        blocks = self.chain
        if not blocks:
            return ChainVerification(False, 0, BlockFault.BAD_GENESIS, "chain is empty")

        prev_block = None
        for position, block in enumerate(blocks):
            problem = self._check_block(position, block, prev_block)
            if problem is not None:
                fault, detail = problem
                logger.warning("Chain invalid at block #%d: %s", position, fault.value)
                return ChainVerification(False, position, fault, detail)
            prev_block = block

        return ChainVerification(True)

    def is_valid(self) -> bool:
        return self.verify().valid

    def validate_chain(self) -> bool:
        """
        Validate the entire blockchain.

        Returns:
            True if chain is valid

        Raises:
            InvalidChainLink: Naming the first failing block
        """
        self.verify().raise_for_fault()
        return True

    # ------------------------------------------------------------------
    # Merkle proofs
    # ------------------------------------------------------------------

    def get_transaction_proof(
        self,
        block_index: int,
        tx_id: str,
    ) -> Optional[Tuple[int, List[ProofStep]]]:
        """
        Merkle proof for a transaction in a block.

        Returns:
            Tuple of (tx_index, proof) or None if not found
        """
        if block_index < 0 or block_index >= len(self._chain):
            return None

        block = self._chain[block_index]
        tx_index = block.find_transaction(tx_id)
        if tx_index is None:
            return None

        tree = MerkleTree(self._hash)
        tree.build(transaction_hashes(block.transactions, self._hash))
        return tx_index, tree.get_proof(tx_index)

    def verify_transaction(
        self,
        block_index: int,
        transaction: Transaction,
        proof: List[ProofStep],
    ) -> bool:
        """True if transaction is committed under the block's merkle root."""
        if block_index < 0 or block_index >= len(self._chain):
            return False

        block = self._chain[block_index]
        return MerkleTree.verify_proof(
            transaction.digest(self._hash), proof, block.merkle_root, self._hash
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Blocks per consensus kind and blocks validated per validator."""
        by_kind = {kind.value: 0 for kind in ConsensusKind}
        for block in self.chain:
            by_kind[block.consensus_kind.value] += 1
        return {
            'length': self.length,
            'blocks_by_consensus': by_kind,
            'transactions': sum(len(b.transactions) for b in self.chain),
            'validators': {v.address: v.blocks_validated for v in self.registry},
        }

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'config': self._config.to_dict(),
                'hash_algorithm': self._hash.name,
                'difficulty': self.difficulty,
                'validators': self.registry.to_dict(),
                'chain': [block.to_dict() for block in self._chain],
            }

    def to_json(self) -> str:
        """Serialize blockchain to JSON."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ) -> 'Blockchain':
        """
        Rebuild a blockchain and validate it.

        Raises:
            InvalidChainLink: If the stored chain does not validate
        """
        config = ChainConfig.from_dict(data['config'])
        hash_function = get_hash_function(data.get('hash_algorithm', config.hash_algorithm))

        blockchain = cls.__new__(cls)
        blockchain._config = config
        blockchain._hash = hash_function
        blockchain._clock = clock if clock is not None else system_clock
        blockchain._engine = ConsensusEngine(
            hash_function,
            difficulty=data.get('difficulty', config.difficulty),
            registry=ValidatorRegistry.from_dict(data.get('validators', [])),
            rng=rng,
            max_attempts=config.max_attempts,
        )
        blockchain._pending_transactions = []
        blockchain._lock = threading.RLock()
        blockchain._last_attempts = 0
        blockchain._chain = []
        for position, block_data in enumerate(data['chain']):
            try:
                blockchain._chain.append(Block.from_dict(block_data))
            except (LedgerError, ValueError, KeyError, TypeError) as exc:
                raise InvalidChainLink(position, BlockFault.MALFORMED, str(exc)) from exc

        blockchain.validate_chain()
        return blockchain

    @classmethod
    def from_json(cls, json_str: str, **kwargs: Any) -> 'Blockchain':
        """Deserialize blockchain from JSON."""
        return cls.from_dict(json.loads(json_str), **kwargs)

    def __repr__(self) -> str:
        return (
            f"Blockchain(consensus={self.consensus_kind.value}, length={self.length}, "
            f"head={self.head_hash[:16]}...)"
        )


# ============================================================================
# Convenience Functions
# ============================================================================

def create_blockchain(
    consensus_kind: Union[ConsensusKind, str] = ConsensusKind.POW,
    difficulty: int = DEFAULT_CONFIG.difficulty,
    **kwargs: Any,
) -> Blockchain:
    """Create a new blockchain with the given consensus rule and difficulty."""
    return Blockchain(ChainConfig(consensus_kind=consensus_kind, difficulty=difficulty), **kwargs)


def append_transactions(
    blockchain: Blockchain,
    transactions: Iterable[TransactionLike],
    consensus: Optional[Union[ConsensusKind, str]] = None,
) -> Block:
    """
    Seal a batch of transactions as one block.

    The whole batch is coerced before anything is appended, and the
    chain's pending pool is left alone.
    """
    txs = as_transactions(transactions)
    if not txs:
        raise ValueError("No transactions to append")
    return blockchain.append(txs, consensus=consensus)
