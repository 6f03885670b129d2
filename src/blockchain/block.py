"""
Block Structure

A block is a header plus the transactions its merkle root commits to.

The header carries one consensus proof, a tagged value that is either
- PowProof(nonce, difficulty), or
- PosProof(validator, stake_snapshot)

An unsealed header has no proof and an empty hash. Sealing fixes the proof
and computes the self-hash over every other header field:

    index (8 bytes) | timestamp (8 bytes) | previous_hash | merkle_root | proof

where hashes are packed as raw digest bytes and the proof starts with a one
byte tag. Blocks are frozen dataclasses; nothing changes after sealing.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from ..core_crypto.hashing import HashFunction
from .transaction import Transaction, format_amount, to_amount


class ConsensusKind(Enum):
    """Consensus rule a block was finalized under."""
    POW = "PoW"
    POS = "PoS"

    @classmethod
    def parse(cls, value: Union['ConsensusKind', str]) -> 'ConsensusKind':
        if isinstance(value, cls):
            return value
        for kind in cls:
            if value in (kind.value, kind.name) or str(value).lower() == kind.value.lower():
                return kind
        raise ValueError(f"Unknown consensus kind: {value!r}")


@dataclass(frozen=True)
class PowProof:
    """Proof of Work: hash must start with `difficulty` hex zeros."""

    nonce: int
    difficulty: int

    kind = ConsensusKind.POW

    def encode(self) -> bytes:
        return b'W' + self.nonce.to_bytes(8, 'big') + self.difficulty.to_bytes(1, 'big')

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind.value, 'nonce': self.nonce, 'difficulty': self.difficulty}


@dataclass(frozen=True)
class PosProof:
    """Proof of Stake: selected validator and its stake at selection time."""

    validator: str
    stake_snapshot: Decimal

    kind = ConsensusKind.POS

    def __post_init__(self):
        object.__setattr__(self, "stake_snapshot", to_amount(self.stake_snapshot, "stake"))

    def encode(self) -> bytes:
        address = self.validator.encode('utf-8')
        stake = format_amount(self.stake_snapshot).encode('ascii')
        return (
            b'S' +
            len(address).to_bytes(2, 'big') + address +
            len(stake).to_bytes(1, 'big') + stake
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'validator': self.validator,
            'stake_snapshot': str(self.stake_snapshot),
        }


ConsensusProof = Union[PowProof, PosProof]


def proof_from_dict(data: Dict[str, Any]) -> ConsensusProof:
    kind = ConsensusKind.parse(data['kind'])
    if kind is ConsensusKind.POW:
        return PowProof(nonce=int(data['nonce']), difficulty=int(data['difficulty']))
    return PosProof(validator=data['validator'], stake_snapshot=data['stake_snapshot'])


@dataclass(frozen=True)
class BlockHeader:
    """
    Block header. `proof` and `hash` are unset until consensus seals it.
    """

    index: int
    timestamp: int
    previous_hash: str
    merkle_root: str
    proof: Optional[ConsensusProof] = None
    hash: str = ""

    @property
    def is_sealed(self) -> bool:
        return self.proof is not None and bool(self.hash)

    @property
    def consensus_kind(self) -> Optional[ConsensusKind]:
        return self.proof.kind if self.proof is not None else None

    def common_preimage(self) -> bytes:
        """Serialized fields shared by every proof kind."""
        return (
            self.index.to_bytes(8, 'big') +
            self.timestamp.to_bytes(8, 'big') +
            bytes.fromhex(self.previous_hash) +
            bytes.fromhex(self.merkle_root)
        )

    def preimage(self, proof: Optional[ConsensusProof] = None) -> bytes:
        proof = proof if proof is not None else self.proof
        if proof is None:
            raise ValueError("Header has no consensus proof")
        return self.common_preimage() + proof.encode()

    def compute_hash(self, hash_function: HashFunction,
                     proof: Optional[ConsensusProof] = None) -> str:
        """Hash of all header fields except the stored hash."""
        return hash_function(self.preimage(proof))

    def seal(self, proof: ConsensusProof, hash_function: HashFunction) -> 'BlockHeader':
        """Return a copy with the proof fixed and the self-hash computed."""
        return replace(self, proof=proof, hash=self.compute_hash(hash_function, proof))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'timestamp': self.timestamp,
            'previous_hash': self.previous_hash,
            'merkle_root': self.merkle_root,
            'proof': self.proof.to_dict() if self.proof is not None else None,
            'hash': self.hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BlockHeader':
        proof = data.get('proof')
        return cls(
            index=int(data['index']),
            timestamp=int(data['timestamp']),
            previous_hash=data['previous_hash'],
            merkle_root=data['merkle_root'],
            proof=proof_from_dict(proof) if proof else None,
            hash=data.get('hash', ""),
        )


@dataclass(frozen=True)
class Block:
    """
    Immutable block: a sealed header and its transactions.

    frozen=True ensures blocks cannot be modified after creation;
    tampering means building a different Block.
    """

    header: BlockHeader
    transactions: Tuple[Transaction, ...] = ()

    @property
    def index(self) -> int:
        return self.header.index

    @property
    def timestamp(self) -> int:
        return self.header.timestamp

    @property
    def previous_hash(self) -> str:
        return self.header.previous_hash

    @property
    def merkle_root(self) -> str:
        return self.header.merkle_root

    @property
    def proof(self) -> Optional[ConsensusProof]:
        return self.header.proof

    @property
    def hash(self) -> str:
        return self.header.hash

    @property
    def consensus_kind(self) -> Optional[ConsensusKind]:
        return self.header.consensus_kind

    @property
    def nonce(self) -> Optional[int]:
        return self.proof.nonce if isinstance(self.proof, PowProof) else None

    @property
    def difficulty(self) -> Optional[int]:
        return self.proof.difficulty if isinstance(self.proof, PowProof) else None

    @property
    def validator(self) -> Optional[str]:
        return self.proof.validator if isinstance(self.proof, PosProof) else None

    def find_transaction(self, tx_id: str) -> Optional[int]:
        """Position of the transaction with this id, or None."""
        for i, tx in enumerate(self.transactions):
            if tx.id == tx_id:
                return i
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = self.header.to_dict()
        data['transactions'] = [tx.to_dict() for tx in self.transactions]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Block':
        return cls(
            header=BlockHeader.from_dict(data),
            transactions=tuple(Transaction.from_dict(tx) for tx in data.get('transactions', [])),
        )

    def __str__(self) -> str:
        lines = [
            f"Block #{self.index} ({self.consensus_kind.value if self.consensus_kind else 'unsealed'})",
            f"  Hash: {self.hash[:16]}...",
            f"  Prev: {self.previous_hash[:16]}...",
            f"  Merkle: {self.merkle_root[:16]}...",
        ]
        if isinstance(self.proof, PowProof):
            lines.append(f"  Nonce: {self.proof.nonce} (difficulty {self.proof.difficulty})")
        elif isinstance(self.proof, PosProof):
            lines.append(
                f"  Validator: {self.proof.validator} "
                f"(stake {format_amount(self.proof.stake_snapshot)})"
            )
        lines.append(f"  Transactions: {len(self.transactions)}")
        return "\n".join(lines)
