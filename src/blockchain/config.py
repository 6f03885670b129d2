"""
Chain Configuration

Settings fixed when a chain is created:
- consensus rule used for blocks that do not override it
- Proof of Work difficulty (leading hex zeros)
- hash backend name
- genesis timestamp and an optional cap on mining attempts
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Union

from ..core_crypto.hashing import DEFAULT_HASH_ALGORITHM, available_hash_functions
from .block import ConsensusKind


DEFAULT_DIFFICULTY = 2  # Leading hex zeros required in a PoW hash
MAX_DIFFICULTY = 64  # Every hex character of a 256-bit digest
GENESIS_TIMESTAMP = 0  # Fixed so the genesis hash is reproducible


@dataclass(frozen=True)
class ChainConfig:
    """Immutable chain settings; validated and normalized on creation."""

    consensus_kind: Union[ConsensusKind, str] = ConsensusKind.POW
    # Applies to PoW blocks only; each block stores the difficulty it was mined at.
    difficulty: int = DEFAULT_DIFFICULTY
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    genesis_timestamp: int = GENESIS_TIMESTAMP
    # None = unbounded search.
    max_attempts: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "consensus_kind", ConsensusKind.parse(self.consensus_kind))
        if isinstance(self.difficulty, bool) or not isinstance(self.difficulty, int):
            raise ValueError("Difficulty must be an integer")
        if not 0 <= self.difficulty <= MAX_DIFFICULTY:
            raise ValueError(f"Difficulty must be between 0 and {MAX_DIFFICULTY}")
        if self.hash_algorithm not in available_hash_functions():
            raise ValueError(f"Unknown hash algorithm {self.hash_algorithm!r}")
        if self.genesis_timestamp < 0:
            raise ValueError("Genesis timestamp must not be negative")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be positive")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['consensus_kind'] = self.consensus_kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChainConfig':
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


DEFAULT_CONFIG = ChainConfig()
