"""
Ledger error types.

Everything the ledger raises derives from LedgerError. Chain validation
does not raise by default: it reports a BlockFault for the first failing
block (see Blockchain.verify). InvalidChainLink is the raising form used by
validate_chain() and when loading a serialized chain.
"""

from enum import Enum
from typing import Optional


class LedgerError(Exception):
    """Base class for all ledger errors."""
    pass


class MalformedTransaction(LedgerError, ValueError):
    """Transaction rejected at construction (bad id or amount)."""
    pass


class ValidatorError(LedgerError, ValueError):
    """Bad validator registration, top-up or lookup."""
    pass


class NoValidatorsAvailable(LedgerError):
    """Proof of Stake finalization with nobody to select."""
    pass


class MiningError(LedgerError):
    """Proof of Work search ended without a qualifying nonce."""
    pass


class MiningExhausted(MiningError):
    """The caller's attempt cap was reached."""

    def __init__(self, attempts: int):
        super().__init__(f"No valid nonce found after {attempts} attempts")
        self.attempts = attempts


class MiningCancelled(MiningError):
    """The caller's cancellation event was set during the search."""

    def __init__(self, attempts: int):
        super().__init__(f"Mining cancelled after {attempts} attempts")
        self.attempts = attempts


class BlockFault(Enum):
    """Why a block failed validation."""

    MALFORMED = "malformed_field"
    BAD_INDEX = "bad_index"
    BAD_GENESIS = "bad_genesis"
    MERKLE_MISMATCH = "merkle_root_mismatch"
    HASH_MISMATCH = "block_hash_mismatch"
    INSUFFICIENT_WORK = "insufficient_work"
    BROKEN_LINK = "previous_hash_mismatch"


class ValidationError(LedgerError):
    """Raised when blockchain validation fails."""
    pass


class InvalidChainLink(ValidationError):
    """First block at which the chain stops being valid."""

    def __init__(self, index: int, fault: BlockFault, detail: Optional[str] = None):
        message = f"Block #{index} invalid: {fault.value}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
        self.index = index
        self.fault = fault
        self.detail = detail
