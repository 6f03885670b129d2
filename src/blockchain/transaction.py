"""
Transactions

A transaction moves an amount from a sender to a receiver. It is immutable
once created and has one canonical byte form, which is the preimage of its
hash and therefore of every Merkle root and block hash built on top of it:

    id + sender + receiver + amount formatted with 2 decimal places

Amounts are Decimal. Negative, NaN and infinite amounts are rejected when
the transaction is built, not when the block is sealed.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Sequence, Tuple, Union

from ..core_crypto.hashing import HashFunction
from ..core_crypto.merkle import merkle_root
from .errors import MalformedTransaction


AMOUNT_PRECISION = 2

Amount = Union[Decimal, int, float, str]


def to_amount(value: Amount, what: str = "amount") -> Decimal:
    """
    Coerce a number to a finite, non-negative Decimal.

    Floats go through str() so that 10.5 becomes Decimal('10.5') rather
    than its binary expansion.

    Raises:
        MalformedTransaction: If the value is not a finite non-negative number
    """
    if isinstance(value, bool):
        raise MalformedTransaction(f"{what} must be a number, got {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise MalformedTransaction(f"{what} must be a number, got {value!r}") from None
    if not amount.is_finite():
        raise MalformedTransaction(f"{what} must be finite, got {value!r}")
    if amount < 0:
        raise MalformedTransaction(f"{what} must not be negative, got {value!r}")
    return amount


def format_amount(amount: Decimal) -> str:
    """Fixed 2-place rendering used in every hash preimage."""
    return f"{amount:.{AMOUNT_PRECISION}f}"


@dataclass(frozen=True)
class Transaction:
    """Immutable transfer of `amount` from `sender` to `receiver`."""

    id: str
    sender: str
    receiver: str
    amount: Decimal

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise MalformedTransaction("Transaction id cannot be empty")
        for name in ("sender", "receiver"):
            if not isinstance(getattr(self, name), str):
                raise MalformedTransaction(f"Transaction {name} must be a string")
        object.__setattr__(self, "amount", to_amount(self.amount))

    def canonical(self) -> str:
        return f"{self.id}{self.sender}{self.receiver}{format_amount(self.amount)}"

    def canonical_bytes(self) -> bytes:
        return self.canonical().encode("utf-8")

    def digest(self, hash_function: HashFunction) -> str:
        """Hash of the canonical form."""
        return hash_function(self.canonical_bytes())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'sender': self.sender,
            'receiver': self.receiver,
            'amount': str(self.amount),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        return cls(
            id=data['id'],
            sender=data['sender'],
            receiver=data['receiver'],
            amount=data['amount'],
        )

    def __str__(self) -> str:
        return f"[{self.id}] {self.sender} -> {self.receiver}: {format_amount(self.amount)}"


TransactionLike = Union[Transaction, Tuple[str, str, str, Amount]]


def as_transactions(items: Iterable[TransactionLike]) -> Tuple[Transaction, ...]:
    """Accept Transaction objects or (id, sender, receiver, amount) tuples."""
    result = []
    for item in items:
        if isinstance(item, Transaction):
            result.append(item)
        else:
            result.append(Transaction(*item))
    return tuple(result)


def transaction_hashes(transactions: Sequence[Transaction],
                       hash_function: HashFunction) -> List[str]:
    return [tx.digest(hash_function) for tx in transactions]


def compute_merkle_root(transactions: Sequence[Transaction],
                        hash_function: HashFunction) -> str:
    """Merkle root committing an ordered batch of transactions."""
    return merkle_root(transaction_hashes(transactions, hash_function), hash_function)
