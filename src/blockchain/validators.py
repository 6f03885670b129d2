"""
Validator Registry

Proof of Stake validators, keyed by address and kept in registration order.
Stakes only grow (registration and top-ups); the validation counter is
bumped by Proof of Stake when a validator seals a block. Validators are
never removed.

Callers get snapshot copies, never the live records, so nothing outside
the registry can mutate a validator behind its back.
"""

import logging
import threading
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from .errors import MalformedTransaction, ValidatorError
from .transaction import Amount, format_amount, to_amount


logger = logging.getLogger(__name__)


@dataclass
class Validator:
    address: str
    stake: Decimal
    blocks_validated: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'stake': str(self.stake),
            'blocks_validated': self.blocks_validated,
        }

    def __str__(self) -> str:
        return (
            f"{self.address} - stake {format_amount(self.stake)} - "
            f"{self.blocks_validated} blocks validated"
        )


def _stake(value: Amount, what: str = "stake") -> Decimal:
    try:
        return to_amount(value, what)
    except MalformedTransaction as exc:
        raise ValidatorError(str(exc)) from None


class ValidatorRegistry:
    """Owned mapping of address -> Validator."""

    def __init__(self):
        self._validators: Dict[str, Validator] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Held by Proof of Stake across select, seal and counter update."""
        return self._lock

    def register(self, address: str, stake: Amount) -> Validator:
        """
        Register a new validator.

        Args:
            address: Unique validator address
            stake: Initial non-negative stake

        Returns:
            Snapshot of the registered validator

        Raises:
            ValidatorError: Empty/duplicate address or invalid stake
        """
        if not isinstance(address, str) or not address:
            raise ValidatorError("Validator address cannot be empty")
        amount = _stake(stake)
        with self._lock:
            if address in self._validators:
                raise ValidatorError(f"Validator {address!r} already registered")
            self._validators[address] = Validator(address, amount)
        logger.debug("Registered validator %s with stake %s", address, amount)
        return self.get(address)

    def add_stake(self, address: str, amount: Amount) -> Decimal:
        """
        Top up a validator's stake.

        Returns:
            The new stake

        Raises:
            ValidatorError: Unknown address or non-positive amount
        """
        top_up = _stake(amount, "stake top-up")
        if top_up == 0:
            raise ValidatorError("Stake top-up must be positive")
        with self._lock:
            validator = self._lookup(address)
            validator.stake += top_up
            logger.debug("Validator %s stake raised to %s", address, validator.stake)
            return validator.stake

    def record_validation(self, address: str) -> int:
        """Increment the validation counter; returns the new count."""
        with self._lock:
            validator = self._lookup(address)
            validator.blocks_validated += 1
            return validator.blocks_validated

    def _lookup(self, address: str) -> Validator:
        try:
            return self._validators[address]
        except KeyError:
            raise ValidatorError(f"Unknown validator {address!r}") from None

    def get(self, address: str) -> Validator:
        """Snapshot of one validator."""
        with self._lock:
            return replace(self._lookup(address))

    def stake_of(self, address: str) -> Decimal:
        with self._lock:
            return self._lookup(address).stake

    @property
    def total_stake(self) -> Decimal:
        with self._lock:
            return sum((v.stake for v in self._validators.values()), Decimal(0))

    def addresses(self) -> List[str]:
        with self._lock:
            return list(self._validators)

    def snapshot(self) -> List[Validator]:
        """Copies of all validators in registration order."""
        with self._lock:
            return [replace(v) for v in self._validators.values()]

    def __iter__(self) -> Iterator[Validator]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._validators)

    def __contains__(self, address: object) -> bool:
        return address in self._validators

    def find(self, address: str) -> Optional[Validator]:
        with self._lock:
            validator = self._validators.get(address)
            return replace(validator) if validator is not None else None

    def to_dict(self) -> List[Dict[str, Any]]:
        return [v.to_dict() for v in self.snapshot()]

    @classmethod
    def from_dict(cls, data: List[Dict[str, Any]]) -> 'ValidatorRegistry':
        registry = cls()
        for entry in data:
            registry.register(entry['address'], entry['stake'])
            registry._validators[entry['address']].blocks_validated = int(
                entry.get('blocks_validated', 0)
            )
        return registry

    def __repr__(self) -> str:
        return f"ValidatorRegistry(validators={len(self)}, total_stake={self.total_stake})"
