# Blockchain Module
"""
Blockchain Ledger implementation including:
- Transactions with a canonical hash preimage
- Merkle root for transaction integrity
- Hash chaining over an injected hash function
- Proof of Work and Proof of Stake sealing
- Validator registry for Proof of Stake

Security features:
- Immutable blocks (frozen dataclass)
- Full chain validation reporting the first failing block
- All-or-nothing appends
"""

_EXPORTS = {
    'Blockchain': 'ledger',
    'ChainVerification': 'ledger',
    'create_blockchain': 'ledger',
    'append_transactions': 'ledger',
    'Block': 'block',
    'BlockHeader': 'block',
    'ConsensusKind': 'block',
    'PowProof': 'block',
    'PosProof': 'block',
    'Transaction': 'transaction',
    'compute_merkle_root': 'transaction',
    'Validator': 'validators',
    'ValidatorRegistry': 'validators',
    'ChainConfig': 'config',
    'DEFAULT_CONFIG': 'config',
    'DEFAULT_DIFFICULTY': 'config',
    'LedgerError': 'errors',
    'MalformedTransaction': 'errors',
    'ValidatorError': 'errors',
    'NoValidatorsAvailable': 'errors',
    'MiningError': 'errors',
    'MiningExhausted': 'errors',
    'MiningCancelled': 'errors',
    'ValidationError': 'errors',
    'InvalidChainLink': 'errors',
    'BlockFault': 'errors',
}


# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import to avoid circular import issues."""
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module
    module = import_module(f".{_EXPORTS[name]}", __name__)
    return getattr(module, name)


__all__ = list(_EXPORTS)
