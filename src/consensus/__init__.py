# Consensus Module
"""
Consensus rules that seal block headers:
- Proof of Work (nonce search against a hex-prefix difficulty)
- Proof of Stake (stake-weighted validator draw)
- ConsensusEngine dispatching on the proof a header carries
"""

_EXPORTS = {
    'ConsensusEngine': 'engine',
    'ProofOfWork': 'pow',
    'finalize_pow': 'pow',
    'ProofOfStake': 'pos',
    'finalize_pos': 'pos',
    'select_validator': 'pos',
    'GENESIS_VALIDATOR': 'pos',
}


# Lazy imports to avoid circular imports with src.blockchain
def __getattr__(name):
    """Resolve exported names from their submodule on first access."""
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module
    module = import_module(f".{_EXPORTS[name]}", __name__)
    return getattr(module, name)


__all__ = list(_EXPORTS)
