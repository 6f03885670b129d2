# Core Cryptography Module
"""
Hashing primitives the ledger is built on:
- Pluggable hash functions (SHA-256, SHA3-256, BLAKE2s, double SHA-256)
- Merkle trees over leaf hashes
"""
