# Stake Ledger Test Suite
"""
Test suite including:
- Unit tests (hashing, Merkle, consensus, chain)
- Tamper tests (invalid chains, invalid inputs)

Run with: pytest
Coverage: coverage run -m pytest && coverage report
"""
