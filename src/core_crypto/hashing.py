"""
Hash Function Backends

The ledger never hashes directly: every component receives a hash function
object and calls it. A hash function here is any callable that:

- takes raw bytes
- returns a lowercase hex digest of a fixed width
- is deterministic (same input, same digest)

Backends provided (all via the `cryptography` package):
- sha256         SHA-256 (default)
- sha3-256       SHA3-256
- blake2s-256    BLAKE2s with a 32-byte digest
- double-sha256  SHA-256 applied twice (Bitcoin-style header hashing)
"""

from typing import Callable, Dict, List, Protocol

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.backends import default_backend


DEFAULT_HASH_ALGORITHM = "sha256"


class UnknownHashAlgorithm(ValueError):
    """Raised when a hash backend name is not registered."""
    pass


class HashFunction(Protocol):
    """Interface every injected hash function satisfies."""

    name: str
    digest_size: int

    def __call__(self, data: bytes) -> str:
        ...


class CryptographyHash:
    """
    Hash function backed by a `cryptography` hash algorithm.

    Example:
        >>> h = CryptographyHash("sha256", hashes.SHA256)
        >>> h(b"abc")[:16]
        'ba7816bf8f01cfea'
    """

    def __init__(self, name: str, algorithm_factory: Callable[[], hashes.HashAlgorithm]):
        self.name = name
        self._algorithm_factory = algorithm_factory
        self.digest_size = algorithm_factory().digest_size

    def digest(self, data: bytes) -> bytes:
        """Return the raw digest bytes."""
        ctx = hashes.Hash(self._algorithm_factory(), backend=default_backend())
        ctx.update(data)
        return ctx.finalize()

    def __call__(self, data: bytes) -> str:
        return self.digest(data).hex()

    def __repr__(self) -> str:
        return f"CryptographyHash({self.name!r}, digest_size={self.digest_size})"


class DoubleSHA256(CryptographyHash):
    """SHA-256(SHA-256(data)), as used for Bitcoin block headers."""

    def __init__(self):
        super().__init__("double-sha256", hashes.SHA256)

    def digest(self, data: bytes) -> bytes:
        return super().digest(super().digest(data))


_BACKENDS: Dict[str, Callable[[], HashFunction]] = {
    "sha256": lambda: CryptographyHash("sha256", hashes.SHA256),
    "sha3-256": lambda: CryptographyHash("sha3-256", hashes.SHA3_256),
    "blake2s-256": lambda: CryptographyHash("blake2s-256", lambda: hashes.BLAKE2s(32)),
    "double-sha256": DoubleSHA256,
}


def available_hash_functions() -> List[str]:
    """Names accepted by get_hash_function()."""
    return sorted(_BACKENDS)


def get_hash_function(name: str = DEFAULT_HASH_ALGORITHM) -> HashFunction:
    """
    Resolve a hash backend by name.

    Args:
        name: One of available_hash_functions()

    Returns:
        A fresh hash function instance

    Raises:
        UnknownHashAlgorithm: If the name is not registered
    """
    try:
        factory = _BACKENDS[name]
    except KeyError:
        raise UnknownHashAlgorithm(
            f"Unknown hash algorithm {name!r}; "
            f"expected one of {', '.join(available_hash_functions())}"
        ) from None
    return factory()


def hash_width(hash_function: HashFunction) -> int:
    """Number of hex characters in a digest of this function."""
    return hash_function.digest_size * 2


def zero_hash(hash_function: HashFunction) -> str:
    """All-zero digest of the function's width (genesis / empty sentinel)."""
    return "0" * hash_width(hash_function)


def is_hex_digest(value: str, hash_function: HashFunction) -> bool:
    """True if value looks like a digest produced by hash_function."""
    if not isinstance(value, str) or len(value) != hash_width(hash_function):
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True
