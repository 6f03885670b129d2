"""
Merkle Tree Implementation

A Merkle tree (hash tree) summarizes an ordered list of leaf hashes:
- Adjacent hashes are paired left to right
- Each pair is combined as hash(left_bytes || right_bytes)
- An odd level duplicates its last hash (never left unhashed)
- The single remaining hash is the root

Leaves are already hashes (e.g. transaction digests), so a one-leaf tree
has that leaf as its root, and an empty tree has the all-zero sentinel root.

Features:
- Pure root computation (merkle_root)
- Layered tree for proof generation (authentication path)
- Proof verification
"""

from typing import List, Optional, Sequence, Tuple

from .hashing import HashFunction, zero_hash


ProofStep = Tuple[str, str]  # (sibling_hash, 'left' | 'right')


def combine_hashes(left: str, right: str, hash_function: HashFunction) -> str:
    """
    Hash two child nodes to create their parent.

    Args:
        left: Left child hex digest
        right: Right child hex digest
        hash_function: Injected hash function

    Returns:
        Hex digest of the concatenated child digest bytes
    """
    return hash_function(bytes.fromhex(left) + bytes.fromhex(right))


def _next_layer(layer: List[str], hash_function: HashFunction) -> List[str]:
    if len(layer) % 2 == 1:
        layer = layer + [layer[-1]]
    return [
        combine_hashes(layer[i], layer[i + 1], hash_function)
        for i in range(0, len(layer), 2)
    ]


def merkle_root(leaf_hashes: Sequence[str], hash_function: HashFunction) -> str:
    """
    Reduce an ordered list of leaf hashes to a single root.

    Args:
        leaf_hashes: Ordered hex digests
        hash_function: Injected hash function

    Returns:
        Root hex digest; the zero sentinel when leaf_hashes is empty
    """
    if not leaf_hashes:
        return zero_hash(hash_function)

    layer = list(leaf_hashes)
    while len(layer) > 1:
        layer = _next_layer(layer, hash_function)
    return layer[0]


class MerkleTree:
    """
    Merkle tree keeping every layer so inclusion proofs can be produced.

    Example:
        >>> tree = MerkleTree(get_hash_function("sha256"))
        >>> root = tree.build([h1, h2, h3])
        >>> proof = tree.get_proof(1)
        >>> MerkleTree.verify_proof(h2, proof, root, tree.hash_function)
        True
    """

    def __init__(self, hash_function: HashFunction):
        self.hash_function = hash_function
        self._layers: List[List[str]] = []
        self._root: Optional[str] = None

    def build(self, leaf_hashes: Sequence[str]) -> str:
        """
        Build the tree from leaf hashes.

        Returns:
            Root hex digest (zero sentinel for no leaves)
        """
        leaves = list(leaf_hashes)
        if not leaves:
            self._layers = []
            self._root = zero_hash(self.hash_function)
            return self._root

        self._layers = [leaves]
        current = leaves
        while len(current) > 1:
            current = _next_layer(current, self.hash_function)
            self._layers.append(current)

        self._root = current[0]
        return self._root

    @property
    def root(self) -> Optional[str]:
        """Root of the last build, None before build()."""
        return self._root

    @property
    def leaf_count(self) -> int:
        return len(self._layers[0]) if self._layers else 0

    @property
    def height(self) -> int:
        """Number of layers including the leaf layer."""
        return len(self._layers)

    def get_proof(self, index: int) -> List[ProofStep]:
        """
        Generate the authentication path for a leaf.

        Args:
            index: Index of the leaf (0-based)

        Returns:
            List of (sibling_hash, position) from leaf to root, where
            position says on which side the sibling sits

        Raises:
            ValueError: If the tree is empty or index out of range
        """
        if not self._layers:
            raise ValueError("Tree has no leaves")

        if index < 0 or index >= self.leaf_count:
            raise ValueError(f"Index {index} out of range [0, {self.leaf_count - 1}]")

        proof = []
        current_index = index

        for layer in self._layers[:-1]:
            if len(layer) % 2 == 1:
                layer = layer + [layer[-1]]

            if current_index % 2 == 0:
                proof.append((layer[current_index + 1], 'right'))
            else:
                proof.append((layer[current_index - 1], 'left'))

            current_index //= 2

        return proof

    @staticmethod
    def verify_proof(leaf_hash: str, proof: Sequence[ProofStep], root: str,
                     hash_function: HashFunction) -> bool:
        """
        Check that leaf_hash is committed under root.

        Args:
            leaf_hash: Hex digest of the leaf
            proof: Output of get_proof()
            root: Expected root
            hash_function: Hash function the tree was built with

        Returns:
            True if the path reproduces root
        """
        current = leaf_hash
        try:
            for sibling, position in proof:
                if position == 'left':
                    current = combine_hashes(sibling, current, hash_function)
                else:
                    current = combine_hashes(current, sibling, hash_function)
        except ValueError:
            return False
        return current == root

    def __repr__(self) -> str:
        if self._root is None:
            return "MerkleTree(unbuilt)"
        return f"MerkleTree(leaves={self.leaf_count}, height={self.height}, root={self._root[:16]}...)"
