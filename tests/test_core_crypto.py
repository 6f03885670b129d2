"""
Unit tests for Core Crypto modules.

Tests:
- Hash function backends
- Merkle root reduction
- Merkle proofs
"""

import pytest
from src.core_crypto.hashing import (
    CryptographyHash, DoubleSHA256, UnknownHashAlgorithm,
    available_hash_functions, get_hash_function, hash_width, is_hex_digest, zero_hash,
)
from src.core_crypto.merkle import MerkleTree, combine_hashes, merkle_root


@pytest.fixture
def sha256():
    return get_hash_function("sha256")


def leaf(hash_function, label):
    return hash_function(label.encode())


class TestHashFunctions:
    """Unit tests for the hash backends."""

    def test_sha256_vectors(self, sha256):
        """SHA-256 should match the NIST vectors."""
        assert sha256(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        assert sha256(b"abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_sha3_256_vector(self):
        h = get_hash_function("sha3-256")
        assert h(b"abc") == "3a985da74fe225b2045c172d6bd390bd855f086e3e9d525b46bfe24511431532"

    def test_blake2s_vector(self):
        h = get_hash_function("blake2s-256")
        assert h(b"abc") == "508c5e8c327c14e2e1a72ba34eeb452f37458b209ed63a294d999b4c86675982"

    def test_double_sha256_is_sha256_twice(self, sha256):
        double = DoubleSHA256()
        assert double(b"abc") == sha256(bytes.fromhex(sha256(b"abc")))

    def test_all_backends_fixed_width(self):
        """Every backend should return 64 lowercase hex characters."""
        for name in available_hash_functions():
            h = get_hash_function(name)
            digest = h(b"ledger")
            assert len(digest) == hash_width(h) == 64
            assert digest == digest.lower()
            assert h.name == name

    def test_deterministic(self, sha256):
        assert sha256(b"block") == sha256(b"block")
        assert sha256(b"a") != sha256(b"b")

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(UnknownHashAlgorithm):
            get_hash_function("md5")
        with pytest.raises(ValueError):
            get_hash_function("crc32")

    def test_zero_hash(self, sha256):
        assert zero_hash(sha256) == "0" * 64

    def test_is_hex_digest(self, sha256):
        assert is_hex_digest(sha256(b"x"), sha256)
        assert not is_hex_digest("zz" * 32, sha256)
        assert not is_hex_digest("ab", sha256)
        assert not is_hex_digest(None, sha256)

    def test_repr(self, sha256):
        assert "sha256" in repr(sha256)
        assert isinstance(sha256, CryptographyHash)


class TestMerkleRoot:
    """Unit tests for the pure root reduction."""

    def test_empty_list_gives_sentinel(self, sha256):
        """An empty list is not an error."""
        assert merkle_root([], sha256) == zero_hash(sha256)

    def test_single_leaf_is_root(self, sha256):
        x = leaf(sha256, "x")
        assert merkle_root([x], sha256) == x

    def test_two_leaves(self, sha256):
        a, b = leaf(sha256, "a"), leaf(sha256, "b")
        expected = sha256(bytes.fromhex(a) + bytes.fromhex(b))
        assert merkle_root([a, b], sha256) == expected

    def test_odd_count_duplicates_last(self, sha256):
        """[A, B, C] reduces as combine(combine(A, B), combine(C, C))."""
        a, b, c = (leaf(sha256, s) for s in "abc")
        expected = combine_hashes(
            combine_hashes(a, b, sha256),
            combine_hashes(c, c, sha256),
            sha256,
        )
        assert merkle_root([a, b, c], sha256) == expected

    def test_five_leaves(self, sha256):
        a, b, c, d, e = (leaf(sha256, s) for s in "abcde")
        ab = combine_hashes(a, b, sha256)
        cd = combine_hashes(c, d, sha256)
        ee = combine_hashes(e, e, sha256)
        abcd = combine_hashes(ab, cd, sha256)
        eeee = combine_hashes(ee, ee, sha256)
        assert merkle_root([a, b, c, d, e], sha256) == combine_hashes(abcd, eeee, sha256)

    def test_deterministic(self, sha256):
        leaves = [leaf(sha256, f"tx{i}") for i in range(7)]
        assert merkle_root(leaves, sha256) == merkle_root(list(leaves), sha256)

    def test_order_matters(self, sha256):
        """Swapping leaves changes the root."""
        a, b, c = (leaf(sha256, s) for s in "abc")
        root = merkle_root([a, b, c], sha256)
        assert merkle_root([b, a, c], sha256) != root
        assert merkle_root([a, c, b], sha256) != root
        assert merkle_root([c, b, a], sha256) != root

    def test_input_not_mutated(self, sha256):
        leaves = [leaf(sha256, s) for s in "abc"]
        merkle_root(leaves, sha256)
        assert len(leaves) == 3


class TestMerkleTree:
    """Unit tests for the layered tree and its proofs."""

    def test_build_matches_merkle_root(self, sha256):
        leaves = [leaf(sha256, f"tx{i}") for i in range(6)]
        tree = MerkleTree(sha256)
        assert tree.build(leaves) == merkle_root(leaves, sha256)
        assert tree.leaf_count == 6
        assert tree.height == 4

    def test_all_proofs_verify(self, sha256):
        """Proof for every leaf should verify, including the duplicated tail."""
        leaves = [leaf(sha256, f"tx{i}") for i in range(5)]
        tree = MerkleTree(sha256)
        root = tree.build(leaves)
        for i, h in enumerate(leaves):
            assert MerkleTree.verify_proof(h, tree.get_proof(i), root, sha256)

    def test_single_leaf_proof_is_empty(self, sha256):
        x = leaf(sha256, "only")
        tree = MerkleTree(sha256)
        root = tree.build([x])
        assert tree.get_proof(0) == []
        assert MerkleTree.verify_proof(x, [], root, sha256)

    def test_tampered_leaf_rejected(self, sha256):
        leaves = [leaf(sha256, s) for s in "abcd"]
        tree = MerkleTree(sha256)
        root = tree.build(leaves)
        proof = tree.get_proof(2)
        assert not MerkleTree.verify_proof(leaf(sha256, "x"), proof, root, sha256)

    def test_garbage_proof_rejected(self, sha256):
        leaves = [leaf(sha256, s) for s in "ab"]
        tree = MerkleTree(sha256)
        root = tree.build(leaves)
        assert not MerkleTree.verify_proof(leaves[0], [("not-hex", "right")], root, sha256)

    def test_proof_index_out_of_range(self, sha256):
        tree = MerkleTree(sha256)
        tree.build([leaf(sha256, "a")])
        with pytest.raises(ValueError):
            tree.get_proof(1)
        with pytest.raises(ValueError):
            tree.get_proof(-1)

    def test_empty_tree(self, sha256):
        tree = MerkleTree(sha256)
        assert tree.root is None
        assert tree.build([]) == zero_hash(sha256)
        with pytest.raises(ValueError):
            tree.get_proof(0)
