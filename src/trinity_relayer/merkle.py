"""
Merkle commitments for cross-chain proofs.

Commitment rules:
1. Leaf hashing: keccak256(utf8(value))
2. Parent hashing: keccak256(left + right)
3. Padding: missing values are replaced by the zero hash string before
   hashing, so a tree always has ``width`` leaves
4. Proof path: one sibling per level, leaf level first; the position of
   each sibling follows the bits of the leaf index
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from web3 import Web3

logger = logging.getLogger(__name__)

ZERO_HASH = "0x" + "00" * 32
DEFAULT_WIDTH = 4


def hash_leaf(value: str) -> bytes:
    """Hash a leaf value as UTF-8 text."""
    return bytes(Web3.keccak(text=value))


def hash_pair(left: bytes, right: bytes) -> bytes:
    return bytes(Web3.keccak(left + right))


class MerkleCommitment(ABC):
    """A commitment over an ordered list of leaf values."""

    @property
    @abstractmethod
    def root(self) -> str:
        """0x-prefixed hex root."""

    @property
    @abstractmethod
    def leaf_hashes(self) -> list[str]:
        """0x-prefixed hex hashes of every leaf, padding included."""

    @abstractmethod
    def proof_for(self, index: int) -> list[str]:
        """Return the sibling path proving the leaf at ``index``."""


class FixedMerkleCommitment(MerkleCommitment):
    """Constant-shape binary commitment.

    With the default width of 4 the tree is always 4 leaves, 2 level-1
    nodes and 1 root, so every proof is exactly 2 sibling hashes whatever
    chain produced the values.
    """

    def __init__(self, values: Sequence[str], width: int = DEFAULT_WIDTH) -> None:
        if width < 2 or width & (width - 1):
            raise ValueError(f"Commitment width must be a power of two >= 2, got {width}")
        if len(values) > width:
            raise ValueError(f"Too many leaves for width {width}: {len(values)}")

        self.width = width
        padded = list(values) + [ZERO_HASH] * (width - len(values))
        self._levels: list[list[bytes]] = [[hash_leaf(value) for value in padded]]

        while len(self._levels[-1]) > 1:
            level = self._levels[-1]
            self._levels.append(
                [hash_pair(level[i], level[i + 1]) for i in range(0, len(level), 2)]
            )

    @property
    def depth(self) -> int:
        return len(self._levels) - 1

    @property
    def root(self) -> str:
        return Web3.to_hex(self._levels[-1][0])

    @property
    def leaf_hashes(self) -> list[str]:
        return [Web3.to_hex(leaf) for leaf in self._levels[0]]

    def proof_for(self, index: int) -> list[str]:
        if not 0 <= index < self.width:
            raise IndexError(f"Leaf index {index} out of range for width {self.width}")

        proof = []
        position = index
        for level in self._levels[:-1]:
            proof.append(Web3.to_hex(level[position ^ 1]))
            position //= 2
        return proof


def verify_merkle_proof(leaf_hash: str, index: int, proof: Sequence[str], root: str) -> bool:
    """Recompute the root from a leaf hash and its sibling path.

    Args:
        leaf_hash: 0x-prefixed hash of the leaf being proven
        index: Position of the leaf in the tree
        proof: Sibling hashes, leaf level first
        root: Expected 0x-prefixed root

    Returns:
        True if the recomputed root equals ``root``
    """
    computed = Web3.to_bytes(hexstr=leaf_hash)
    position = index
    for sibling_hex in proof:
        sibling = Web3.to_bytes(hexstr=sibling_hex)
        if position % 2 == 0:
            computed = hash_pair(computed, sibling)
        else:
            computed = hash_pair(sibling, computed)
        position //= 2

    verified = Web3.to_hex(computed) == root.lower()
    if not verified:
        logger.debug(f"Merkle proof mismatch: expected {root}, computed {Web3.to_hex(computed)}")
    return verified
