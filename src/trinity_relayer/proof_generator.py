"""
Proof generation for the Trinity relayer.

This module binds an operation to a chain's current block reference with a
fixed-shape Merkle commitment and signs the canonical payload with the
validator for that chain role.
"""

import logging
from collections.abc import Mapping

from eth_abi import encode
from web3 import Web3

from .exceptions import SigningError
from .merkle import FixedMerkleCommitment
from .models import ChainReference, ChainRole, CrossChainProof
from .nonce_manager import NonceManager
from .validators import ChainValidator

logger = logging.getLogger(__name__)

OPERATION_LEAF_INDEX = 0
PAYLOAD_TYPES = ["bytes32", "uint8", "bytes32", "uint256", "uint256"]


def to_bytes32(value: str) -> bytes:
    """Decode a 0x-prefixed hex string that must be exactly 32 bytes."""
    raw = Web3.to_bytes(hexstr=value)
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)} from {value}")
    return raw


def proof_payload_hash(
    operation_id: str,
    chain_id: ChainRole,
    merkle_root: str,
    block_number: int,
    nonce: int,
) -> bytes:
    """keccak256 of the ABI-encoded (operationId, chainId, root, block, nonce)."""
    encoded = encode(
        PAYLOAD_TYPES,
        [to_bytes32(operation_id), int(chain_id), to_bytes32(merkle_root), block_number, nonce],
    )
    return bytes(Web3.keccak(encoded))


class ProofGenerator:
    """Produces immutable CrossChainProof records."""

    def __init__(self, nonce_manager: NonceManager, validators: Mapping[ChainRole, ChainValidator]) -> None:
        """
        Args:
            nonce_manager: Shared nonce issuer, owned by the orchestrator
            validators: Signing capability per chain role
        """
        self.nonce_manager = nonce_manager
        self.validators = validators

    def build_commitment(self, operation_id: str, role: ChainRole, reference: ChainReference) -> FixedMerkleCommitment:
        """Build the 4-leaf commitment for an operation on one chain."""
        validator = self._validator_for(role)
        leaves = [
            operation_id,
            reference.block_ref,
            validator.address,
            str(reference.block_number),
        ]
        return FixedMerkleCommitment(leaves)

    def generate(self, operation_id: str, role: ChainRole, reference: ChainReference) -> CrossChainProof:
        """
        Generate a signed proof that ``role`` observed ``operation_id``.

        Draws exactly one nonce. If signing fails after the nonce was drawn the
        nonce is not reused; the next attempt draws a fresh one.

        Args:
            operation_id: 0x-prefixed 32 byte operation id
            role: Chain role the proof attests for
            reference: The chain's current authoritative block reference

        Returns:
            The signed CrossChainProof

        Raises:
            SigningError: If no validator exists for the role or signing fails
        """
        validator = self._validator_for(role)
        commitment = self.build_commitment(operation_id, role, reference)
        merkle_root = commitment.root
        merkle_proof = tuple(commitment.proof_for(OPERATION_LEAF_INDEX))

        nonce = self.nonce_manager.get_and_increment(role)
        digest = proof_payload_hash(operation_id, role, merkle_root, reference.block_number, nonce)

        try:
            signature = validator.sign_digest(digest)
        except SigningError:
            logger.error(f"[{role.label}] Signing failed for {operation_id[:10]}..., nonce {nonce} discarded")
            raise
        except Exception as e:
            logger.error(f"[{role.label}] Signing failed for {operation_id[:10]}..., nonce {nonce} discarded")
            raise SigningError(str(e)) from e

        proof = CrossChainProof(
            chain_id=role,
            operation_id=operation_id,
            block_ref=reference.block_ref,
            merkle_root=merkle_root,
            merkle_proof=merkle_proof,
            block_number=reference.block_number,
            timestamp=reference.timestamp,
            validator_signature=signature,
            nonce=nonce,
        )
        logger.debug(f"Generated {proof} with root {merkle_root}")
        return proof

    def _validator_for(self, role: ChainRole) -> ChainValidator:
        validator = self.validators.get(role)
        if validator is None:
            raise SigningError(f"No validator configured for {role.label}")
        return validator
