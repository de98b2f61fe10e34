#!/usr/bin/env python3
"""Data models for the Trinity relayer.

This module provides the immutable proof and chain-reference records
produced by the relayer, plus the mutable operation and stats records
it keeps in memory while the process runs.
"""

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any


class ChainRole(IntEnum):
    """Chain roles taking part in 2-of-3 consensus.

    Values are the chain ids the consensus verifier contract expects.
    """

    ARBITRUM = 1
    SOLANA = 2
    TON = 3

    @property
    def label(self) -> str:
        return self.name.capitalize() if self is not ChainRole.TON else "TON"


HOME_CHAIN = ChainRole.ARBITRUM
CONSENSUS_THRESHOLD = 2


class OperationStatus(Enum):
    """Lifecycle of an operation as reported by the consensus contract."""

    CREATED = "created"
    CONSENSUS_REACHED = "consensus_reached"
    EXECUTED = "executed"


class SubmissionOutcome(Enum):
    """Classification of a proof submission attempt."""

    SUBMITTED = "submitted"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ChainReference:
    """Snapshot of a chain's authoritative head used to bind a proof.

    Attributes:
        chain_id: Chain role the reference was read from
        block_ref: Block hash (EVM), latest blockhash (slot ledger) or
            masterchain root hash (seqno ledger)
        block_number: Block number, slot or seqno
        timestamp: Unix timestamp of the referenced block
    """

    chain_id: ChainRole
    block_ref: str
    block_number: int
    timestamp: int

    def __str__(self) -> str:
        return (
            f"ChainReference(chain={self.chain_id.label}, "
            f"number={self.block_number}, "
            f"ref={self.block_ref[:10]}...)"
        )


@dataclass(frozen=True, slots=True)
class CrossChainProof:
    """A signed Merkle commitment to one chain's observation of an operation.

    Attributes:
        chain_id: Chain role the proof attests for
        operation_id: 0x-prefixed 32 byte operation identifier
        block_ref: Block reference the commitment is bound to
        merkle_root: Root of the 4-leaf commitment
        merkle_proof: Sibling path for leaf 0 (always 2 hashes)
        block_number: Block number, slot or seqno of ``block_ref``
        timestamp: Unix timestamp of the referenced block
        validator_signature: Signature over the canonical payload hash
        nonce: Validator nonce consumed by this proof
    """

    chain_id: ChainRole
    operation_id: str
    block_ref: str
    merkle_root: str
    merkle_proof: tuple[str, ...]
    block_number: int
    timestamp: int
    validator_signature: str
    nonce: int

    def __str__(self) -> str:
        return (
            f"CrossChainProof(chain={self.chain_id.label}, "
            f"op={self.operation_id[:10]}..., "
            f"block={self.block_number}, nonce={self.nonce})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "chain_id": int(self.chain_id),
            "operation_id": self.operation_id,
            "block_ref": self.block_ref,
            "merkle_root": self.merkle_root,
            "merkle_proof": list(self.merkle_proof),
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "validator_signature": self.validator_signature,
            "nonce": self.nonce,
        }


@dataclass(slots=True)
class Operation:
    """A cross-chain operation observed on the home chain.

    The registry mutates this record as proofs are attached and as the
    contract reports consensus and execution. It mirrors on-chain state,
    it never decides it.
    """

    id: str
    source_chain: ChainRole
    initiator: str
    amount: int
    target_chain: int = 0
    operation_type: int = 0
    block_number: int = 0
    created_at: float = field(default_factory=time.time)
    proofs: dict[ChainRole, CrossChainProof] = field(default_factory=dict)
    approved_chains: set[ChainRole] = field(default_factory=set)
    status: OperationStatus = OperationStatus.CREATED
    approval_count: int = 0
    execution_success: bool | None = None

    @property
    def consensus_reached(self) -> bool:
        return self.status in (OperationStatus.CONSENSUS_REACHED, OperationStatus.EXECUTED)

    @property
    def corroborated_chains(self) -> set[ChainRole]:
        """Chains with either a local proof or an on-chain approval."""
        return set(self.proofs) | self.approved_chains

    def has_proof_for(self, role: ChainRole) -> bool:
        return role in self.proofs or role in self.approved_chains

    def __str__(self) -> str:
        return (
            f"Operation(id={self.id[:10]}..., "
            f"status={self.status.value}, "
            f"proofs={sorted(r.label for r in self.proofs)})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "source_chain": int(self.source_chain),
            "target_chain": self.target_chain,
            "initiator": self.initiator,
            "operation_type": self.operation_type,
            "amount": self.amount,
            "block_number": self.block_number,
            "created_at": self.created_at,
            "proofs": {role.label: proof.to_dict() for role, proof in self.proofs.items()},
            "approved_chains": sorted(int(role) for role in self.approved_chains),
            "status": self.status.value,
            "consensus_reached": self.consensus_reached,
            "approval_count": self.approval_count,
        }


@dataclass(slots=True)
class RelayerStats:
    """Process-local counters. Reset on restart."""

    operations_processed: int = 0
    proofs_submitted: int = 0
    consensus_achieved: int = 0
    failed_submissions: int = 0
    duplicate_submissions: int = 0
    started_at: float | None = None

    @property
    def uptime(self) -> float:
        """Seconds since the relayer started, 0 if it never started."""
        if self.started_at is None:
            return 0.0
        return time.time() - self.started_at

    def snapshot(self) -> "RelayerStats":
        return RelayerStats(
            operations_processed=self.operations_processed,
            proofs_submitted=self.proofs_submitted,
            consensus_achieved=self.consensus_achieved,
            failed_submissions=self.failed_submissions,
            duplicate_submissions=self.duplicate_submissions,
            started_at=self.started_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "operations_processed": self.operations_processed,
            "proofs_submitted": self.proofs_submitted,
            "consensus_achieved": self.consensus_achieved,
            "failed_submissions": self.failed_submissions,
            "duplicate_submissions": self.duplicate_submissions,
            "uptime": self.uptime,
        }


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    """Result of submitting one proof to the consensus contract."""

    outcome: SubmissionOutcome
    tx_hash: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ConsensusStatus:
    """On-chain consensus state of one operation."""

    status: int
    approval_count: int
    chain_approvals: dict[ChainRole, bool]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "approval_count": self.approval_count,
            "chain_approvals": {role.label.lower(): approved for role, approved in self.chain_approvals.items()},
        }
