"""
In-memory registry of operations and their per-chain proofs.

The registry mirrors the consensus contract. Consensus and execution are only
recorded when the contract reports them; the local proof count is used for
scheduling decisions and nothing else.
"""

import logging
from collections import OrderedDict

from .models import (
    CONSENSUS_THRESHOLD,
    ChainRole,
    CrossChainProof,
    Operation,
    OperationStatus,
)

logger = logging.getLogger(__name__)


class OperationRegistry:
    """Tracks pending operations, attached proofs and in-flight relays."""

    MAX_OPERATIONS: int = 10_000

    def __init__(self, max_operations: int | None = None) -> None:
        # Insertion ordered for oldest-first eviction of finished operations
        self._operations: OrderedDict[str, Operation] = OrderedDict()
        self._in_flight: set[tuple[str, ChainRole]] = set()
        self.max_operations = max_operations or self.MAX_OPERATIONS

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._operations

    def register(self, operation: Operation) -> bool:
        """
        Register a newly observed operation.

        Returns:
            True if the operation was new, False if it was already tracked
        """
        if operation.id in self._operations:
            return False

        if len(self._operations) >= self.max_operations:
            self._evict_finished()

        self._operations[operation.id] = operation
        return True

    def get(self, operation_id: str) -> Operation | None:
        return self._operations.get(operation_id)

    def pending(self) -> list[Operation]:
        """Operations that have not been executed yet."""
        return [op for op in self._operations.values() if op.status is not OperationStatus.EXECUTED]

    def attach_proof(self, proof: CrossChainProof) -> bool:
        """
        Attach a proof, keeping at most one per (operation, chain).

        Returns:
            True if attached, False if the operation is unknown or already
            holds a proof for that chain
        """
        operation = self._operations.get(proof.operation_id)
        if operation is None:
            logger.warning(f"Proof for unknown operation {proof.operation_id[:10]}... not attached")
            return False
        if proof.chain_id in operation.proofs:
            logger.debug(f"{proof.chain_id.label} proof already attached for {proof.operation_id[:10]}...")
            return False

        operation.proofs[proof.chain_id] = proof
        return True

    def mark_chain_approved(self, operation_id: str, role: ChainRole) -> None:
        """Record that the contract already holds an approval from ``role``."""
        if operation := self._operations.get(operation_id):
            operation.approved_chains.add(role)

    def mark_consensus_reached(self, operation_id: str, approval_count: int) -> bool:
        """
        Record the contract's ConsensusReached signal.

        Returns:
            True the first time consensus is recorded for a tracked operation
        """
        operation = self._operations.get(operation_id)
        if operation is None:
            return False
        operation.approval_count = max(operation.approval_count, approval_count)
        if operation.consensus_reached:
            return False
        operation.status = OperationStatus.CONSENSUS_REACHED
        return True

    def mark_executed(self, operation_id: str, success: bool) -> bool:
        """Record the contract's OperationExecuted signal."""
        operation = self._operations.get(operation_id)
        if operation is None or operation.status is OperationStatus.EXECUTED:
            return False
        operation.status = OperationStatus.EXECUTED
        operation.execution_success = success
        return True

    def operations_needing_proof(self, role: ChainRole) -> list[Operation]:
        """
        Operations still waiting on a proof from ``role``.

        Operations that already have two corroborating chains are skipped;
        a third submission would be accepted but is not needed.
        """
        return [
            op for op in self._operations.values()
            if op.status is OperationStatus.CREATED
            and not op.has_proof_for(role)
            and len(op.corroborated_chains) < CONSENSUS_THRESHOLD
        ]

    def try_claim(self, operation_id: str, role: ChainRole) -> bool:
        """Claim the (operation, chain) pair for one relay attempt."""
        key = (operation_id, role)
        if key in self._in_flight:
            return False
        self._in_flight.add(key)
        return True

    def release(self, operation_id: str, role: ChainRole) -> None:
        self._in_flight.discard((operation_id, role))

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def _evict_finished(self) -> None:
        """Drop the oldest executed operation to make room."""
        for operation_id, operation in self._operations.items():
            if operation.status is OperationStatus.EXECUTED:
                del self._operations[operation_id]
                logger.debug(f"Evicted executed operation {operation_id[:10]}... due to capacity")
                return
        logger.warning(
            f"Registry holds {len(self._operations)} unfinished operations; "
            "growing past capacity"
        )
