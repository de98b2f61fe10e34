#!/usr/bin/env python3
"""Proof submission to the Trinity consensus verifier.

This module submits CrossChainProofs to the consensus contract on the home
chain, supporting both local (direct signing) and production (ROFL) modes,
and classifies each attempt as submitted, idempotent duplicate or failed.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from web3 import Web3
from web3.contract import Contract
from web3.types import TxParams, TxReceipt, Wei

from .exceptions import SubmissionError
from .models import ChainRole, CrossChainProof, RelayerStats, SubmissionOutcome, SubmissionResult
from .proof_generator import to_bytes32

if TYPE_CHECKING:
    from .registry import OperationRegistry
    from .utils.contract_utility import ContractUtility
    from .utils.rofl_utility import RoflUtility

logger = logging.getLogger(__name__)

GAS_LIMIT = 500_000
ROFL_SENDER = '0x0000000000000000000000000000000000000000'  # ROFL will override
DUPLICATE_MARKERS = ("already submitted", "already approved")


def is_duplicate_error(error: BaseException | str) -> bool:
    """True if a revert reason means the contract already holds this proof."""
    message = str(error).lower()
    return any(marker in message for marker in DUPLICATE_MARKERS)


class SubmissionClient:
    """Submits proofs and records the outcome in the registry and stats."""

    def __init__(
        self,
        contract_util: "ContractUtility",
        contract: Contract,
        registry: "OperationRegistry",
        stats: RelayerStats,
        rofl_util: "RoflUtility | None" = None,
        receipt_timeout: int = 120,
    ) -> None:
        """
        Initialize the SubmissionClient.

        Args:
            contract_util: Utility holding the home chain Web3 connection
            contract: TrinityConsensusVerifier contract instance
            registry: Operation registry that receives accepted proofs
            stats: Shared relayer counters
            rofl_util: ROFL utility for transaction submission (None for local mode)
            receipt_timeout: Seconds to wait for on-chain confirmation
        """
        self.contract_util = contract_util
        self.contract = contract
        self.registry = registry
        self.stats = stats
        self.rofl_util = rofl_util
        self.receipt_timeout = receipt_timeout

        if mode := ("ROFL production" if rofl_util else "local"):
            logger.info(f"SubmissionClient initialized in {mode} mode for {contract.address}")

    async def submit_proof(self, proof: CrossChainProof) -> SubmissionResult:
        """
        Submit a proof and wait for confirmation.

        Confirmed proofs are attached to the registry. Duplicate reverts are
        treated as success without touching ``failed_submissions``. Any other
        error leaves the proof unattached so the owning watcher retries with a
        fresh nonce.

        Args:
            proof: The proof to submit

        Returns:
            SubmissionResult describing the outcome
        """
        label = f"[{proof.chain_id.label}] {proof.operation_id[:10]}..."
        try:
            tx_hash = await self._send(proof)

        except Exception as e:
            if is_duplicate_error(e) or await self.already_approved(proof.operation_id, proof.chain_id):
                self.stats.duplicate_submissions += 1
                self.registry.mark_chain_approved(proof.operation_id, proof.chain_id)
                logger.info(f"{label} proof already on-chain, skipping (nonce {proof.nonce})")
                return SubmissionResult(SubmissionOutcome.DUPLICATE, error=str(e))

            self.stats.failed_submissions += 1
            logger.error(f"{label} proof submission failed: {e}")
            return SubmissionResult(SubmissionOutcome.FAILED, error=str(e))

        self.stats.proofs_submitted += 1
        self.registry.attach_proof(proof)
        logger.info(f"{label} proof confirmed: {tx_hash}")
        return SubmissionResult(SubmissionOutcome.SUBMITTED, tx_hash=tx_hash)

    def _call_args(self, proof: CrossChainProof) -> tuple[Any, ...]:
        return (
            to_bytes32(proof.operation_id),
            int(proof.chain_id),
            to_bytes32(proof.merkle_root),
            [to_bytes32(node) for node in proof.merkle_proof],
            Web3.to_bytes(hexstr=proof.validator_signature),
            proof.nonce,
        )

    async def _send(self, proof: CrossChainProof) -> str:
        """Dry-run, send and confirm. Returns the transaction hash."""
        w3 = self.contract_util.w3
        fn = self.contract.functions.submitChainProof(*self._call_args(proof))

        # eth_call surfaces the revert reason, which a mined status=0 receipt does not
        call_params: TxParams = {}
        if sender := self.contract_util.sender_address:
            call_params['from'] = sender
        await asyncio.to_thread(fn.call, call_params)

        gas_price = await asyncio.to_thread(lambda: w3.eth.gas_price)

        match self.rofl_util:
            case None:
                tx_hash = await asyncio.to_thread(fn.transact, {
                    'gas': GAS_LIMIT,
                    'gasPrice': gas_price
                })
                logger.debug(f"Transaction sent: {Web3.to_hex(tx_hash)}")

                receipt: TxReceipt = await asyncio.to_thread(
                    w3.eth.wait_for_transaction_receipt, tx_hash, timeout=self.receipt_timeout
                )
                if (status := receipt.get('status', 0)) != 1:
                    raise SubmissionError(f"Transaction {Web3.to_hex(tx_hash)} failed with status={status}")
                return Web3.to_hex(tx_hash)

            case rofl_util:
                tx_params: TxParams = {
                    'from': ROFL_SENDER,
                    'gas': GAS_LIMIT,
                    'gasPrice': gas_price,
                    'value': Wei(0)
                }
                tx_data = await asyncio.to_thread(fn.build_transaction, tx_params)
                await rofl_util.submit_tx(tx_data)
                return "ROFL_SUBMITTED"

    async def already_approved(self, operation_id: str, chain_id: ChainRole) -> bool:
        """Ask the contract whether ``chain_id`` already approved the operation.

        Errors count as "not approved"; the caller then proceeds normally.
        """
        try:
            return bool(await asyncio.to_thread(
                self.contract.functions.hasChainApproved(to_bytes32(operation_id), int(chain_id)).call
            ))
        except Exception as e:
            logger.debug(f"hasChainApproved check failed for {operation_id[:10]}...: {e}")
            return False
