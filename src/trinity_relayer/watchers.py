"""
Chain watchers for the Trinity relayer.

The home chain watcher reacts to consensus contract events; the secondary
watchers poll their chain on a fixed interval. All of them relay proofs for
operations through the same guarded path, so a given (operation, chain) pair
is never generated or submitted twice at the same time.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Coroutine, Mapping
from typing import TYPE_CHECKING, Any

from web3 import Web3
from web3.types import EventData

from . import events
from .exceptions import ChainClientError, SigningError
from .models import (
    HOME_CHAIN,
    ChainReference,
    ChainRole,
    Operation,
    RelayerStats,
    SubmissionOutcome,
    SubmissionResult,
)

if TYPE_CHECKING:
    from .proof_generator import ProofGenerator
    from .registry import OperationRegistry
    from .submission_client import SubmissionClient
    from .utils.chain_clients import HomeChainClient, JsonRpcClient
    from .utils.polling_event_listener import PollingEventListener


class ChainWatcher(ABC):
    """Shared relay logic for one chain role."""

    def __init__(
        self,
        role: ChainRole,
        registry: "OperationRegistry",
        proof_generator: "ProofGenerator",
        submission_client: "SubmissionClient",
        emitter: events.EventEmitter,
    ) -> None:
        self.role = role
        self.registry = registry
        self.proof_generator = proof_generator
        self.submission_client = submission_client
        self.emitter = emitter
        self.running = False
        self._tasks: set[asyncio.Task] = set()
        self.logger = logging.getLogger(f"{__name__}.{role.label}")

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @abstractmethod
    async def fetch_reference(self, operation: Operation) -> ChainReference:
        """Block reference the proof for ``operation`` is bound to."""

    def schedule_relay(self, operation: Operation, reference: ChainReference | None = None) -> bool:
        """
        Start a relay task for ``operation`` unless one is already running.

        The in-flight claim is taken before the task is created, so two
        triggers for the same pair in quick succession produce one task.

        Returns:
            True if a relay task was started
        """
        if not self.running or operation.has_proof_for(self.role):
            return False
        if not self.registry.try_claim(operation.id, self.role):
            self.logger.debug(f"Relay for {operation.id[:10]}... already in flight")
            return False

        self._spawn(self._relay_claimed(operation, reference))
        return True

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _relay_claimed(
        self, operation: Operation, reference: ChainReference | None
    ) -> SubmissionResult | None:
        """Generate and submit one proof. Releases the claim when done."""
        op_id = operation.id
        try:
            if await self.submission_client.already_approved(op_id, self.role):
                self.registry.mark_chain_approved(op_id, self.role)
                self.logger.info(f"{op_id[:10]}... already approved on-chain, skip")
                self.emitter.emit(events.PROOF_SKIPPED, operationId=op_id, chainId=int(self.role))
                return None

            if reference is None:
                reference = await self.fetch_reference(operation)

            # No new nonce is drawn once the watcher has been stopped
            if not self.running:
                self.logger.debug(f"Watcher stopped, not generating proof for {op_id[:10]}...")
                return None

            self.logger.info(f"Generating proof for {op_id[:10]}... at {reference}")
            proof = self.proof_generator.generate(op_id, self.role, reference)
            result = await self.submission_client.submit_proof(proof)
            self._report(op_id, result)
            return result

        except SigningError as e:
            self.logger.error(f"Signing unavailable for {op_id[:10]}... on chain {int(self.role)}: {e}")
        except ChainClientError as e:
            self.logger.warning(f"Chain unavailable for {op_id[:10]}... on chain {int(self.role)}: {e}")
        except Exception as e:
            self.logger.error(f"Relay failed for {op_id[:10]}... on chain {int(self.role)}: {e}", exc_info=True)
        finally:
            self.registry.release(op_id, self.role)
        return None

    def _report(self, op_id: str, result: SubmissionResult) -> None:
        payload = {"operationId": op_id, "chainId": int(self.role)}
        match result.outcome:
            case SubmissionOutcome.SUBMITTED:
                self.emitter.emit(events.PROOF_SUBMITTED, txHash=result.tx_hash, **payload)
            case SubmissionOutcome.DUPLICATE:
                self.emitter.emit(events.PROOF_SKIPPED, **payload)
            case SubmissionOutcome.FAILED:
                self.emitter.emit(events.SUBMISSION_FAILED, error=result.error, **payload)

    async def drain(self) -> None:
        """Wait for every relay task already started to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def stop(self) -> None:
        """Stop scheduling new relays; running relays finish on their own."""
        self.running = False


class SecondaryChainWatcher(ChainWatcher):
    """Polls a secondary chain and relays proofs for operations missing one."""

    def __init__(
        self,
        role: ChainRole,
        client: "JsonRpcClient",
        interval: float,
        registry: "OperationRegistry",
        proof_generator: "ProofGenerator",
        submission_client: "SubmissionClient",
        emitter: events.EventEmitter,
    ) -> None:
        super().__init__(role, registry, proof_generator, submission_client, emitter)
        self.client = client
        self.interval = interval

    async def fetch_reference(self, operation: Operation) -> ChainReference:
        return await self.client.get_reference()

    async def tick(self) -> int:
        """
        Relay proofs for every operation lacking one from this chain.

        The chain head is read once per tick and shared by all operations.

        Returns:
            Number of relay tasks started
        """
        operations = self.registry.operations_needing_proof(self.role)
        if not operations:
            return 0

        try:
            reference = await self.client.get_reference()
        except ChainClientError as e:
            self.logger.warning(f"Could not read chain head, retrying next tick: {e}")
            return 0

        return sum(self.schedule_relay(op, reference) for op in operations)

    async def run(self) -> None:
        """Tick every ``interval`` seconds until stopped or cancelled."""
        self.running = True
        self.logger.info(f"Monitoring {self.role.label} every {self.interval}s")
        try:
            while self.running:
                await asyncio.sleep(self.interval)
                if not self.running:
                    break
                try:
                    await self.tick()
                except Exception as e:
                    self.logger.error(f"Monitor error: {e}", exc_info=True)
        except asyncio.CancelledError:
            self.logger.info("Polling cancelled")
            raise
        finally:
            self.running = False


class HomeChainWatcher(ChainWatcher):
    """Reacts to consensus contract events on the home chain."""

    MAX_SEEN_LOGS: int = 10_000

    def __init__(
        self,
        listener: "PollingEventListener",
        client: "HomeChainClient",
        interval: float,
        stats: RelayerStats,
        registry: "OperationRegistry",
        proof_generator: "ProofGenerator",
        submission_client: "SubmissionClient",
        emitter: events.EventEmitter,
    ) -> None:
        super().__init__(HOME_CHAIN, registry, proof_generator, submission_client, emitter)
        self.listener = listener
        self.client = client
        self.interval = interval
        self.stats = stats
        self.seen_logs: OrderedDict[tuple[str, int], None] = OrderedDict()

    async def fetch_reference(self, operation: Operation) -> ChainReference:
        # Home proofs are bound to the block the operation was created in
        return await self.client.get_reference(operation.block_number)

    async def handle_event(self, event: EventData | Mapping[str, Any]) -> None:
        """Dispatch one decoded contract log."""
        if not self._mark_seen(event):
            return

        args: Mapping[str, Any] = event.get('args', {})
        match event.get('event'):
            case 'OperationCreated':
                self.handle_operation_created(
                    operation_id=_hex(args.get('operationId')),
                    initiator=args.get('initiator', '0x0'),
                    operation_type=int(args.get('operationType', 0)),
                    amount=int(args.get('amount', 0)),
                    block_number=int(event.get('blockNumber', 0)),
                )
            case 'ConsensusReached':
                self.handle_consensus_reached(_hex(args.get('operationId')), int(args.get('approvalCount', 0)))
            case 'OperationExecuted':
                self.handle_operation_executed(_hex(args.get('operationId')), bool(args.get('success', False)))
            case other:
                self.logger.debug(f"Ignoring {other} event")

    def handle_operation_created(
        self,
        operation_id: str,
        initiator: str,
        operation_type: int,
        amount: int,
        block_number: int,
    ) -> Operation:
        """Register a new operation and relay the home chain's own proof."""
        operation = Operation(
            id=operation_id,
            source_chain=HOME_CHAIN,
            initiator=initiator,
            amount=amount,
            operation_type=operation_type,
            block_number=block_number,
        )

        if self.registry.register(operation):
            self.stats.operations_processed += 1
            self.logger.info(
                f"New operation {operation_id[:10]}... {initiator=} "
                f"type={operation_type} {amount=} block={block_number}"
            )
            self.emitter.emit(events.OPERATION_DETECTED, operationId=operation_id, sourceChain=int(HOME_CHAIN))
        else:
            operation = self.registry.get(operation_id)

        self.schedule_relay(operation)
        return operation

    def handle_consensus_reached(self, operation_id: str, approval_count: int) -> None:
        if self.registry.mark_consensus_reached(operation_id, approval_count):
            self.stats.consensus_achieved += 1
            self.logger.info(f"Consensus reached for {operation_id[:10]}... ({approval_count}/3 approvals)")
            self.emitter.emit(events.CONSENSUS_REACHED, operationId=operation_id, approvalCount=approval_count)
        elif operation_id not in self.registry:
            self.logger.debug(f"ConsensusReached for untracked operation {operation_id[:10]}...")

    def handle_operation_executed(self, operation_id: str, success: bool) -> None:
        if self.registry.mark_executed(operation_id, success):
            self.logger.info(f"Operation {operation_id[:10]}... executed ({success=})")
            self.emitter.emit(events.OPERATION_EXECUTED, operationId=operation_id, success=success)

    async def retry_pending(self) -> int:
        """Re-attempt home proofs that failed on an earlier event."""
        return sum(
            self.schedule_relay(op)
            for op in self.registry.operations_needing_proof(self.role)
        )

    async def run(self) -> None:
        self.running = True
        self.logger.info(f"Monitoring {self.role.label} consensus contract {self.listener.contract_address}")
        try:
            await self.listener.start_polling(
                callback=self.handle_event,
                interval=self.interval,
                on_tick=self.retry_pending,
            )
        finally:
            self.running = False

    def stop(self) -> None:
        super().stop()
        self.listener.stop()

    def _mark_seen(self, event: EventData | Mapping[str, Any]) -> bool:
        """Track (tx hash, log index); False if the log was already handled."""
        key = (_hex(event.get('transactionHash')), int(event.get('logIndex', 0)))
        if key in self.seen_logs:
            return False
        if len(self.seen_logs) >= self.MAX_SEEN_LOGS:
            self.seen_logs.popitem(last=False)
        self.seen_logs[key] = None
        return True


def _hex(value: Any) -> str:
    """Normalize bytes/HexBytes/str to a lowercase 0x-prefixed hex string."""
    match value:
        case None:
            return ''
        case bytes() as raw:
            return Web3.to_hex(raw)
        case str() as text:
            return text.lower() if text.startswith('0x') else '0x' + text.lower()
        case _:
            return str(value)
