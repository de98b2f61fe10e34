"""
Trinity relayer implementation.

This module contains the orchestrator that owns all relayer state (registry,
nonces, stats) and wires the chain watchers, proof generator and submission
client together.
"""

import asyncio
import logging
import time
from collections.abc import Mapping

from web3.contract import Contract

from . import events
from .config import RelayerConfig
from .exceptions import SigningError
from .health import HealthMonitor
from .models import (
    HOME_CHAIN,
    ChainRole,
    ConsensusStatus,
    Operation,
    RelayerStats,
)
from .nonce_manager import NonceManager
from .proof_generator import ProofGenerator, to_bytes32
from .registry import OperationRegistry
from .submission_client import SubmissionClient
from .utils.chain_clients import HomeChainClient, SolanaClient, TonClient
from .utils.contract_utility import ContractUtility
from .utils.polling_event_listener import PollingEventListener
from .utils.rofl_utility import RoflUtility
from .validators import ChainValidator, validators_from_key, validators_from_rofl
from .watchers import ChainWatcher, HomeChainWatcher, SecondaryChainWatcher

logger = logging.getLogger(__name__)


class TrinityRelayer:
    """
    Main relayer service that orchestrates chain monitoring and proof relay.

    This class focuses on coordination and lifecycle management, delegating
    proof work to the watchers it creates on start.
    """

    CONTRACT_NAME = "TrinityConsensusVerifier"
    HOME_EVENTS = ("OperationCreated", "ConsensusReached", "OperationExecuted")

    def __init__(
        self,
        config: RelayerConfig,
        *,
        contract_util: ContractUtility | None = None,
        rofl_util: RoflUtility | None = None,
        solana_client: SolanaClient | None = None,
        ton_client: TonClient | None = None,
        validators: Mapping[ChainRole, ChainValidator] | None = None,
    ) -> None:
        """
        Initialize the Trinity relayer.

        Args:
            config: Relayer configuration
            contract_util: Home chain utility (built from config if omitted)
            rofl_util: ROFL utility; ignored in local mode
            solana_client: Solana reference client (built from config if omitted)
            ton_client: TON reference client (built from config if omitted)
            validators: Signing capability per role (loaded on start if omitted)
        """
        self.config = config
        self.local_mode = config.local_mode
        self.running = False

        # State owned by the relayer and shared with its components
        self.stats = RelayerStats()
        self.registry = OperationRegistry()
        self.nonce_manager = NonceManager()
        self.emitter = events.EventEmitter()
        self._validators = validators

        timeout = config.monitoring.request_timeout
        if self.local_mode:
            self.rofl_util = None
        else:
            self.rofl_util = rofl_util or RoflUtility(timeout=timeout)

        self.contract_util = contract_util or ContractUtility(
            rpc_url=config.home_chain.rpc_url,
            secret=config.private_key if self.local_mode and config.private_key else "",
            request_timeout=timeout,
        )
        self.contract: Contract = self.contract_util.get_contract(
            self.CONTRACT_NAME, config.home_chain.contract_address
        )

        self.home_client = HomeChainClient(self.contract_util.w3)
        self.solana_client = solana_client or SolanaClient(config.solana.rpc_url, timeout=timeout)
        self.ton_client = ton_client or TonClient(config.ton.endpoint, timeout=timeout, api_key=config.ton.api_key)

        self.submission_client = SubmissionClient(
            contract_util=self.contract_util,
            contract=self.contract,
            registry=self.registry,
            stats=self.stats,
            rofl_util=self.rofl_util,
            receipt_timeout=config.monitoring.receipt_timeout,
        )
        self.health_monitor = HealthMonitor(self.stats, self.registry, config.monitoring.health_interval)

        self.proof_generator: ProofGenerator | None = None
        self.watchers: dict[ChainRole, ChainWatcher] = {}
        self._tasks: dict[str, asyncio.Task] = {}

        # Async coordination
        self.shutdown_event = asyncio.Event()

        logger.info(f"Initialized TrinityRelayer in {'local' if self.local_mode else 'ROFL'} mode")

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "TrinityRelayer":
        """
        Create a TrinityRelayer instance from environment variables.

        Args:
            local_mode: Run in local mode without ROFL utilities

        Returns:
            Configured TrinityRelayer instance

        Raises:
            ValueError: If required environment variables are missing
        """
        config = RelayerConfig.from_env(local_mode=local_mode)
        config.log_config()
        return cls(config)

    def on(self, event: str, handler: events.Handler) -> None:
        """Subscribe ``handler`` to a relayer event (see ``trinity_relayer.events``)."""
        self.emitter.on(event, handler)

    async def _load_validators(self) -> Mapping[ChainRole, ChainValidator]:
        if self._validators is not None:
            return self._validators

        match self.rofl_util:
            case None:
                return validators_from_key(self.config.private_key or "")
            case rofl_util:
                return await validators_from_rofl(rofl_util)

    async def _fetch_validator_nonce(self, address: str) -> int:
        return int(await asyncio.to_thread(self.contract.functions.getValidatorNonce(address).call))

    async def _sync_nonces(self, validators: Mapping[ChainRole, ChainValidator]) -> None:
        """Seed the nonce manager from the contract before any proof is signed."""
        if HOME_CHAIN not in validators:
            raise SigningError(f"No validator configured for {HOME_CHAIN.label}")

        # Each validator address has its own on-chain counter
        roles_by_address: dict[str, list[ChainRole]] = {}
        for role, validator in validators.items():
            roles_by_address.setdefault(validator.address, []).append(role)

        for address, roles in roles_by_address.items():
            await self.nonce_manager.initialize(
                lambda address=address: self._fetch_validator_nonce(address), roles
            )
        logger.info(
            "Next nonces: "
            + ", ".join(f"{role.label}={nonce}" for role, nonce in self.nonce_manager.snapshot().items())
        )

    def _init_watchers(self) -> None:
        shared = dict(
            registry=self.registry,
            proof_generator=self.proof_generator,
            submission_client=self.submission_client,
            emitter=self.emitter,
        )
        listener = PollingEventListener(
            contract=self.contract,
            event_names=self.HOME_EVENTS,
            lookback_blocks=self.config.monitoring.lookback_blocks,
        )
        self.watchers = {
            ChainRole.ARBITRUM: HomeChainWatcher(
                listener=listener,
                client=self.home_client,
                interval=self.config.monitoring.polling_interval,
                stats=self.stats,
                **shared,
            ),
            ChainRole.SOLANA: SecondaryChainWatcher(
                ChainRole.SOLANA, self.solana_client, self.config.solana.polling_interval, **shared
            ),
            ChainRole.TON: SecondaryChainWatcher(
                ChainRole.TON, self.ton_client, self.config.ton.polling_interval, **shared
            ),
        }

    async def start(self) -> None:
        """
        Load keys, sync nonces and start all watchers.

        Calling start on a running relayer does nothing. After a stop, relays
        still running in the previous watchers are drained before new
        watchers replace them.

        Raises:
            SigningError: If no validator key is available
            NonceSyncError: If the on-chain nonce could not be read
        """
        if self.running:
            logger.warning("Relayer already running")
            return

        logger.info("Trinity relayer starting...")
        validators = await self._load_validators()
        if not validators:
            raise SigningError("Refusing to start without validator keys")

        await self.drain()
        self.proof_generator = ProofGenerator(self.nonce_manager, validators)
        await self._sync_nonces(validators)
        self._init_watchers()

        self.running = True
        self.stats.started_at = time.time()
        self.shutdown_event.clear()

        # One task per watcher plus the health reporter
        self._tasks = {role.label: asyncio.create_task(watcher.run()) for role, watcher in self.watchers.items()}
        self._tasks["health"] = asyncio.create_task(self.health_monitor.run())

        logger.info(
            f"Monitoring {self.config.home_chain.contract_address} on {HOME_CHAIN.label}, "
            f"Solana every {self.config.solana.polling_interval}s, "
            f"TON every {self.config.ton.polling_interval}s"
        )
        self.emitter.emit(events.STARTED, mode="local" if self.local_mode else "rofl")

    async def stop(self) -> None:
        """
        Stop watchers and timers.

        Relay tasks already past their in-flight guard keep running and
        record their result; use ``drain`` to wait for them.
        """
        if not self.running:
            return

        logger.info("Stopping Trinity relayer...")
        self.running = False
        for watcher in self.watchers.values():
            watcher.stop()
        self.health_monitor.stop()

        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks = {}

        self.emitter.emit(events.STOPPED, stats=self.stats.to_dict())
        logger.info("Trinity relayer stopped")

    async def drain(self) -> None:
        """Wait until every in-flight relay has recorded its outcome."""
        await asyncio.gather(*(watcher.drain() for watcher in self.watchers.values()))

    def request_shutdown(self) -> None:
        """Ask ``run`` to stop; safe to call from a signal handler."""
        self.shutdown_event.set()

    def _check_task_health(self) -> bool:
        """Check if any long-running task has ended unexpectedly."""
        for name, task in self._tasks.items():
            if task.done():
                if not task.cancelled() and (exc := task.exception()) is not None:
                    logger.error(f"{name} task failed: {exc}", exc_info=exc)
                else:
                    logger.error(f"{name} task ended unexpectedly")
                return False
        return True

    async def run(self) -> None:
        """Main loop for the relayer service."""
        await self.start()
        try:
            # Wait until shutdown or task failure
            while self.running:
                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=1.0)
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass

                if not self._check_task_health():
                    logger.error("Critical task failure, shutting down")
                    break
        finally:
            await self.stop()
            await self.drain()

    def get_stats(self) -> RelayerStats:
        """Snapshot of the relayer counters."""
        return self.stats.snapshot()

    def get_pending_operations(self) -> list[Operation]:
        return self.registry.pending()

    async def check_consensus_status(self, operation_id: str) -> ConsensusStatus | None:
        """
        Query the contract for an operation's consensus state.

        Args:
            operation_id: 0x-prefixed 32 byte operation id

        Returns:
            ConsensusStatus, or None if the contract could not be queried
        """
        try:
            op_bytes = to_bytes32(operation_id)
            status, approval_count, _created_at = await asyncio.to_thread(
                self.contract.functions.getOperationStatus(op_bytes).call
            )
            approvals = await asyncio.gather(*(
                asyncio.to_thread(self.contract.functions.hasChainApproved(op_bytes, int(role)).call)
                for role in ChainRole
            ))
        except Exception as e:
            logger.error(f"Failed to check consensus status for {operation_id[:10]}...: {e}")
            return None

        return ConsensusStatus(
            status=int(status),
            approval_count=int(approval_count),
            chain_approvals={role: bool(approved) for role, approved in zip(ChainRole, approvals)},
        )
