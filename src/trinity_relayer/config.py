#!/usr/bin/env python3
"""Configuration management for the Trinity relayer.

This module provides type-safe configuration dataclasses with validation
for the relayer. Configuration is loaded from environment variables with
sensible defaults where appropriate.
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from web3 import Web3

# Get logger for this module
logger = logging.getLogger(__name__)

DEFAULT_ARBITRUM_RPC_URL = "https://sepolia-rollup.arbitrum.io/rpc"
DEFAULT_CONSENSUS_CONTRACT = "0x59396d58fa856025bd5249e342729d5550be151c"
DEFAULT_SOLANA_RPC_URL = "https://api.devnet.solana.com"
DEFAULT_TON_ENDPOINT = "https://testnet.toncenter.com/api/v2/jsonRPC"


def _validate_url(url: str, name: str, schemes: tuple[str, ...] = ('http', 'https')) -> None:
    if not url:
        raise ValueError(f"{name} is required")

    parsed = urlparse(url)
    if parsed.scheme not in schemes:
        raise ValueError(
            f"Invalid {name} scheme: {parsed.scheme}. "
            f"Expected {', '.join(schemes)}"
        )


def _validate_interval(value: float, name: str, maximum: float = 300) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    if value > maximum:
        raise ValueError(f"{name} too long (max {maximum}s), got {value}")


@dataclass(frozen=True, slots=True)
class HomeChainConfig:
    """Configuration for the home chain hosting the consensus verifier.

    Attributes:
        rpc_url: HTTP(S) or WS(S) RPC endpoint
        contract_address: Checksummed address of TrinityConsensusVerifier
    """

    rpc_url: str
    contract_address: str

    def __post_init__(self) -> None:
        """Validate home chain configuration."""
        _validate_url(self.rpc_url, "Arbitrum RPC URL (ARBITRUM_RPC_URL)", ('http', 'https', 'ws', 'wss'))

        # Validate and checksum contract address
        if not self.contract_address:
            raise ValueError(
                "Consensus contract address is required (CONSENSUS_CONTRACT_ADDRESS)"
            )

        if not Web3.is_address(self.contract_address):
            raise ValueError(
                f"Invalid consensus contract address: {self.contract_address}"
            )

        checksummed = Web3.to_checksum_address(self.contract_address)
        if checksummed != self.contract_address:
            # Use object.__setattr__ since dataclass is frozen
            object.__setattr__(self, 'contract_address', checksummed)


@dataclass(frozen=True, slots=True)
class SolanaConfig:
    """Configuration for the Solana JSON-RPC endpoint."""

    rpc_url: str = DEFAULT_SOLANA_RPC_URL
    polling_interval: float = 5

    def __post_init__(self) -> None:
        _validate_url(self.rpc_url, "Solana RPC URL (SOLANA_RPC_URL)")
        _validate_interval(self.polling_interval, "Solana polling interval")


@dataclass(frozen=True, slots=True)
class TonConfig:
    """Configuration for the TON Center JSON-RPC endpoint.

    Attributes:
        endpoint: TON Center v2 jsonRPC URL
        api_key: Optional TON Center API key (raises the rate limit)
        polling_interval: Seconds between masterchain reads
    """

    endpoint: str = DEFAULT_TON_ENDPOINT
    api_key: str | None = None
    polling_interval: float = 8

    def __post_init__(self) -> None:
        _validate_url(self.endpoint, "TON endpoint (TON_ENDPOINT)")
        _validate_interval(self.polling_interval, "TON polling interval")


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for event monitoring and submission."""
    # Sensible defaults for relayer operations
    polling_interval: float = 4  # seconds between home chain event polls
    health_interval: float = 60  # seconds between health reports
    lookback_blocks: int = 100  # blocks to look back on startup
    receipt_timeout: int = 120  # seconds to wait for a transaction receipt
    request_timeout: int = 30  # HTTP request timeout in seconds

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        _validate_interval(self.polling_interval, "Polling interval")
        _validate_interval(self.health_interval, "Health interval", maximum=3600)

        # Validate lookback blocks
        if self.lookback_blocks <= 0:
            raise ValueError(f"Lookback blocks must be positive, got {self.lookback_blocks}")
        if self.lookback_blocks > 10_000:
            raise ValueError(f"Lookback blocks too high (max 10000), got {self.lookback_blocks}")

        # Validate timeouts
        if self.receipt_timeout <= 0:
            raise ValueError(f"Receipt timeout must be positive, got {self.receipt_timeout}")
        if self.receipt_timeout > 600:
            raise ValueError(f"Receipt timeout too long (max 600s), got {self.receipt_timeout}")

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the Trinity relayer.

    Attributes:
        home_chain: Configuration for the home chain and consensus contract
        solana: Configuration for the Solana watcher
        ton: Configuration for the TON watcher
        monitoring: Configuration for monitoring and submission
        local_mode: Whether running in local mode (direct signing, no ROFL)
        private_key: Validator private key for local mode
    """

    home_chain: HomeChainConfig
    solana: SolanaConfig
    ton: TonConfig
    monitoring: MonitoringConfig
    local_mode: bool = False
    private_key: str | None = None

    def __post_init__(self) -> None:
        """Validate relayer configuration."""
        if self.local_mode and not self.private_key:
            raise ValueError(
                "Local mode requires PRIVATE_KEY environment variable"
            )

        if self.private_key:
            # Basic private key validation (should be 64 hex chars, optionally with 0x prefix)
            key = self.private_key.removeprefix('0x')

            if len(key) != 64:
                raise ValueError(
                    f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
                )

            try:
                int(key, 16)
            except ValueError:
                raise ValueError(
                    "Invalid private key format. Must be hexadecimal"
                ) from None

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "RelayerConfig":
        """Load configuration from environment variables.

        Args:
            local_mode: Whether to run in local mode (for testing)

        Returns:
            RelayerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        home_config = HomeChainConfig(
            rpc_url=os.environ.get("ARBITRUM_RPC_URL", DEFAULT_ARBITRUM_RPC_URL),
            contract_address=os.environ.get("CONSENSUS_CONTRACT_ADDRESS", DEFAULT_CONSENSUS_CONTRACT),
        )

        solana_config = SolanaConfig(
            rpc_url=os.environ.get("SOLANA_RPC_URL", DEFAULT_SOLANA_RPC_URL),
            polling_interval=float(os.environ.get("SOLANA_POLLING_INTERVAL", "5")),
        )

        ton_config = TonConfig(
            endpoint=os.environ.get("TON_ENDPOINT", DEFAULT_TON_ENDPOINT),
            api_key=os.environ.get("TON_API_KEY") or None,
            polling_interval=float(os.environ.get("TON_POLLING_INTERVAL", "8")),
        )

        monitoring_config = MonitoringConfig(
            polling_interval=float(os.environ.get("HOME_POLLING_INTERVAL", "4")),
            health_interval=float(os.environ.get("HEALTH_INTERVAL", "60")),
            lookback_blocks=int(os.environ.get("LOOKBACK_BLOCKS", "100")),
            receipt_timeout=int(os.environ.get("RECEIPT_TIMEOUT", "120")),
            request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30")),
        )

        private_key = os.environ.get("PRIVATE_KEY") if local_mode else None

        return cls(
            home_chain=home_config,
            solana=solana_config,
            ton=ton_config,
            monitoring=monitoring_config,
            local_mode=local_mode,
            private_key=private_key,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Trinity Relayer Configuration")
        logger.info("=" * 60)

        logger.info("Home Chain (Arbitrum):")
        logger.info(f"  RPC URL: {self.home_chain.rpc_url}")
        logger.info(f"  Consensus Contract: {self.home_chain.contract_address}")

        logger.info("Secondary Chains:")
        logger.info(f"  Solana RPC: {self.solana.rpc_url} (every {self.solana.polling_interval}s)")
        logger.info(f"  TON Endpoint: {self.ton.endpoint} (every {self.ton.polling_interval}s)")
        logger.info(f"  TON API Key: {'[CONFIGURED]' if self.ton.api_key else '[NOT SET]'}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Health Interval: {self.monitoring.health_interval} seconds")
        logger.info(f"  Lookback Blocks: {self.monitoring.lookback_blocks}")
        logger.info(f"  Receipt Timeout: {self.monitoring.receipt_timeout} seconds")
        logger.info(f"  Request Timeout: {self.monitoring.request_timeout} seconds")

        logger.info("Relayer Settings:")
        logger.info(f"  Mode: {'LOCAL' if self.local_mode else 'PRODUCTION'}")

        if self.local_mode:
            logger.info("  Validator Key: [CONFIGURED]")

        logger.info("=" * 60)
