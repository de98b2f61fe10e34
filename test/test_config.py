#!/usr/bin/env python3
"""Tests for the configuration module."""

import logging
import os
from unittest.mock import patch

import pytest
from web3 import Web3

from trinity_relayer.config import (
    DEFAULT_SOLANA_RPC_URL,
    HomeChainConfig,
    MonitoringConfig,
    RelayerConfig,
    SolanaConfig,
    TonConfig,
)

CONTRACT = Web3.to_checksum_address("0x59396d58fa856025bd5249e342729d5550be151c")
TEST_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


def make_config(**overrides) -> RelayerConfig:
    values = dict(
        home_chain=HomeChainConfig(rpc_url="https://sepolia-rollup.arbitrum.io/rpc", contract_address=CONTRACT),
        solana=SolanaConfig(),
        ton=TonConfig(),
        monitoring=MonitoringConfig(),
    )
    values.update(overrides)
    return RelayerConfig(**values)


class TestHomeChainConfig:
    """Tests for HomeChainConfig."""

    def test_checksum_address_conversion(self):
        config = HomeChainConfig(rpc_url="https://test.rpc", contract_address=CONTRACT.lower())

        assert config.contract_address == CONTRACT

    def test_websocket_url_allowed(self):
        assert HomeChainConfig(rpc_url="wss://test.rpc", contract_address=CONTRACT).rpc_url == "wss://test.rpc"

    def test_invalid_rpc_url_scheme(self):
        with pytest.raises(ValueError, match="Invalid Arbitrum RPC URL"):
            HomeChainConfig(rpc_url="ftp://invalid.scheme", contract_address=CONTRACT)

    def test_missing_rpc_url(self):
        with pytest.raises(ValueError, match="ARBITRUM_RPC_URL"):
            HomeChainConfig(rpc_url="", contract_address=CONTRACT)

    def test_missing_contract_address(self):
        with pytest.raises(ValueError, match="CONSENSUS_CONTRACT_ADDRESS"):
            HomeChainConfig(rpc_url="https://test.rpc", contract_address="")

    def test_invalid_contract_address(self):
        with pytest.raises(ValueError, match="Invalid consensus contract address"):
            HomeChainConfig(rpc_url="https://test.rpc", contract_address="0x1234")


class TestSecondaryChainConfig:
    """Tests for SolanaConfig and TonConfig."""

    def test_defaults(self):
        assert SolanaConfig().polling_interval == 5
        assert TonConfig().polling_interval == 8
        assert TonConfig().api_key is None

    def test_solana_rejects_websocket(self):
        with pytest.raises(ValueError, match="Solana RPC URL"):
            SolanaConfig(rpc_url="wss://api.devnet.solana.com")

    def test_ton_interval_must_be_positive(self):
        with pytest.raises(ValueError, match="TON polling interval must be positive"):
            TonConfig(polling_interval=0)


class TestMonitoringConfig:
    """Tests for MonitoringConfig."""

    def test_defaults(self):
        config = MonitoringConfig()

        assert config.polling_interval == 4
        assert config.health_interval == 60
        assert config.lookback_blocks == 100
        assert config.receipt_timeout == 120
        assert config.request_timeout == 30

    @pytest.mark.parametrize("field,value,match", [
        ("polling_interval", -1, "Polling interval must be positive"),
        ("polling_interval", 301, "Polling interval too long"),
        ("lookback_blocks", 0, "Lookback blocks must be positive"),
        ("receipt_timeout", 601, "Receipt timeout too long"),
        ("request_timeout", 0, "Request timeout must be positive"),
    ])
    def test_invalid_values(self, field, value, match):
        with pytest.raises(ValueError, match=match):
            MonitoringConfig(**{field: value})


class TestRelayerConfig:
    """Tests for RelayerConfig."""

    def test_local_mode_requires_key(self):
        with pytest.raises(ValueError, match="PRIVATE_KEY"):
            make_config(local_mode=True)

    def test_key_length_validated(self):
        with pytest.raises(ValueError, match="Invalid private key length"):
            make_config(local_mode=True, private_key="0x1234")

    def test_key_must_be_hex(self):
        with pytest.raises(ValueError, match="Must be hexadecimal"):
            make_config(local_mode=True, private_key="zz" * 32)

    def test_valid_local_config(self):
        config = make_config(local_mode=True, private_key=TEST_KEY)

        assert config.local_mode
        assert config.private_key == TEST_KEY

    def test_from_env_defaults(self):
        with patch.dict(os.environ, {"PRIVATE_KEY": TEST_KEY}, clear=True):
            config = RelayerConfig.from_env(local_mode=True)

        assert config.home_chain.contract_address == CONTRACT
        assert config.solana.rpc_url == DEFAULT_SOLANA_RPC_URL
        assert config.monitoring.polling_interval == 4
        assert config.private_key == TEST_KEY

    def test_from_env_overrides(self):
        env = {
            "ARBITRUM_RPC_URL": "http://localhost:8545",
            "CONSENSUS_CONTRACT_ADDRESS": CONTRACT.lower(),
            "SOLANA_RPC_URL": "http://localhost:8899",
            "TON_ENDPOINT": "http://localhost:8081/jsonRPC",
            "TON_API_KEY": "ton-key",
            "SOLANA_POLLING_INTERVAL": "2",
            "TON_POLLING_INTERVAL": "3",
            "HOME_POLLING_INTERVAL": "1",
            "HEALTH_INTERVAL": "10",
            "LOOKBACK_BLOCKS": "50",
            "RECEIPT_TIMEOUT": "60",
            "REQUEST_TIMEOUT": "15",
        }
        with patch.dict(os.environ, env, clear=True):
            config = RelayerConfig.from_env()

        assert config.home_chain.rpc_url == "http://localhost:8545"
        assert config.home_chain.contract_address == CONTRACT
        assert config.ton.api_key == "ton-key"
        assert config.solana.polling_interval == 2
        assert config.ton.polling_interval == 3
        assert config.monitoring.polling_interval == 1
        assert config.monitoring.health_interval == 10
        assert config.monitoring.lookback_blocks == 50
        assert config.monitoring.receipt_timeout == 60
        assert config.monitoring.request_timeout == 15

    def test_from_env_ignores_key_outside_local_mode(self):
        with patch.dict(os.environ, {"PRIVATE_KEY": TEST_KEY}, clear=True):
            config = RelayerConfig.from_env(local_mode=False)

        assert config.private_key is None

    def test_from_env_local_mode_without_key(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="PRIVATE_KEY"):
                RelayerConfig.from_env(local_mode=True)

    def test_from_env_rejects_bad_number(self):
        with patch.dict(os.environ, {"LOOKBACK_BLOCKS": "many"}, clear=True):
            with pytest.raises(ValueError):
                RelayerConfig.from_env()

    def test_log_config_masks_key(self, caplog):
        config = make_config(local_mode=True, private_key=TEST_KEY)

        with caplog.at_level(logging.INFO, logger="trinity_relayer.config"):
            config.log_config()

        assert "Validator Key: [CONFIGURED]" in caplog.text
        assert TEST_KEY[2:] not in caplog.text
        assert CONTRACT in caplog.text
