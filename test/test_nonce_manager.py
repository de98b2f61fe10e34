#!/usr/bin/env python3
"""Tests for the validator nonce manager."""

import threading
from unittest.mock import AsyncMock

import pytest

from trinity_relayer.exceptions import NonceSyncError
from trinity_relayer.models import ChainRole
from trinity_relayer.nonce_manager import NonceManager


@pytest.fixture
def manager():
    nonce_manager = NonceManager()
    nonce_manager.seed(7)
    return nonce_manager


class TestNonceManager:
    """Tests for nonce issuing and syncing."""

    @pytest.mark.asyncio
    async def test_initialize_seeds_every_role(self):
        nonce_manager = NonceManager()
        fetch = AsyncMock(return_value=42)

        assert await nonce_manager.initialize(fetch) == 42

        fetch.assert_awaited_once()
        assert nonce_manager.snapshot() == {role: 42 for role in ChainRole}

    @pytest.mark.asyncio
    async def test_initialize_failure_is_fatal(self):
        nonce_manager = NonceManager()
        fetch = AsyncMock(side_effect=ConnectionError("rpc down"))

        with pytest.raises(NonceSyncError, match="rpc down"):
            await nonce_manager.initialize(fetch)

        assert nonce_manager.snapshot() == {}

    def test_get_before_initialize_raises(self):
        with pytest.raises(NonceSyncError):
            NonceManager().get_and_increment(ChainRole.SOLANA)

    def test_nonces_strictly_increase_per_role(self, manager):
        issued = [manager.get_and_increment(ChainRole.TON) for _ in range(5)]

        assert issued == [7, 8, 9, 10, 11]
        assert manager.snapshot()[ChainRole.TON] == 12

    def test_roles_are_independent(self, manager):
        manager.get_and_increment(ChainRole.SOLANA)
        manager.get_and_increment(ChainRole.SOLANA)

        assert manager.get_and_increment(ChainRole.ARBITRUM) == 7
        assert manager.snapshot()[ChainRole.SOLANA] == 9

    def test_seed_never_moves_backwards(self, manager):
        manager.get_and_increment(ChainRole.ARBITRUM)
        manager.seed(3)

        assert manager.snapshot()[ChainRole.ARBITRUM] == 8
        assert manager.snapshot()[ChainRole.TON] == 7

    def test_seed_rejects_negative(self):
        with pytest.raises(ValueError):
            NonceManager().seed(-1)

    def test_seed_role_raises_one_role(self, manager):
        manager.seed_role(ChainRole.SOLANA, 20)

        assert manager.get_and_increment(ChainRole.SOLANA) == 20
        assert manager.snapshot()[ChainRole.TON] == 7

    def test_seed_role_lower_value_is_ignored(self, manager):
        manager.get_and_increment(ChainRole.SOLANA)
        manager.seed_role(ChainRole.SOLANA, 5)

        assert manager.snapshot()[ChainRole.SOLANA] == 8

    @pytest.mark.asyncio
    async def test_initialize_seeds_only_given_roles(self):
        nonce_manager = NonceManager()

        await nonce_manager.initialize(AsyncMock(return_value=3), [ChainRole.ARBITRUM, ChainRole.SOLANA])
        await nonce_manager.initialize(AsyncMock(return_value=1), [ChainRole.TON])

        assert nonce_manager.snapshot() == {ChainRole.ARBITRUM: 3, ChainRole.SOLANA: 3, ChainRole.TON: 1}
        assert nonce_manager.get_and_increment(ChainRole.TON) == 1

    def test_concurrent_issuing_never_repeats(self, manager):
        issued: list[int] = []
        lock = threading.Lock()

        def draw():
            for _ in range(200):
                value = manager.get_and_increment(ChainRole.ARBITRUM)
                with lock:
                    issued.append(value)

        threads = [threading.Thread(target=draw) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(issued) == 1600
        assert sorted(issued) == list(range(7, 7 + 1600))
        assert manager.snapshot()[ChainRole.ARBITRUM] == 7 + 1600
