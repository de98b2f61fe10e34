#!/usr/bin/env python3
"""Tests for the PollingEventListener utility."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from trinity_relayer.utils.polling_event_listener import PollingEventListener

EVENTS = ("OperationCreated", "ConsensusReached")


def log(name: str, block: int, index: int) -> dict:
    return {"event": name, "blockNumber": block, "logIndex": index, "args": {}}


@pytest.fixture
def contract():
    mock = MagicMock()
    mock.address = "0x59396D58Fa856025bD5249E342729d5550Be151C"
    mock.w3.eth.block_number = 500
    mock.events = MagicMock(spec=list(EVENTS))
    mock.events.OperationCreated.get_logs = MagicMock(return_value=[log("OperationCreated", 450, 3)])
    mock.events.ConsensusReached.get_logs = MagicMock(return_value=[
        log("ConsensusReached", 420, 0),
        log("ConsensusReached", 450, 1),
    ])
    return mock


@pytest.fixture
def listener(contract):
    return PollingEventListener(contract, EVENTS, lookback_blocks=100)


class TestPollingEventListener:
    """Tests for PollingEventListener."""

    def test_unknown_event_rejected(self, contract):
        with pytest.raises(ValueError, match="ProofSubmitted"):
            PollingEventListener(contract, ["ProofSubmitted"])

    @pytest.mark.asyncio
    async def test_initial_poll_looks_back_and_orders_logs(self, listener, contract):
        callback = AsyncMock()

        assert await listener.poll_for_events(callback) == 3

        contract.events.OperationCreated.get_logs.assert_called_once_with(from_block=401, to_block=500)
        delivered = [(c[0][0]["blockNumber"], c[0][0]["logIndex"]) for c in callback.await_args_list]
        assert delivered == [(420, 0), (450, 1), (450, 3)]
        assert listener.last_processed_block == 500

    @pytest.mark.asyncio
    async def test_no_new_blocks(self, listener, contract):
        await listener.poll_for_events(AsyncMock())
        callback = AsyncMock()

        assert await listener.poll_for_events(callback) == 0
        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_next_poll_starts_after_last_block(self, listener, contract):
        await listener.poll_for_events(AsyncMock())
        contract.w3.eth.block_number = 510

        await listener.poll_for_events(AsyncMock())

        contract.events.ConsensusReached.get_logs.assert_called_with(from_block=501, to_block=510)

    @pytest.mark.asyncio
    async def test_catch_up_after_outage_uses_bounded_ranges(self, listener, contract):
        await listener.poll_for_events(AsyncMock())
        contract.w3.eth.block_number = 750
        contract.events.OperationCreated.get_logs.reset_mock()
        contract.events.OperationCreated.get_logs.return_value = []
        contract.events.ConsensusReached.get_logs.return_value = []

        await listener.poll_for_events(AsyncMock())

        ranges = [
            (c.kwargs["from_block"], c.kwargs["to_block"])
            for c in contract.events.OperationCreated.get_logs.call_args_list
        ]
        assert ranges == [(501, 600), (601, 700), (701, 750)]
        assert listener.last_processed_block == 750

    @pytest.mark.asyncio
    async def test_failed_range_keeps_earlier_progress(self, listener, contract):
        await listener.poll_for_events(AsyncMock())
        contract.w3.eth.block_number = 750
        contract.events.ConsensusReached.get_logs.return_value = []
        contract.events.OperationCreated.get_logs.side_effect = [
            [log("OperationCreated", 550, 0)],
            ConnectionError("rpc down"),
        ]
        callback = AsyncMock()

        assert await listener.poll_for_events(callback) == 1
        assert listener.last_processed_block == 600
        callback.assert_awaited_once()

        contract.events.OperationCreated.get_logs.side_effect = None
        contract.events.OperationCreated.get_logs.return_value = []
        contract.events.OperationCreated.get_logs.reset_mock()
        await listener.poll_for_events(AsyncMock())

        ranges = [
            (c.kwargs["from_block"], c.kwargs["to_block"])
            for c in contract.events.OperationCreated.get_logs.call_args_list
        ]
        assert ranges == [(601, 700), (701, 750)]
        assert listener.last_processed_block == 750

    @pytest.mark.asyncio
    async def test_rpc_error_does_not_advance(self, listener, contract):
        contract.events.OperationCreated.get_logs.side_effect = ConnectionError("rpc down")

        assert await listener.poll_for_events(AsyncMock()) == 0
        assert listener.last_processed_block is None

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_delivery(self, listener):
        callback = AsyncMock(side_effect=[RuntimeError("bad event"), None, None])

        assert await listener.poll_for_events(callback) == 3
        assert callback.await_count == 3

    @pytest.mark.asyncio
    async def test_start_polling_runs_tick_hook(self, listener):
        ticks = 0

        async def on_tick():
            nonlocal ticks
            ticks += 1
            if ticks == 2:
                listener.stop()

        await listener.start_polling(AsyncMock(), interval=0, on_tick=on_tick)

        assert ticks == 2
        assert not listener.is_running
