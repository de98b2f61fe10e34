"""
Polling-based event listener utility for blockchain event monitoring.

"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from web3.contract import Contract
from web3.types import EventData


class PollingEventListener:
    """
    Utility for polling one contract's events via HTTP RPC.

    Every tick fetches logs for all configured events over the same block
    range and delivers them in chain order.
    """

    def __init__(
        self,
        contract: Contract,
        event_names: Sequence[str],
        lookback_blocks: int = 100
    ):
        """
        Initialize the polling event listener.

        Args:
            contract: Web3 contract instance to monitor
            event_names: Names of the events to listen for
            lookback_blocks: Number of blocks to look back on startup
        """
        self.contract = contract
        self.w3 = contract.w3
        self.contract_address = contract.address
        self.event_names = tuple(event_names)
        self.lookback_blocks = lookback_blocks

        self.event_objs = {}
        for event_name in self.event_names:
            if not hasattr(self.contract.events, event_name):
                raise ValueError(f"Event {event_name} not found in contract ABI")
            self.event_objs[event_name] = getattr(self.contract.events, event_name)

        # State tracking
        self.last_processed_block: int | None = None
        self.is_running = False

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def _fetch_logs(self, from_block: int, to_block: int) -> list[EventData]:
        events: list[EventData] = []
        for event_obj in self.event_objs.values():
            events.extend(event_obj.get_logs(from_block=from_block, to_block=to_block))
        events.sort(key=lambda e: (e.get('blockNumber', 0), e.get('logIndex', 0)))
        return events

    async def _deliver(self, events: list[EventData], callback: Callable[[EventData], Awaitable[Any]]) -> None:
        for event in events:
            try:
                await callback(event)
            except Exception as e:
                self.logger.error(f"Error handling {event.get('event')} event: {e}", exc_info=True)

    async def poll_for_events(self, callback: Callable[[EventData], Awaitable[Any]]) -> int:
        """
        Poll for new events since last processed block.

        The first successful call looks back ``lookback_blocks`` blocks to
        catch up on events emitted while the relayer was down. Logs are
        requested in ranges of at most ``lookback_blocks`` blocks, and each
        range is marked processed once its events are delivered, so a failed
        request resumes from that range on the next poll.

        Args:
            callback: Async function to call for each new event

        Returns:
            Number of events delivered
        """
        try:
            current_block = await asyncio.to_thread(lambda: self.w3.eth.block_number)
        except Exception as e:
            self.logger.error(f"Error polling for events: {e}")
            return 0

        if self.last_processed_block is None:
            from_block = max(0, current_block - self.lookback_blocks + 1)
            self.logger.info(
                f"Initial sync for {', '.join(self.event_names)} "
                f"from block {from_block} to {current_block}"
            )
        elif current_block <= self.last_processed_block:
            return 0
        else:
            from_block = self.last_processed_block + 1

        delivered = 0
        while from_block <= current_block:
            to_block = min(from_block + self.lookback_blocks - 1, current_block)
            try:
                events = await asyncio.to_thread(self._fetch_logs, from_block, to_block)
            except Exception as e:
                self.logger.error(f"Error polling for events in blocks {from_block}-{to_block}: {e}")
                # Don't update last_processed_block on error
                return delivered

            if events:
                self.logger.info(f"Found {len(events)} new events in blocks {from_block}-{to_block}")
                await self._deliver(events, callback)
                delivered += len(events)

            self.last_processed_block = to_block
            from_block = to_block + 1

        return delivered

    async def start_polling(
        self,
        callback: Callable[[EventData], Awaitable[Any]],
        interval: float = 4,
        on_tick: Callable[[], Awaitable[Any]] | None = None
    ) -> None:
        """
        Start polling for events at the specified interval.

        Args:
            callback: Async function to call when events are received
            interval: Polling interval in seconds
            on_tick: Optional async function awaited after every poll
        """
        if self.is_running:
            self.logger.warning("Polling already running")
            return

        self.is_running = True
        self.logger.info(
            f"Starting polling for {', '.join(self.event_names)} events "
            f"on {self.contract_address} every {interval} seconds"
        )

        try:
            while self.is_running:
                await self.poll_for_events(callback)
                if on_tick is not None:
                    try:
                        await on_tick()
                    except Exception as e:
                        self.logger.error(f"Error in polling tick hook: {e}", exc_info=True)
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            self.logger.info("Polling cancelled")
            raise
        finally:
            self.is_running = False

    def stop(self) -> None:
        """Stop the polling loop."""
        self.logger.info(f"Stopping polling for {', '.join(self.event_names)} events")
        self.is_running = False

