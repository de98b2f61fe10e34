"""Periodic health reporting for the relayer."""

import asyncio
import logging

from .models import RelayerStats
from .registry import OperationRegistry

logger = logging.getLogger(__name__)


def format_uptime(seconds: float) -> str:
    """Render seconds as ``Xh Ym``."""
    minutes = int(seconds // 60)
    return f"{minutes // 60}h {minutes % 60}m"


class HealthMonitor:
    """Logs uptime and counters on a fixed interval. Read-only."""

    def __init__(self, stats: RelayerStats, registry: OperationRegistry, interval: float = 60) -> None:
        self.stats = stats
        self.registry = registry
        self.interval = interval
        self.running = False

    def report(self) -> str:
        """Log one health line and return it."""
        line = (
            f"Health: uptime={format_uptime(self.stats.uptime)}, "
            f"Operations={self.stats.operations_processed}, "
            f"Proofs={self.stats.proofs_submitted}, "
            f"Consensus={self.stats.consensus_achieved}, "
            f"Failed={self.stats.failed_submissions}, "
            f"Duplicates={self.stats.duplicate_submissions}, "
            f"Pending={len(self.registry.pending())}, "
            f"InFlight={self.registry.in_flight_count}"
        )
        logger.info(line)
        return line

    async def run(self) -> None:
        """Log status every ``interval`` seconds while running."""
        self.running = True
        try:
            while self.running:
                await asyncio.sleep(self.interval)
                if self.running:
                    self.report()
        finally:
            self.running = False

    def stop(self) -> None:
        self.running = False
