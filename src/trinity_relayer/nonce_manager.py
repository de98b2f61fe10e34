"""
Validator nonce management for the Trinity relayer.

Nonces are seeded from the consensus contract per validator identity and then
issued locally, strictly increasing per chain role.
"""

import logging
import threading
from collections.abc import Awaitable, Callable, Iterable

from .exceptions import NonceSyncError
from .models import ChainRole

logger = logging.getLogger(__name__)


class NonceManager:
    """Issues strictly increasing, never reused nonces per chain role."""

    def __init__(self, roles: Iterable[ChainRole] = tuple(ChainRole)) -> None:
        self._roles = tuple(roles)
        self._nonces: dict[ChainRole, int] = {}
        self._lock = threading.Lock()

    async def initialize(
        self,
        fetch_onchain_nonce: Callable[[], Awaitable[int]],
        roles: Iterable[ChainRole] | None = None,
    ) -> int:
        """
        Seed roles from the authoritative on-chain nonce of one validator.

        Roles sharing a validator identity share its on-chain counter, so a
        single read seeds all of them.

        Args:
            fetch_onchain_nonce: Coroutine factory returning the contract's
                current nonce for the validator
            roles: Roles signed by that validator (every role if omitted)

        Returns:
            The seeded nonce value

        Raises:
            NonceSyncError: If the contract could not be queried
        """
        roles = self._roles if roles is None else tuple(roles)
        try:
            onchain = int(await fetch_onchain_nonce())
        except Exception as e:
            raise NonceSyncError(f"Could not read validator nonce from contract: {e}") from e

        for role in roles:
            self.seed_role(role, onchain)
        logger.info(f"Nonces initialized at {onchain} for {', '.join(r.label for r in roles)}")
        return onchain

    def seed(self, value: int) -> None:
        """Set every role to ``value`` without moving any role backwards."""
        for role in self._roles:
            self.seed_role(role, value)

    def seed_role(self, role: ChainRole, value: int) -> None:
        """Set ``role`` to ``value`` unless it already issued past it."""
        if value < 0:
            raise ValueError(f"Nonce must be non-negative, got {value}")
        with self._lock:
            self._nonces[role] = max(self._nonces.get(role, 0), value)

    def get_and_increment(self, role: ChainRole) -> int:
        """Return the next nonce for ``role`` and advance the counter."""
        with self._lock:
            if role not in self._nonces:
                raise NonceSyncError(f"Nonce for {role.label} requested before initialization")
            current = self._nonces[role]
            self._nonces[role] = current + 1
            return current

    def snapshot(self) -> dict[ChainRole, int]:
        """Next nonce per seeded role."""
        with self._lock:
            return dict(self._nonces)
