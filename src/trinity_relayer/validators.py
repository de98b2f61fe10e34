"""
Signing capabilities for chain roles.

Each chain role gets its own ``ChainValidator`` so key custody can differ per
role without touching proof generation. In local mode all three roles share
the configured private key; in ROFL mode each role gets a key derived by the
ROFL key manager.
"""

import logging
from typing import TYPE_CHECKING, Protocol

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .exceptions import SigningError
from .models import ChainRole

if TYPE_CHECKING:
    from .utils.rofl_utility import RoflUtility

logger = logging.getLogger(__name__)

ROFL_KEY_PREFIX = "trinity-validator"


class ChainValidator(Protocol):
    """Capability to sign proof digests for one chain role."""

    @property
    def address(self) -> str: ...

    def sign_digest(self, digest: bytes) -> str: ...


class LocalChainValidator:
    """ChainValidator backed by an in-process secp256k1 key."""

    def __init__(self, role: ChainRole, account: LocalAccount) -> None:
        self.role = role
        self._account = account

    @classmethod
    def from_key(cls, role: ChainRole, private_key: str) -> "LocalChainValidator":
        return cls(role, Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self._account.address

    def sign_digest(self, digest: bytes) -> str:
        """
        Sign a 32 byte digest as an EIP-191 personal message.

        Args:
            digest: keccak256 hash of the canonical proof payload

        Returns:
            0x-prefixed 65 byte signature

        Raises:
            SigningError: If the digest is malformed or signing fails
        """
        if len(digest) != 32:
            raise SigningError(f"Expected a 32 byte digest, got {len(digest)} bytes")
        try:
            signed = self._account.sign_message(encode_defunct(primitive=digest))
        except Exception as e:
            raise SigningError(f"{self.role.label} validator failed to sign: {e}") from e
        return Web3.to_hex(signed.signature)


def validators_from_key(private_key: str, roles: tuple[ChainRole, ...] = tuple(ChainRole)) -> dict[ChainRole, ChainValidator]:
    """Build one validator per role, all sharing ``private_key``."""
    if not private_key:
        raise SigningError("No validator private key configured")
    account = Account.from_key(private_key)
    return {role: LocalChainValidator(role, account) for role in roles}


async def validators_from_rofl(
    rofl_util: "RoflUtility",
    roles: tuple[ChainRole, ...] = tuple(ChainRole),
) -> dict[ChainRole, ChainValidator]:
    """Fetch an independent ROFL-managed key for every role."""
    validators: dict[ChainRole, ChainValidator] = {}
    for role in roles:
        key_id = f"{ROFL_KEY_PREFIX}-{role.name.lower()}"
        try:
            secret = await rofl_util.fetch_key(key_id)
        except Exception as e:
            raise SigningError(f"Could not fetch ROFL key {key_id}: {e}") from e
        validators[role] = LocalChainValidator.from_key(role, secret)
        logger.info(f"{role.label} validator key loaded from ROFL ({validators[role].address})")
    return validators
