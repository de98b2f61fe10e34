"""
Read-only block reference clients for the three chains.

Every client returns a ``ChainReference`` describing the chain's current head,
which the proof generator binds into the commitment.
"""

import asyncio
import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
from web3 import Web3

from ..exceptions import ChainClientError
from ..models import ChainReference, ChainRole

logger = logging.getLogger(__name__)


class JsonRpcClient(ABC):
    """Minimal JSON-RPC 2.0 over HTTP."""

    chain: ChainRole

    def __init__(self, url: str, timeout: float = 30.0, headers: dict[str, str] | None = None) -> None:
        if not url:
            raise ValueError(f"{self.chain.label} endpoint URL is required")
        self.url = url
        self.timeout = timeout
        self.headers = headers or {}
        self._request_id = 0

    async def _rpc(self, method: str, params: Any) -> Any:
        """
        Call ``method`` and return its ``result``.

        Raises:
            ChainClientError: On transport errors, HTTP errors or RPC errors
        """
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}

        try:
            async with httpx.AsyncClient(headers=self.headers) as client:
                response: httpx.Response = await client.post(self.url, json=payload, timeout=self.timeout)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as e:
            raise ChainClientError(self.chain.label, f"{method} request failed: {e}") from e
        except ValueError as e:
            raise ChainClientError(self.chain.label, f"{method} returned invalid JSON: {e}") from e

        if body.get("error"):
            raise ChainClientError(self.chain.label, f"{method} error: {body['error']}")
        if "result" not in body:
            raise ChainClientError(self.chain.label, f"{method} response missing result")
        return body["result"]

    @abstractmethod
    async def get_reference(self) -> ChainReference:
        """Current head of the chain."""


class SolanaClient(JsonRpcClient):
    """Slot-based ledger client (Solana JSON-RPC)."""

    chain = ChainRole.SOLANA

    def __init__(self, url: str, timeout: float = 30.0, commitment: str = "confirmed") -> None:
        super().__init__(url, timeout)
        self.commitment = commitment

    async def get_slot(self) -> int:
        return int(await self._rpc("getSlot", [{"commitment": self.commitment}]))

    async def get_block_time(self, slot: int) -> int | None:
        """Estimated production time of ``slot``; None if the node has no record."""
        try:
            result = await self._rpc("getBlockTime", [slot])
        except ChainClientError as e:
            # Skipped or pruned slots answer with an RPC error
            logger.debug(f"No block time for slot {slot}: {e}")
            return None
        return int(result) if result is not None else None

    async def get_reference(self) -> ChainReference:
        """
        Latest blockhash and the slot it was observed at.

        Returns:
            ChainReference with the base58 blockhash as ``block_ref``
        """
        result = await self._rpc("getLatestBlockhash", [{"commitment": self.commitment}])
        try:
            slot = int(result["context"]["slot"])
            blockhash = result["value"]["blockhash"]
        except (KeyError, TypeError, ValueError) as e:
            raise ChainClientError(self.chain.label, f"Malformed getLatestBlockhash result: {result}") from e

        block_time = await self.get_block_time(slot)
        return ChainReference(
            chain_id=self.chain,
            block_ref=blockhash,
            block_number=slot,
            timestamp=block_time if block_time is not None else int(time.time()),
        )


class TonClient(JsonRpcClient):
    """Seqno-based ledger client (TON Center v2 JSON-RPC)."""

    chain = ChainRole.TON

    def __init__(self, url: str, timeout: float = 30.0, api_key: str | None = None) -> None:
        super().__init__(url, timeout, headers={"X-API-Key": api_key} if api_key else None)

    async def get_masterchain_info(self) -> dict[str, Any]:
        return await self._rpc("getMasterchainInfo", {})

    async def get_reference(self) -> ChainReference:
        """
        Last masterchain block root hash and seqno.

        Returns:
            ChainReference with the 0x-prefixed hex root hash as ``block_ref``
        """
        info = await self.get_masterchain_info()
        try:
            last = info["last"]
            seqno = int(last["seqno"])
            root_hash = base64.b64decode(last["root_hash"])
        except (KeyError, TypeError, ValueError) as e:
            raise ChainClientError(self.chain.label, f"Malformed getMasterchainInfo result: {info}") from e

        return ChainReference(
            chain_id=self.chain,
            block_ref="0x" + root_hash.hex(),
            block_number=seqno,
            timestamp=int(time.time()),
        )


class HomeChainClient:
    """Block reader for the EVM home chain."""

    chain = ChainRole.ARBITRUM

    def __init__(self, w3: Web3) -> None:
        self.w3 = w3

    async def get_reference(self, block_number: int | None = None) -> ChainReference:
        """
        Hash and timestamp of ``block_number`` (latest block if None).

        The web3 call is blocking, so it runs in a worker thread.
        """
        block_id = block_number if block_number is not None else "latest"
        try:
            block = await asyncio.to_thread(self.w3.eth.get_block, block_id)
        except Exception as e:
            raise ChainClientError(self.chain.label, f"Could not fetch block {block_id}: {e}") from e

        if not block or block.get("hash") is None:
            raise ChainClientError(self.chain.label, f"Block {block_id} not found")

        return ChainReference(
            chain_id=self.chain,
            block_ref=Web3.to_hex(block["hash"]),
            block_number=int(block["number"]),
            timestamp=int(block["timestamp"]),
        )
