"""
Client for the ROFL application daemon (appd).

In ROFL mode the relayer never holds a raw key file: validator keys are
derived by appd per key id, and proof transactions are signed and submitted
by appd on the relayer's behalf.
"""

import codecs
import json
import logging
from typing import Any

import cbor2
import httpx
from web3.types import TxParams

from ..exceptions import SubmissionError

logger = logging.getLogger(__name__)

KEYS_GENERATE_PATH = '/rofl/v1/keys/generate'
TX_SIGN_SUBMIT_PATH = '/rofl/v1/tx/sign-submit'


class RoflUtility:
    """Key derivation and transaction submission through appd.

    appd listens on a unix socket inside the ROFL container; ``url`` can point
    at another socket path or at an HTTP endpoint for testing.
    """

    ROFL_SOCKET_PATH: str = "/run/rofl-appd.sock"

    def __init__(self, url: str = '', timeout: float = 30.0) -> None:
        self.url: str = url
        self.timeout: float = timeout

    @property
    def _over_http(self) -> bool:
        return self.url.startswith('http')

    def _transport(self) -> httpx.AsyncHTTPTransport | None:
        if self._over_http:
            return None
        socket_path = self.url or self.ROFL_SOCKET_PATH
        logger.debug(f"appd transport: unix socket {socket_path}")
        return httpx.AsyncHTTPTransport(uds=socket_path)

    async def _appd_post(self, path: str, payload: Any) -> Any:
        """POST ``payload`` to appd and return the decoded JSON body.

        Raises:
            httpx.HTTPStatusError: If appd answers with an error status
        """
        base_url = self.url if self._over_http else "http://localhost"
        async with httpx.AsyncClient(transport=self._transport()) as client:
            logger.debug(f"appd POST {path}: {json.dumps(payload)}")
            response: httpx.Response = await client.post(base_url + path, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()

    async def fetch_key(self, key_id: str) -> str:
        """Derive the secp256k1 key named ``key_id``.

        appd derives keys deterministically, so a restarted relayer gets the
        same validator identity back for the same id.
        """
        response: dict[str, Any] = await self._appd_post(
            KEYS_GENERATE_PATH, {"key_id": key_id, "kind": "secp256k1"}
        )
        return response["key"]

    def _decode_cbor_response(self, response_hex: str) -> dict[str, Any]:
        """Decode appd's hex-encoded CBOR call result.

        Non-map results are wrapped as ``{"data": value}``; undecodable input
        yields ``{"error": "decode_failed", "raw": response_hex}``.
        """
        try:
            decoded = cbor2.loads(codecs.decode(response_hex, "hex"))
        except Exception as e:
            logger.error(f"Could not decode appd CBOR result: {e}")
            return {"error": "decode_failed", "raw": response_hex}

        logger.debug(f"appd result: {decoded}")
        if isinstance(decoded, dict):
            return decoded
        return {"data": decoded}

    @staticmethod
    def _eth_tx(tx: TxParams) -> dict[str, Any]:
        return {
            "kind": "eth",
            "data": {
                "gas_limit": tx["gas"],
                "to": tx["to"].removeprefix("0x"),
                "value": tx["value"],
                "data": tx["data"].removeprefix("0x"),
            },
        }

    async def submit_tx(self, tx: TxParams) -> dict[str, Any]:
        """
        Have appd sign ``tx`` with the app key and submit it.

        Args:
            tx: Built transaction with ``to``, ``data``, ``gas`` and ``value``

        Returns:
            ``{"ok": ...}`` carrying appd's success payload

        Raises:
            SubmissionError: If appd reports a failure. A reverted call keeps
                its revert reason in the message, which is how duplicate
                proofs are recognised upstream.
        """
        response = await self._appd_post(TX_SIGN_SUBMIT_PATH, {"tx": self._eth_tx(tx), "encrypt": False})
        result = self._decode_cbor_response(response["data"])

        match result:
            case {"ok": ok}:
                logger.info("Proof transaction accepted by appd")
                return {"ok": ok}
            case {"error": error}:
                logger.debug(f"appd rejected transaction: {error}")
                raise SubmissionError(f"ROFL transaction failed: {error}")
            case _:
                logger.warning(f"Unknown ROFL response format: {result}")
                raise SubmissionError(f"Unknown ROFL response format: {result}")
