#!/usr/bin/env python3
"""Tests for the chain reference clients."""

import base64
import unittest
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import httpx

from trinity_relayer.exceptions import ChainClientError
from trinity_relayer.models import ChainRole
from trinity_relayer.utils.chain_clients import HomeChainClient, JsonRpcClient, SolanaClient, TonClient


def rpc_response(body: dict) -> MagicMock:
    response = MagicMock()
    response.json = MagicMock(return_value=body)
    response.raise_for_status = MagicMock()
    return response


class TestJsonRpcClient(unittest.TestCase):
    """Test cases for the JSON-RPC base client."""

    def test_base_requires_get_reference(self):
        with self.assertRaises(TypeError):
            JsonRpcClient("https://rpc.test")

    def test_subclass_without_get_reference(self):
        class HeadlessClient(JsonRpcClient):
            chain = ChainRole.TON

        with self.assertRaises(TypeError):
            HeadlessClient("https://rpc.test")


class TestSolanaClient(unittest.IsolatedAsyncioTestCase):
    """Test cases for SolanaClient."""

    def setUp(self):
        self.client = SolanaClient("https://api.devnet.solana.com", timeout=10)

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            SolanaClient("")

    @patch('trinity_relayer.utils.chain_clients.httpx.AsyncClient')
    async def test_get_reference(self, mock_client_class):
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(side_effect=[
            rpc_response({
                "jsonrpc": "2.0", "id": 1,
                "result": {
                    "context": {"slot": 250_000_000},
                    "value": {"blockhash": "4sGjMW1sUnHzSxGspuhpqLDx6wiyjNtZAMdL4VZHirAn", "lastValidBlockHeight": 1},
                },
            }),
            rpc_response({"jsonrpc": "2.0", "id": 2, "result": 1_700_000_123}),
        ])
        mock_client_class.return_value.__aenter__.return_value = mock_client

        reference = await self.client.get_reference()

        assert reference.chain_id == ChainRole.SOLANA
        assert reference.block_number == 250_000_000
        assert reference.block_ref == "4sGjMW1sUnHzSxGspuhpqLDx6wiyjNtZAMdL4VZHirAn"
        assert reference.timestamp == 1_700_000_123

        first_call = mock_client.post.call_args_list[0]
        assert first_call[0][0] == "https://api.devnet.solana.com"
        assert first_call[1]["json"]["method"] == "getLatestBlockhash"
        assert first_call[1]["json"]["params"] == [{"commitment": "confirmed"}]
        assert first_call[1]["timeout"] == 10
        assert mock_client.post.call_args_list[1][1]["json"]["params"] == [250_000_000]

    @patch('trinity_relayer.utils.chain_clients.time.time', return_value=1_700_000_999.5)
    @patch('trinity_relayer.utils.chain_clients.httpx.AsyncClient')
    async def test_get_reference_without_block_time(self, mock_client_class, _mock_time):
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(side_effect=[
            rpc_response({"result": {"context": {"slot": 9}, "value": {"blockhash": "abc"}}}),
            rpc_response({"error": {"code": -32009, "message": "Slot 9 was skipped"}}),
        ])
        mock_client_class.return_value.__aenter__.return_value = mock_client

        reference = await self.client.get_reference()

        assert reference.timestamp == 1_700_000_999

    @patch('trinity_relayer.utils.chain_clients.httpx.AsyncClient')
    async def test_get_slot(self, mock_client_class):
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(return_value=rpc_response({"result": 321}))
        mock_client_class.return_value.__aenter__.return_value = mock_client

        assert await self.client.get_slot() == 321

    @patch('trinity_relayer.utils.chain_clients.httpx.AsyncClient')
    async def test_transport_error_is_wrapped(self, mock_client_class):
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(side_effect=httpx.ConnectTimeout("timed out"))
        mock_client_class.return_value.__aenter__.return_value = mock_client

        with self.assertRaises(ChainClientError) as ctx:
            await self.client.get_reference()
        assert ctx.exception.chain == "Solana"

    @patch('trinity_relayer.utils.chain_clients.httpx.AsyncClient')
    async def test_http_status_error_is_wrapped(self, mock_client_class):
        mock_client = AsyncMock()
        response = MagicMock()
        response.raise_for_status = MagicMock(side_effect=httpx.HTTPStatusError(
            "Service unavailable", request=Mock(), response=Mock()
        ))
        mock_client.post = AsyncMock(return_value=response)
        mock_client_class.return_value.__aenter__.return_value = mock_client

        with self.assertRaises(ChainClientError):
            await self.client.get_slot()

    @patch('trinity_relayer.utils.chain_clients.httpx.AsyncClient')
    async def test_malformed_result(self, mock_client_class):
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(return_value=rpc_response({"result": {"value": None}}))
        mock_client_class.return_value.__aenter__.return_value = mock_client

        with self.assertRaises(ChainClientError):
            await self.client.get_reference()


class TestTonClient(unittest.IsolatedAsyncioTestCase):
    """Test cases for TonClient."""

    @patch('trinity_relayer.utils.chain_clients.httpx.AsyncClient')
    async def test_get_reference(self, mock_client_class):
        root_hash = bytes(range(32))
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(return_value=rpc_response({
            "ok": True,
            "result": {
                "@type": "blocks.masterchainInfo",
                "last": {"workchain": -1, "seqno": 31_415_926, "root_hash": base64.b64encode(root_hash).decode()},
            },
        }))
        mock_client_class.return_value.__aenter__.return_value = mock_client

        client = TonClient("https://testnet.toncenter.com/api/v2/jsonRPC", api_key="secret")
        reference = await client.get_reference()

        assert reference.chain_id == ChainRole.TON
        assert reference.block_number == 31_415_926
        assert reference.block_ref == "0x" + root_hash.hex()
        mock_client_class.assert_called_once_with(headers={"X-API-Key": "secret"})
        assert mock_client.post.call_args[1]["json"]["method"] == "getMasterchainInfo"

    def test_no_api_key_header_by_default(self):
        assert TonClient("https://testnet.toncenter.com/api/v2/jsonRPC").headers == {}

    @patch('trinity_relayer.utils.chain_clients.httpx.AsyncClient')
    async def test_rpc_error(self, mock_client_class):
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(return_value=rpc_response({"ok": False, "error": "rate limit", "code": 429}))
        mock_client_class.return_value.__aenter__.return_value = mock_client

        with self.assertRaises(ChainClientError) as ctx:
            await TonClient("https://testnet.toncenter.com/api/v2/jsonRPC").get_reference()
        assert "rate limit" in str(ctx.exception)


class TestHomeChainClient(unittest.IsolatedAsyncioTestCase):
    """Test cases for HomeChainClient."""

    async def test_get_reference_for_block(self):
        w3 = MagicMock()
        w3.eth.get_block = MagicMock(return_value={
            "hash": bytes.fromhex("ab" * 32),
            "number": 1000,
            "timestamp": 1_700_000_000,
        })

        reference = await HomeChainClient(w3).get_reference(1000)

        w3.eth.get_block.assert_called_once_with(1000)
        assert reference.chain_id == ChainRole.ARBITRUM
        assert reference.block_ref == "0x" + "ab" * 32
        assert reference.block_number == 1000

    async def test_latest_block_by_default(self):
        w3 = MagicMock()
        w3.eth.get_block = MagicMock(return_value={"hash": b"\x01" * 32, "number": 5, "timestamp": 1})

        await HomeChainClient(w3).get_reference()

        w3.eth.get_block.assert_called_once_with("latest")

    async def test_rpc_failure_is_wrapped(self):
        w3 = MagicMock()
        w3.eth.get_block = MagicMock(side_effect=ConnectionError("refused"))

        with self.assertRaises(ChainClientError):
            await HomeChainClient(w3).get_reference(1)
