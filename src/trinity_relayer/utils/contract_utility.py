import json
from pathlib import Path
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.middleware import SignAndSendRawMiddlewareBuilder

ABI_DIR = Path(__file__).resolve().parent.parent / "abi"


class ContractUtility:
    """
    Home chain connection for the consensus verifier.

    With a secret the Web3 instance signs and sends transactions itself (local
    mode). Without one it only reads state and builds unsigned transactions,
    which appd signs in ROFL mode.
    """

    def __init__(self, rpc_url: str, secret: str = "", request_timeout: int = 30) -> None:
        """
        Args:
            rpc_url: Arbitrum RPC endpoint (required)
            secret: Validator private key; omit for read-only use
            request_timeout: HTTP timeout for every RPC call, in seconds
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.account: LocalAccount | None = None
        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))

        if secret:
            self._add_signing_middleware(secret)

    def _add_signing_middleware(self, secret: str) -> None:
        if not secret:
            raise ValueError("Private key is required for signing transactions")

        account: LocalAccount = Account.from_key(secret)
        self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
        self.w3.eth.default_account = account.address
        self.account = account

    @property
    def sender_address(self) -> str | None:
        """Address transactions are sent from, None when read-only."""
        return self.account.address if self.account else None

    def get_contract_abi(self, contract_name: str) -> list[dict[str, Any]]:
        """Load ``abi/<contract_name>.json`` shipped inside the package.

        Raises:
            FileNotFoundError: If no ABI with that name is packaged
        """
        with (ABI_DIR / f"{contract_name}.json").open() as file:
            return json.load(file)["abi"]

    def get_contract(self, contract_name: str, address: str) -> Contract:
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name),
        )
