import asyncio
import itertools
import logging
from typing import Any, List

import httpx

from ..errors import ChainRejected
from ..schemas.submission_schema import TxResult
from .commit_service import keccak256

logger = logging.getLogger(__name__)

SUBMIT_SIGNATURE = "submitQuiz(bytes32)"


def function_selector(signature: str) -> bytes:
    return keccak256(signature.encode("ascii"))[:4]


def encode_submit_call(commitment: bytes) -> str:
    if len(commitment) != 32:
        raise ValueError("commitment must be exactly 32 bytes")
    return "0x" + (function_selector(SUBMIT_SIGNATURE) + commitment).hex()


class JsonRpcClient:
    def __init__(self, url: str, client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def call(self, method: str, params: List[Any] | None = None) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            resp = await self._client.post(self.url, json=body)
        except httpx.HTTPError as e:
            raise ChainRejected(f"{method} failed: {e}") from e
        if resp.status_code != 200:
            raise ChainRejected(f"{method} failed with HTTP {resp.status_code}: {resp.text}")
        try:
            data = resp.json()
        except ValueError as e:
            raise ChainRejected(f"{method} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise ChainRejected(f"{method} returned an unexpected body")
        err = data.get("error")
        if err:
            if isinstance(err, dict):
                raise ChainRejected(f"{method} error {err.get('code')}: {err.get('message')}")
            raise ChainRejected(f"{method} error: {err}")
        return data.get("result")

    async def aclose(self) -> None:
        await self._client.aclose()


class RpcWallet:
    """Wallet capability backed by the node's unlocked accounts."""

    def __init__(self, rpc: JsonRpcClient) -> None:
        self._rpc = rpc
        self.address: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.address is not None

    async def connect(self) -> bool:
        try:
            accounts = await self._rpc.call("eth_accounts")
        except ChainRejected as e:
            logger.warning("wallet connection failed: %s", e.message)
            self.address = None
            return False
        self.address = accounts[0] if accounts else None
        return self.is_connected


class DisconnectedWallet:
    """Used when no chain endpoint is configured."""

    address = None
    is_connected = False


class RpcChainClient:
    def __init__(self, rpc: JsonRpcClient, wallet: RpcWallet,
                 poll_interval: float = 1.0, receipt_timeout: float = 120.0) -> None:
        self._rpc = rpc
        self._wallet = wallet
        self._poll_interval = poll_interval
        self._receipt_timeout = receipt_timeout

    async def submit_commitment(self, commitment: bytes, contract_address: str) -> TxResult:
        if not self._wallet.is_connected:
            raise ChainRejected("no account available to send the transaction")
        tx = {"from": self._wallet.address, "to": contract_address, "data": encode_submit_call(commitment)}
        tx_hash = await self._rpc.call("eth_sendTransaction", [tx])
        logger.info("commitment sent tx_hash=%s", tx_hash)

        receipt = await self._wait_for_receipt(tx_hash)
        block = receipt.get("blockNumber")
        accepted = receipt.get("status") == "0x1"
        result = TxResult(tx_hash=tx_hash, block_number=int(block, 16) if block else None, accepted=accepted)
        if not accepted:
            raise ChainRejected(f"transaction {tx_hash} reverted")
        return result

    async def _wait_for_receipt(self, tx_hash: str) -> dict:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._receipt_timeout
        while True:
            receipt = await self._rpc.call("eth_getTransactionReceipt", [tx_hash])
            if receipt:
                if not isinstance(receipt, dict):
                    raise ChainRejected(f"malformed receipt for {tx_hash}")
                return receipt
            if loop.time() >= deadline:
                raise ChainRejected(f"no receipt for {tx_hash} after {self._receipt_timeout}s")
            await asyncio.sleep(self._poll_interval)
