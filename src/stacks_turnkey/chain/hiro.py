"""Hiro API client for Stacks chain reads and broadcast.

Free public API; no authentication required for moderate usage.
Docs: https://docs.hiro.so/stacks/api
"""

import logging
from typing import Any, Optional, Union

import httpx

from stacks_turnkey.stacks.network import StacksNetwork, get_network
from stacks_turnkey.stacks.transactions import StacksTransaction

logger = logging.getLogger(__name__)


class ChainAPIError(Exception):
    """Raised when the Stacks API returns an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class BroadcastError(ChainAPIError):
    """Raised when the node rejects a transaction."""

    def __init__(self, reason: str, txid: Optional[str] = None, reason_data: Any = None,
                 status_code: Optional[int] = None, body: str = ""):
        self.reason = reason
        self.txid = txid
        self.reason_data = reason_data
        super().__init__(f"Transaction {txid} rejected: {reason}", status_code, body)


class HiroClient:
    """Stacks chain reads (balance, nonce, history, fees) and broadcast."""

    def __init__(
        self,
        network: Union[str, StacksNetwork] = "testnet",
        api_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Hiro client.

        Args:
            network: "mainnet", "testnet" or a StacksNetwork
            api_url: Override the network's default API URL
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.network = get_network(network, api_url)
        self.base_url = self.network.api_url
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def _get(self, path: str, params: Optional[dict] = None) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.get(path, params=params)
        except httpx.HTTPError as e:
            raise ChainAPIError(f"Request to {path} failed: {e}") from e

        if response.is_error:
            raise ChainAPIError(
                f"HTTP error! status: {response.status_code}, message: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    @staticmethod
    def _json_object(response: httpx.Response) -> dict:
        """Decode a response body that must be a JSON object."""
        try:
            data = response.json()
        except ValueError as e:
            raise ChainAPIError(
                f"Invalid JSON in response from {response.request.url.path}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        if not isinstance(data, dict):
            raise ChainAPIError(
                f"Expected a JSON object from {response.request.url.path}",
                status_code=response.status_code,
                body=response.text,
            )
        return data

    @staticmethod
    def _to_int(value: Any, field: str, response: httpx.Response) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ChainAPIError(f"{field} field missing or invalid in response", body=response.text)
        try:
            return int(value)
        except ValueError as e:
            raise ChainAPIError(f"Invalid {field.lower()} in response: {value!r}",
                                body=response.text) from e

    async def get_balance(self, address: str) -> int:
        """Get the STX balance (micro-STX) of an address, including unanchored txs."""
        response = await self._get(
            f"/extended/v1/address/{address}/balances", params={"unanchored": "true"}
        )
        data = self._json_object(response)

        stx = data.get("stx")
        if isinstance(stx, dict) and "balance" in stx:
            return self._to_int(stx["balance"], "Balance", response)
        if "balance" in data:
            return self._to_int(data["balance"], "Balance", response)

        raise ChainAPIError("Balance field missing in response", body=response.text)

    async def get_nonce(self, address: str) -> int:
        """Get the next nonce for an address."""
        response = await self._get(f"/v2/accounts/{address}", params={"proof": "0"})
        data = self._json_object(response)
        return self._to_int(data.get("nonce"), "Nonce", response)

    async def get_transactions(self, address: str) -> list:
        """Get recent transactions for an address."""
        response = await self._get(f"/extended/v2/addresses/{address}/transactions")
        data = self._json_object(response)

        results = data.get("results")
        if not isinstance(results, list):
            raise ChainAPIError("Transactions field missing or invalid in response",
                                body=response.text)
        return results

    async def get_fee_rate(self) -> int:
        """Get the current fee rate (micro-STX per byte) for STX transfers."""
        response = await self._get("/v2/fees/transfer")
        try:
            return int(response.text.strip().strip('"'))
        except ValueError as e:
            raise ChainAPIError(f"Invalid fee rate response: {response.text}",
                                body=response.text) from e

    async def broadcast_transaction(self, transaction: StacksTransaction) -> dict:
        """Broadcast a signed transaction.

        Returns:
            {"txid": "..."} on acceptance

        Raises:
            BroadcastError: If the node rejects the transaction
            ChainAPIError: On other HTTP failures
        """
        client = await self._get_client()
        try:
            response = await client.post(
                "/v2/transactions",
                content=transaction.serialize(),
                headers={"Content-Type": "application/octet-stream"},
            )
        except httpx.HTTPError as e:
            raise ChainAPIError(f"Broadcast request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_success:
            txid = data if isinstance(data, str) else response.text.strip().strip('"')
            logger.info(f"Stacks transaction broadcast: {txid}")
            return {"txid": txid}

        if isinstance(data, dict) and "error" in data:
            logger.error(f"Broadcast rejected: {data.get('reason')} - {data.get('error')}")
            raise BroadcastError(
                reason=data.get("reason") or data["error"],
                txid=data.get("txid"),
                reason_data=data.get("reason_data"),
                status_code=response.status_code,
                body=response.text,
            )

        raise ChainAPIError(
            f"Broadcast failed: {response.status_code} - {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
