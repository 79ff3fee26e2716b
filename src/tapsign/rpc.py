"""Minimal async JSON-RPC client.

The client only unwraps responses: ``result`` is returned, ``error`` is
raised. Transport policy (timeouts, retries) belongs to the transport,
which defaults to web3's AsyncHTTPProvider.
"""

from __future__ import annotations
import logging
from typing import Any, Awaitable, Callable, Optional

from web3 import AsyncHTTPProvider
from web3.types import RPCEndpoint

from tapsign.errors import RpcResponseError, RpcUnavailable

logger = logging.getLogger(__name__)

Transport = Callable[[str, list], Awaitable[dict]]


def parse_quantity(method: str, result: Any) -> int:
    """Parse a JSON-RPC hex quantity ("0x1a") into a non-negative int."""
    if not isinstance(result, str) or not result.lower().startswith("0x"):
        raise RpcUnavailable(f"{method} returned a non-quantity result: {result!r}")
    try:
        return int(result, 16)
    except ValueError as e:
        raise RpcUnavailable(f"{method} returned unparseable quantity {result!r}") from e


def parse_data(method: str, result: Any) -> str:
    """Check a JSON-RPC hex data result ("0x...") and return it unchanged."""
    if not isinstance(result, str) or not result.lower().startswith("0x"):
        raise RpcUnavailable(f"{method} returned a non-hex result: {result!r}")
    try:
        bytes.fromhex(result[2:])
    except ValueError as e:
        raise RpcUnavailable(f"{method} returned unparseable data {result!r}") from e
    return result


class RpcClient:
    """Sends JSON-RPC calls to a node and returns the ``result`` field."""

    def __init__(self, rpc_url: Optional[str] = None,
                 transport: Optional[Transport] = None):
        self._provider: Optional[AsyncHTTPProvider] = None
        if transport is None:
            if not rpc_url:
                raise ValueError("Either rpc_url or transport is required")
            self._provider = AsyncHTTPProvider(rpc_url)
            transport = self._provider_request
        self._transport = transport

    async def _provider_request(self, method: str, params: list) -> dict:
        return await self._provider.make_request(RPCEndpoint(method), params)

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        """Issue one call. Raises RpcResponseError or RpcUnavailable."""
        params = list(params or [])
        logger.debug("RPC %s %s", method, params)
        try:
            response = await self._transport(method, params)
        except Exception as e:
            raise RpcUnavailable(f"{method} transport failure: {e}") from e

        if not isinstance(response, dict):
            raise RpcUnavailable(f"{method} returned a malformed response: {response!r}")

        error = response.get("error")
        if error is not None:
            if isinstance(error, dict):
                code = error.get("code")
                message = str(error.get("message", error))
            else:
                code = None
                message = str(error)
            logger.debug("RPC %s error %s: %s", method, code, message)
            raise RpcResponseError(method, code, message)

        if "result" not in response:
            raise RpcUnavailable(f"{method} response has neither result nor error")
        return response["result"]

    async def request_quantity(self, method: str, params: Optional[list] = None) -> int:
        return parse_quantity(method, await self.request(method, params))

    async def close(self) -> None:
        if self._provider is not None:
            await self._provider.disconnect()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
