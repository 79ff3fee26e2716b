"""Assemble unsigned EIP-1559 transactions from live network state."""

from __future__ import annotations
import logging
from typing import Optional, Union

from web3 import Web3

from tapsign.address import bytes_to_address
from tapsign.constants import DEFAULT_PRIORITY_FEE_WEI
from tapsign.errors import ChainIdMismatch
from tapsign.rpc import RpcClient
from tapsign.transaction import UnsignedTransactionFields

logger = logging.getLogger(__name__)


def _checksum(address: Union[str, bytes]) -> str:
    if isinstance(address, (bytes, bytearray)):
        return bytes_to_address(bytes(address))
    return Web3.to_checksum_address(address)


class TransactionBuilder:
    """Fetches chain id, gas, nonce and fee from the node and builds a tx.

    Calls are issued one after another with no retries; any failure
    propagates as RpcUnavailable and no transaction is returned.
    """

    def __init__(self, rpc: RpcClient,
                 priority_fee: int = DEFAULT_PRIORITY_FEE_WEI,
                 expected_chain_id: Optional[int] = None):
        if priority_fee <= 0:
            raise ValueError("priority_fee must be a positive number of wei")
        self._rpc = rpc
        self._priority_fee = priority_fee
        self._expected_chain_id = expected_chain_id

    async def build_transaction(self, recipient: Union[str, bytes],
                                sender: Union[str, bytes],
                                payload: bytes = b"",
                                value: int = 0) -> UnsignedTransactionFields:
        to_address = _checksum(recipient)
        from_address = _checksum(sender)
        if value < 0:
            raise ValueError("value must be non-negative")

        chain_id = await self._rpc.request_quantity("eth_chainId")
        if self._expected_chain_id is not None and chain_id != self._expected_chain_id:
            raise ChainIdMismatch(self._expected_chain_id, chain_id)

        call = {
            "from": from_address,
            "to": to_address,
            "value": hex(value),
            "data": "0x" + bytes(payload).hex(),
        }
        gas_limit = await self._rpc.request_quantity("eth_estimateGas", [call, "latest"])
        nonce = await self._rpc.request_quantity(
            "eth_getTransactionCount", [from_address, "latest"]
        )
        gas_price = await self._rpc.request_quantity("eth_gasPrice")

        logger.info(
            "Built tx: chain=%d from=%s to=%s nonce=%d gas=%d maxFee=%d tip=%d",
            chain_id, from_address, to_address, nonce, gas_limit,
            gas_price, self._priority_fee,
        )
        if gas_price < self._priority_fee:
            logger.warning(
                "Gas price %d is below the priority fee floor %d",
                gas_price, self._priority_fee,
            )

        return UnsignedTransactionFields(
            chain_id=chain_id,
            to=to_address,
            value=value,
            data=bytes(payload),
            gas_limit=gas_limit,
            nonce=nonce,
            max_fee_per_gas=gas_price,
            max_priority_fee_per_gas=self._priority_fee,
        )
