"""Submit signed transactions to the node."""

from __future__ import annotations
import logging

from tapsign.errors import BroadcastRejected, RpcResponseError
from tapsign.rpc import RpcClient, parse_data
from tapsign.transaction import SignedTransaction

logger = logging.getLogger(__name__)


class Broadcaster:
    """Sends one eth_sendRawTransaction per signed transaction, no retries."""

    def __init__(self, rpc: RpcClient):
        self._rpc = rpc

    async def broadcast(self, signed_tx: SignedTransaction) -> str:
        raw_hex = signed_tx.raw_hex
        logger.info("Broadcasting %s (%d bytes)", signed_tx.tx_hash, len(signed_tx.encode()))
        try:
            result = await self._rpc.request("eth_sendRawTransaction", [raw_hex])
        except RpcResponseError as e:
            logger.error("Transaction broadcast rejected: %s", e.message)
            raise BroadcastRejected(e.message, code=e.code) from e

        tx_id = parse_data("eth_sendRawTransaction", result)
        if tx_id.lower() != signed_tx.tx_hash.lower():
            logger.warning(
                "Node reported tx hash %s, computed %s", tx_id, signed_tx.tx_hash
            )
        logger.info("Transaction broadcast success: %s", tx_id)
        return tx_id
