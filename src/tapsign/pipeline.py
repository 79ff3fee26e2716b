"""End-to-end signing flow: build -> sign -> resolve -> broadcast.

Each stage is awaited before the next starts, and any failure aborts
the remaining stages. Cancelling before the broadcast is safe; after it
the node may already hold the transaction.
"""

from __future__ import annotations
import logging
from typing import Optional, Union

from tapsign.address import bytes_to_address, derive_address
from tapsign.broadcaster import Broadcaster
from tapsign.builder import TransactionBuilder
from tapsign.constants import DEFAULT_PRIORITY_FEE_WEI
from tapsign.resolver import RecoveryResolver
from tapsign.rpc import RpcClient
from tapsign.signer import HashSigner
from tapsign.transaction import SignedTransaction, WalletDescriptor

logger = logging.getLogger(__name__)


async def sign_transaction(wallet: WalletDescriptor,
                           recipient: Union[str, bytes],
                           payload: bytes,
                           *,
                           rpc: RpcClient,
                           signer: HashSigner,
                           value: int = 0,
                           priority_fee: int = DEFAULT_PRIORITY_FEE_WEI,
                           expected_chain_id: Optional[int] = None) -> SignedTransaction:
    """Build, sign and resolve a transaction without broadcasting it."""
    # Curve is validated here, before any RPC or card traffic.
    sender = derive_address(wallet.public_key, wallet.curve)
    sender_address = bytes_to_address(sender)
    logger.info("Signing as %s", sender_address)

    builder = TransactionBuilder(rpc, priority_fee=priority_fee,
                                 expected_chain_id=expected_chain_id)
    unsigned = await builder.build_transaction(recipient, sender, payload, value=value)

    raw_signature = await signer.sign(unsigned.signing_hash(), wallet.public_key)

    return RecoveryResolver().resolve(unsigned, raw_signature, sender)


async def sign_and_broadcast(wallet: WalletDescriptor,
                             recipient: Union[str, bytes],
                             payload: bytes,
                             *,
                             rpc: RpcClient,
                             signer: HashSigner,
                             value: int = 0,
                             priority_fee: int = DEFAULT_PRIORITY_FEE_WEI,
                             expected_chain_id: Optional[int] = None) -> str:
    """Run the full flow and return the node's transaction id."""
    signed = await sign_transaction(
        wallet, recipient, payload,
        rpc=rpc, signer=signer, value=value,
        priority_fee=priority_fee, expected_chain_id=expected_chain_id,
    )
    return await Broadcaster(rpc).broadcast(signed)
