"""Recovery-id resolution for hash-only signatures.

An (r, s) pair recovers to one of two public keys depending on the
y-parity. The card does not say which, so each candidate is recovered
and compared against the wallet's own address.
"""

from __future__ import annotations
import logging
from typing import Optional, Union

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from tapsign.address import address_to_bytes, bytes_to_address, derive_address
from tapsign.constants import RECOVERY_IDS, SECP256K1_N
from tapsign.errors import InternalVerificationFailed, SignatureAddressMismatch
from tapsign.transaction import (
    CandidateTransaction,
    RawSignature,
    SignedTransaction,
    UnsignedTransactionFields,
)

logger = logging.getLogger(__name__)


def recover_address(msg_hash: bytes, candidate: CandidateTransaction) -> Optional[bytes]:
    """Recover the signer address for one candidate, or None if unrecoverable."""
    try:
        signature = keys.Signature(vrs=candidate.vrs)
        public_key = signature.recover_public_key_from_msg_hash(msg_hash)
    except (BadSignature, ValidationError) as e:
        logger.debug("Recovery id %d unrecoverable: %s", candidate.recovery_id, e)
        return None
    return derive_address(public_key.to_bytes())


class RecoveryResolver:
    """Finds the recovery id that makes a raw signature belong to the sender."""

    def resolve(self, unsigned_tx: UnsignedTransactionFields,
                raw_signature: RawSignature,
                expected_sender: Union[str, bytes]) -> SignedTransaction:
        expected = address_to_bytes(expected_sender)
        expected_str = bytes_to_address(expected)

        if not (0 < raw_signature.r < SECP256K1_N and 0 < raw_signature.s < SECP256K1_N):
            logger.warning("Card signature is outside the secp256k1 group order")
            raise SignatureAddressMismatch(expected_str, [])

        signature = raw_signature.normalized()
        if signature is not raw_signature:
            logger.warning("Card returned a high-s signature; normalized to low-s")

        msg_hash = unsigned_tx.signing_hash()
        recovered: list[str] = []
        selected: Optional[CandidateTransaction] = None

        for recovery_id in RECOVERY_IDS:
            candidate = CandidateTransaction(unsigned_tx, signature, recovery_id)
            address = recover_address(msg_hash, candidate)
            if address is None:
                continue
            logger.debug("Recovery id %d -> %s", recovery_id, bytes_to_address(address))
            if address == expected:
                selected = candidate
                break
            recovered.append(bytes_to_address(address))

        if selected is None:
            raise SignatureAddressMismatch(expected_str, recovered)

        try:
            signed = selected.to_signed()
        except ValueError as e:
            raise InternalVerificationFailed(
                f"Failed to encode signed transaction: {e}"
            ) from e
        self._verify(signed, expected_str)
        logger.info(
            "Resolved recovery id %d for %s (tx %s)",
            signed.recovery_id, expected_str, signed.tx_hash,
        )
        return signed

    @staticmethod
    def _verify(signed: SignedTransaction, expected: str) -> None:
        """Re-check the encoded transaction with eth-account's own recovery."""
        try:
            sender = signed.sender()
        except Exception as e:
            raise InternalVerificationFailed(
                f"Signed transaction failed to verify: {e}"
            ) from e
        if sender.lower() != expected.lower():
            raise InternalVerificationFailed(
                f"Signed transaction recovers {sender}, expected {expected}"
            )
