"""Hash-only signing capability.

A card signs a 32-byte digest and returns r||s. It does not report the
recovery id, and it does not prove which wallet produced the signature;
both are settled later by the resolver.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Optional, Protocol

from tapsign.constants import MSG_HASH_SIZE
from tapsign.errors import SigningFailed
from tapsign.transaction import RawSignature

logger = logging.getLogger(__name__)


class CardSession(Protocol):
    """An active card session, established outside this package."""

    async def sign(self, hashes: list[str], wallet_public_key: str,
                   card_id: Optional[str] = None) -> list[str]:
        ...


class HashSigner(ABC):
    """Signs one message hash with the wallet identified by its public key."""

    @abstractmethod
    async def sign(self, msg_hash: bytes, wallet_public_key: bytes) -> RawSignature:
        raise NotImplementedError


def _check_hash(msg_hash: bytes) -> None:
    if len(msg_hash) != MSG_HASH_SIZE:
        raise ValueError(f"Message hash must be {MSG_HASH_SIZE} bytes, got {len(msg_hash)}")


class CardHashSigner(HashSigner):
    """Adapter over a card session whose API only signs lists of hashes.

    The session rejects single-element lists, so the digest is sent twice
    and the first signature is used.
    """

    def __init__(self, session: CardSession, card_id: Optional[str] = None):
        self._session = session
        self._card_id = card_id

    async def sign(self, msg_hash: bytes, wallet_public_key: bytes) -> RawSignature:
        _check_hash(msg_hash)
        hash_hex = msg_hash.hex()
        logger.info("Requesting card signature for 0x%s", hash_hex)
        try:
            signatures = await self._session.sign(
                [hash_hex, hash_hex], wallet_public_key.hex(), self._card_id
            )
        except Exception as e:
            raise SigningFailed(f"Card signing failed: {e}") from e

        if not signatures:
            raise SigningFailed("Card returned no signatures")
        try:
            return RawSignature.from_hex(str(signatures[0]))
        except ValueError as e:
            raise SigningFailed(f"Card returned a malformed signature: {e}") from e


class StaticHashSigner(HashSigner):
    """Returns a fixed signature for every request."""

    def __init__(self, signature: RawSignature):
        self._signature = signature
        self.requests: list[tuple[bytes, bytes]] = []

    async def sign(self, msg_hash: bytes, wallet_public_key: bytes) -> RawSignature:
        _check_hash(msg_hash)
        self.requests.append((msg_hash, wallet_public_key))
        return self._signature
