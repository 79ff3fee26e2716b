"""Ethereum address derivation from card wallet public keys.

Cards report the wallet key as hex in one of three secp256k1 encodings
(uncompressed with 0x04 prefix, raw X||Y, or compressed). The address is
the last 20 bytes of keccak256(X||Y).
"""

from __future__ import annotations
from typing import Union

from eth_keys import keys
from eth_keys.exceptions import ValidationError
from web3 import Web3

from tapsign.constants import (
    COMPRESSED_PUBKEY_SIZE,
    ETH_ADDRESS_SIZE,
    RAW_PUBKEY_SIZE,
    SUPPORTED_CURVE,
    UNCOMPRESSED_PUBKEY_SIZE,
)
from tapsign.errors import InvalidPublicKey, UnsupportedCurve

_SECP256K1_P = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F


def check_curve(curve: str) -> None:
    """Raise UnsupportedCurve unless the curve identifier is secp256k1."""
    if (curve or "").strip().lower() != SUPPORTED_CURVE:
        raise UnsupportedCurve(curve)


def _to_bytes(public_key: Union[bytes, str]) -> bytes:
    if isinstance(public_key, str):
        hex_str = public_key[2:] if public_key.lower().startswith("0x") else public_key
        try:
            return bytes.fromhex(hex_str)
        except ValueError as e:
            raise InvalidPublicKey(f"Public key is not valid hex: {e}") from e
    return bytes(public_key)


def _on_curve(raw: bytes) -> bool:
    x = int.from_bytes(raw[:32], "big")
    y = int.from_bytes(raw[32:], "big")
    if x >= _SECP256K1_P or y >= _SECP256K1_P:
        return False
    return (y * y - x * x * x - 7) % _SECP256K1_P == 0


def normalize_public_key(public_key: Union[bytes, str]) -> bytes:
    """Return the 64-byte X||Y form of a secp256k1 public key."""
    data = _to_bytes(public_key)

    if len(data) == UNCOMPRESSED_PUBKEY_SIZE and data[0] == 0x04:
        raw = data[1:]
    elif len(data) == RAW_PUBKEY_SIZE:
        raw = data
    elif len(data) == COMPRESSED_PUBKEY_SIZE and data[0] in (0x02, 0x03):
        try:
            raw = keys.PublicKey.from_compressed_bytes(data).to_bytes()
        except (ValidationError, ValueError) as e:
            raise InvalidPublicKey(f"Cannot decompress public key: {e}") from e
    else:
        raise InvalidPublicKey(
            f"Unrecognized public key encoding ({len(data)} bytes)"
        )

    if not _on_curve(raw):
        raise InvalidPublicKey("Public key is not a point on secp256k1")
    return raw


def derive_address(public_key: Union[bytes, str],
                   curve: str = SUPPORTED_CURVE) -> bytes:
    """Derive the 20-byte Ethereum address for a card wallet key.

    The curve is checked before the key is parsed so an unusable wallet
    fails without touching anything else.
    """
    check_curve(curve)
    raw = normalize_public_key(public_key)
    return keys.PublicKey(raw).to_canonical_address()


def address_to_bytes(address: Union[str, bytes]) -> bytes:
    """Convert a hex address (any case, optional 0x) to 20 raw bytes."""
    if isinstance(address, (bytes, bytearray)):
        data = bytes(address)
    else:
        data = bytes.fromhex(address[2:]) if address.startswith("0x") else bytes.fromhex(address)
    if len(data) != ETH_ADDRESS_SIZE:
        raise ValueError(f"Address must be {ETH_ADDRESS_SIZE} bytes, got {len(data)}")
    return data


def bytes_to_address(addr_bytes: bytes) -> str:
    """Convert 20 raw bytes to a checksummed hex address."""
    return Web3.to_checksum_address("0x" + addr_bytes.hex())
