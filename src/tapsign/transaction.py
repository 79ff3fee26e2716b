"""Transaction data model for hash-only signing.

Encoding and hashing of EIP-1559 transactions is delegated to eth-account;
these types only carry the fields between pipeline stages.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from eth_account import Account
from eth_account._utils.legacy_transactions import (
    encode_transaction,
    serializable_unsigned_transaction_from_dict,
)
from eth_account.typed_transactions import TypedTransaction
from hexbytes import HexBytes
from web3 import Web3

from tapsign.address import normalize_public_key
from tapsign.constants import (
    DYNAMIC_FEE_TX_TYPE,
    RAW_SIGNATURE_HEX_LEN,
    RECOVERY_IDS,
    SECP256K1_HALF_N,
    SECP256K1_N,
    SUPPORTED_CURVE,
)
from tapsign.errors import InvalidPublicKey

_UINT256_MAX = 2 ** 256 - 1


@dataclass(frozen=True)
class WalletDescriptor:
    """Wallet reported by the card session."""

    public_key: bytes
    curve: str = SUPPORTED_CURVE
    card_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "WalletDescriptor":
        """Build from the session's ``{"publicKey": hex, "curve": str}`` shape."""
        pub_hex = str(data["publicKey"])
        if pub_hex.lower().startswith("0x"):
            pub_hex = pub_hex[2:]
        try:
            public_key = bytes.fromhex(pub_hex)
        except ValueError as e:
            raise InvalidPublicKey(f"Public key is not valid hex: {e}") from e
        return cls(
            public_key=public_key,
            curve=str(data.get("curve", "")),
            card_id=data.get("cardId"),
        )


@dataclass(frozen=True)
class UnsignedTransactionFields:
    """EIP-1559 transaction fields prior to attaching a signature."""

    chain_id: int
    to: str
    value: int
    data: bytes
    gas_limit: int
    nonce: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    type: int = DYNAMIC_FEE_TX_TYPE

    def __post_init__(self):
        for name in ("chain_id", "value", "gas_limit", "nonce",
                     "max_fee_per_gas", "max_priority_fee_per_gas"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
        if self.type != DYNAMIC_FEE_TX_TYPE:
            raise ValueError(f"Only type {DYNAMIC_FEE_TX_TYPE} transactions are supported")

    def to_dict(self) -> dict[str, Any]:
        """Field dict in the shape eth-account expects."""
        return {
            "type": self.type,
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "to": Web3.to_checksum_address(self.to),
            "value": self.value,
            "data": "0x" + bytes(self.data).hex(),
            "gas": self.gas_limit,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
            "accessList": [],
        }

    def _serializable(self) -> TypedTransaction:
        return serializable_unsigned_transaction_from_dict(self.to_dict())

    def signing_hash(self) -> bytes:
        """keccak256(0x02 || rlp(unsigned fields)), the digest the card signs."""
        return bytes(self._serializable().hash())


@dataclass(frozen=True)
class RawSignature:
    """An (r, s) pair as returned by a hash-only signer, without v."""

    r: int
    s: int

    def __post_init__(self):
        for name in ("r", "s"):
            value = getattr(self, name)
            if not 0 < value <= _UINT256_MAX:
                raise ValueError(f"Signature {name} out of range")

    @classmethod
    def from_hex(cls, signature: str) -> "RawSignature":
        """Split a 128-hex-char r||s string into two big-endian integers."""
        sig = signature.strip()
        if sig.lower().startswith("0x"):
            sig = sig[2:]
        if len(sig) != RAW_SIGNATURE_HEX_LEN:
            raise ValueError(
                f"Expected {RAW_SIGNATURE_HEX_LEN} hex characters, got {len(sig)}"
            )
        return cls(r=int(sig[:64], 16), s=int(sig[64:], 16))

    def to_hex(self) -> str:
        return f"{self.r:064x}{self.s:064x}"

    @property
    def is_low_s(self) -> bool:
        return self.s <= SECP256K1_HALF_N

    def normalized(self) -> "RawSignature":
        """Return the equivalent low-s signature (EIP-2)."""
        if self.is_low_s:
            return self
        return RawSignature(r=self.r, s=SECP256K1_N - self.s)


@dataclass(frozen=True)
class CandidateTransaction:
    """A trial pairing of a raw signature with one recovery id."""

    fields: UnsignedTransactionFields
    signature: RawSignature
    recovery_id: int

    def __post_init__(self):
        if self.recovery_id not in RECOVERY_IDS:
            raise ValueError(f"Recovery id must be one of {RECOVERY_IDS}")

    @property
    def vrs(self) -> tuple[int, int, int]:
        return self.recovery_id, self.signature.r, self.signature.s

    def to_signed(self) -> "SignedTransaction":
        return SignedTransaction(self.fields, self.signature, self.recovery_id)


@dataclass(frozen=True)
class SignedTransaction:
    """Unsigned fields plus a signature whose recovery id has been resolved."""

    fields: UnsignedTransactionFields
    signature: RawSignature
    recovery_id: int
    _encoded: bytes = field(default=b"", init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.recovery_id not in RECOVERY_IDS:
            raise ValueError(f"Recovery id must be one of {RECOVERY_IDS}")
        # Typed transactions carry the y-parity directly, no chain-id offset.
        encoded = encode_transaction(
            self.fields._serializable(),
            vrs=(self.recovery_id, self.signature.r, self.signature.s),
        )
        object.__setattr__(self, "_encoded", bytes(encoded))

    def encode(self) -> bytes:
        """EIP-2718 wire bytes: 0x02 || rlp(fields + signature)."""
        return self._encoded

    @property
    def raw_hex(self) -> str:
        return "0x" + self._encoded.hex()

    @property
    def tx_hash(self) -> str:
        return "0x" + bytes(Web3.keccak(self._encoded)).hex()

    def sender(self) -> str:
        """Recover the sender through eth-account's transaction recovery."""
        return Account.recover_transaction(self._encoded)

    @classmethod
    def decode(cls, raw: Union[bytes, str]) -> "SignedTransaction":
        """Parse EIP-1559 wire bytes back into a SignedTransaction."""
        typed = TypedTransaction.from_bytes(HexBytes(raw))
        if typed.transaction_type != DYNAMIC_FEE_TX_TYPE:
            raise ValueError(
                f"Unsupported transaction type {typed.transaction_type}"
            )
        d = typed.as_dict()
        v, r, s = typed.vrs()
        fields = UnsignedTransactionFields(
            chain_id=d["chainId"],
            to=Web3.to_checksum_address(d["to"]),
            value=d["value"],
            data=bytes(d["data"]),
            gas_limit=d["gas"],
            nonce=d["nonce"],
            max_fee_per_gas=d["maxFeePerGas"],
            max_priority_fee_per_gas=d["maxPriorityFeePerGas"],
        )
        return cls(fields, RawSignature(r=r, s=s), v)


def public_key_matches(a: Union[bytes, str], b: Union[bytes, str]) -> bool:
    """Compare two public keys regardless of their encoding."""
    return normalize_public_key(a) == normalize_public_key(b)
