"""Exception taxonomy for the signing pipeline.

Every stage raises one of these and aborts the rest of the flow, so
callers can tell a card problem from a network problem from an
untrusted signature.
"""

from __future__ import annotations
from typing import Optional


class TapSignError(Exception):
    """Base class for all tapsign failures."""


class UnsupportedCurve(TapSignError):
    """The wallet's curve cannot be used for Ethereum signing."""

    def __init__(self, curve: str):
        self.curve = curve
        super().__init__(f"Unsupported curve '{curve}': only secp256k1 wallets can sign")


class InvalidPublicKey(TapSignError, ValueError):
    """Public key bytes are not a valid secp256k1 point encoding."""


class RpcUnavailable(TapSignError):
    """A JSON-RPC call failed in transport or returned an unparseable result."""


class RpcResponseError(RpcUnavailable):
    """The node answered with a JSON-RPC ``error`` object."""

    def __init__(self, method: str, code: Optional[int], message: str):
        self.method = method
        self.code = code
        self.message = message
        super().__init__(f"{method} failed (code={code}): {message}")


class ChainIdMismatch(TapSignError):
    """The node serves a different chain than the one configured."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Chain ID mismatch: configured {expected}, RPC returned {actual}"
        )


class SigningFailed(TapSignError):
    """The card declined, errored, or returned a malformed signature."""


class SignatureAddressMismatch(TapSignError):
    """Neither recovery candidate recovers the expected sender."""

    def __init__(self, expected: str, recovered: list[str]):
        self.expected = expected
        self.recovered = recovered
        super().__init__(
            f"Signature does not belong to {expected} "
            f"(recovered: {', '.join(recovered) or 'none'})"
        )


class InternalVerificationFailed(TapSignError):
    """The encoded transaction does not verify against the resolved sender.

    Indicates a defect in encoding or resolution, never a user error.
    """


class BroadcastRejected(TapSignError):
    """The node refused the serialized transaction."""

    def __init__(self, reason: str, code: Optional[int] = None):
        self.reason = reason
        self.code = code
        super().__init__(reason)
