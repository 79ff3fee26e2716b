"""Tests for the hash-only signer adapters."""

import asyncio

import pytest

from tapsign.card import SoftwareCard
from tapsign.errors import SigningFailed
from tapsign.signer import CardHashSigner, StaticHashSigner
from tapsign.transaction import RawSignature

DIGEST = bytes(range(32))


class RecordingSession:
    """Card session double that records requests and replays a response."""

    def __init__(self, response=None, error=None):
        self.requests = []
        self._response = response
        self._error = error

    async def sign(self, hashes, wallet_public_key, card_id=None):
        self.requests.append((hashes, wallet_public_key, card_id))
        if self._error:
            raise self._error
        return self._response


class TestCardHashSigner:
    def test_sends_duplicated_hash(self):
        session = RecordingSession(response=["11" * 64, "22" * 64])
        signer = CardHashSigner(session, card_id="CB01")
        asyncio.run(signer.sign(DIGEST, b"\x02" + b"\xaa" * 32))

        hashes, pub_hex, card_id = session.requests[0]
        assert hashes == [DIGEST.hex(), DIGEST.hex()]
        assert pub_hex == "02" + "aa" * 32
        assert card_id == "CB01"

    def test_uses_first_signature(self):
        session = RecordingSession(response=["11" * 64, "22" * 64])
        sig = asyncio.run(CardHashSigner(session).sign(DIGEST, b"\x02" * 33))
        assert sig == RawSignature.from_hex("11" * 64)

    def test_session_error(self):
        session = RecordingSession(error=RuntimeError("user cancelled"))
        with pytest.raises(SigningFailed, match="user cancelled") as exc_info:
            asyncio.run(CardHashSigner(session).sign(DIGEST, b"\x02" * 33))
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_session_error_not_retried(self):
        session = RecordingSession(error=RuntimeError("tag lost"))
        with pytest.raises(SigningFailed):
            asyncio.run(CardHashSigner(session).sign(DIGEST, b"\x02" * 33))
        assert len(session.requests) == 1

    def test_empty_response(self):
        session = RecordingSession(response=[])
        with pytest.raises(SigningFailed, match="no signatures"):
            asyncio.run(CardHashSigner(session).sign(DIGEST, b"\x02" * 33))

    def test_malformed_signature(self):
        session = RecordingSession(response=["abcd"])
        with pytest.raises(SigningFailed, match="malformed"):
            asyncio.run(CardHashSigner(session).sign(DIGEST, b"\x02" * 33))

    def test_wrong_hash_length(self):
        session = RecordingSession(response=["11" * 64])
        with pytest.raises(ValueError):
            asyncio.run(CardHashSigner(session).sign(b"\x00" * 31, b"\x02" * 33))
        assert session.requests == []

    def test_with_software_card(self, private_key):
        card = SoftwareCard("CB01", private_key)
        signer = CardHashSigner(card, card_id="CB01")
        sig = asyncio.run(signer.sign(DIGEST, card.public_key))

        expected = private_key.sign_msg_hash(DIGEST)
        assert (sig.r, sig.s) == (expected.r, expected.s)


class TestStaticHashSigner:
    def test_returns_fixed_signature(self):
        fixed = RawSignature(r=1, s=2)
        signer = StaticHashSigner(fixed)
        assert asyncio.run(signer.sign(DIGEST, b"pub")) is fixed
        assert signer.requests == [(DIGEST, b"pub")]
