"""End-to-end tests for the build -> sign -> resolve -> broadcast flow."""

import asyncio

import pytest

from fake_rpc import FakeNode
from tapsign.card import SoftwareCard
from tapsign.errors import (
    BroadcastRejected,
    ChainIdMismatch,
    RpcUnavailable,
    SignatureAddressMismatch,
    SigningFailed,
    UnsupportedCurve,
)
from tapsign.pipeline import sign_and_broadcast, sign_transaction
from tapsign.rpc import RpcClient
from tapsign.signer import CardHashSigner, StaticHashSigner
from tapsign.transaction import RawSignature, SignedTransaction, WalletDescriptor
from tx_factory import RECIPIENT


@pytest.fixture
def node():
    return FakeNode(chain_id=11155111, gas=21_000, nonce=3)


@pytest.fixture
def card(private_key):
    return SoftwareCard("CB0100000001", private_key)


@pytest.fixture
def card_signer(card):
    return CardHashSigner(card, card_id=card.card_id)


class TestFullFlow:
    def test_sign_and_broadcast(self, node, wallet, card_signer, private_key):
        tx_id = asyncio.run(sign_and_broadcast(
            wallet, RECIPIENT, b"",
            rpc=RpcClient(transport=node), signer=card_signer,
        ))

        assert node.methods == [
            "eth_chainId",
            "eth_estimateGas",
            "eth_getTransactionCount",
            "eth_gasPrice",
            "eth_sendRawTransaction",
        ]
        submitted = SignedTransaction.decode(node.calls[-1][1][0])
        assert submitted.sender() == private_key.public_key.to_checksum_address()
        assert submitted.fields.chain_id == 11155111
        assert submitted.fields.nonce == 3
        assert tx_id == submitted.tx_hash

    def test_sign_transaction_does_not_broadcast(self, node, wallet, card_signer, private_key):
        signed = asyncio.run(sign_transaction(
            wallet, RECIPIENT, b"\xab",
            rpc=RpcClient(transport=node), signer=card_signer, value=5,
            expected_chain_id=11155111,
        ))
        assert "eth_sendRawTransaction" not in node.methods
        assert signed.sender() == private_key.public_key.to_checksum_address()
        assert signed.fields.value == 5
        assert signed.fields.data == b"\xab"

    def test_uncompressed_wallet_key(self, node, private_key, card_signer):
        wallet = WalletDescriptor(b"\x04" + private_key.public_key.to_bytes(), "secp256k1")
        signed = asyncio.run(sign_transaction(
            wallet, RECIPIENT, b"", rpc=RpcClient(transport=node), signer=card_signer,
        ))
        assert signed.sender() == private_key.public_key.to_checksum_address()


class TestCurveCheck:
    def test_ed25519_rejected_before_io(self, node, private_key):
        wallet = WalletDescriptor(private_key.public_key.to_bytes(), "ed25519")
        signer = StaticHashSigner(RawSignature(r=1, s=1))
        with pytest.raises(UnsupportedCurve):
            asyncio.run(sign_and_broadcast(
                wallet, RECIPIENT, b"", rpc=RpcClient(transport=node), signer=signer,
            ))
        assert node.calls == []
        assert signer.requests == []


class TestAbortOnFailure:
    def test_estimate_gas_error_skips_signing(self, node, wallet):
        node.set_error("eth_estimateGas", "gas required exceeds allowance")
        signer = StaticHashSigner(RawSignature(r=1, s=1))
        with pytest.raises(RpcUnavailable):
            asyncio.run(sign_and_broadcast(
                wallet, RECIPIENT, b"", rpc=RpcClient(transport=node), signer=signer,
            ))
        assert signer.requests == []
        assert "eth_sendRawTransaction" not in node.methods

    def test_chain_mismatch_skips_signing(self, node, wallet):
        signer = StaticHashSigner(RawSignature(r=1, s=1))
        with pytest.raises(ChainIdMismatch):
            asyncio.run(sign_and_broadcast(
                wallet, RECIPIENT, b"", rpc=RpcClient(transport=node), signer=signer,
                expected_chain_id=1,
            ))
        assert signer.requests == []

    def test_signing_failure_skips_broadcast(self, node, wallet):
        class BrokenSession:
            async def sign(self, hashes, wallet_public_key, card_id=None):
                raise IOError("card removed")

        with pytest.raises(SigningFailed):
            asyncio.run(sign_and_broadcast(
                wallet, RECIPIENT, b"", rpc=RpcClient(transport=node),
                signer=CardHashSigner(BrokenSession()),
            ))
        assert "eth_sendRawTransaction" not in node.methods

    def test_wrong_card_wallet_not_broadcast(self, node, wallet, other_key):
        # The card signed with a different key than the wallet it reported.
        other_card = SoftwareCard("CB02", other_key)

        class MismatchedSession:
            async def sign(self, hashes, wallet_public_key, card_id=None):
                return await other_card.sign(hashes, other_card.public_key.hex())

        with pytest.raises(SignatureAddressMismatch):
            asyncio.run(sign_and_broadcast(
                wallet, RECIPIENT, b"", rpc=RpcClient(transport=node),
                signer=CardHashSigner(MismatchedSession()),
            ))
        assert "eth_sendRawTransaction" not in node.methods

    def test_broadcast_rejected(self, node, wallet, card_signer):
        node.set_error("eth_sendRawTransaction", "nonce too low")
        with pytest.raises(BroadcastRejected) as exc_info:
            asyncio.run(sign_and_broadcast(
                wallet, RECIPIENT, b"", rpc=RpcClient(transport=node), signer=card_signer,
            ))
        assert exc_info.value.reason == "nonce too low"
        assert node.methods.count("eth_sendRawTransaction") == 1
