"""Shared pytest fixtures for tapsign tests."""

import pytest
from eth_keys import keys

from tapsign.constants import SUPPORTED_CURVE
from tapsign.transaction import WalletDescriptor

# Fixed keys so recovery-id cases are reproducible
PRIVATE_KEY_BYTES = bytes.fromhex(
    "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
)
OTHER_KEY_BYTES = bytes.fromhex(
    "8da4ef21b864d2cc526dbdb2a120bd2874c36c9d0a1fb7f8c63d7f7a8b41de8f"
)


@pytest.fixture
def private_key():
    return keys.PrivateKey(PRIVATE_KEY_BYTES)


@pytest.fixture
def other_key():
    return keys.PrivateKey(OTHER_KEY_BYTES)


@pytest.fixture
def wallet(private_key):
    """Wallet descriptor as a card reports it (compressed key)."""
    return WalletDescriptor(
        public_key=private_key.public_key.to_compressed_bytes(),
        curve=SUPPORTED_CURVE,
        card_id="CB0100000001",
    )


@pytest.fixture
def tmp_card_dir(tmp_path):
    """Temporary directory for software card files."""
    d = tmp_path / "cards"
    d.mkdir()
    return d
