"""File-backed software card for development and testing.

Behaves like a hash-only hardware card: it signs digests and returns
r||s without the recovery id. Private keys are stored locally on disk,
encrypted with a passphrase.
"""

from __future__ import annotations
import json
import logging
import os
import re
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from eth_keys import keys

from tapsign.address import bytes_to_address, derive_address
from tapsign.constants import MSG_HASH_SIZE, SUPPORTED_CURVE
from tapsign.transaction import RawSignature, public_key_matches

logger = logging.getLogger(__name__)

DEFAULT_CARD_DIR = Path.home() / ".tapsign" / "cards"
PBKDF2_ITERATIONS = 480_000
SALT_SIZE = 16
NONCE_SIZE = 12
CARD_ID_SIZE = 8


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    """Derive a 256-bit AES key from a passphrase using PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def _encrypt_secret(secret_bytes: bytes, passphrase: str) -> dict:
    """Encrypt secret key bytes with AES-256-GCM."""
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    aesgcm = AESGCM(_derive_key(passphrase, salt))
    ciphertext = aesgcm.encrypt(nonce, secret_bytes, None)
    return {
        "salt": salt.hex(),
        "nonce": nonce.hex(),
        "ciphertext": ciphertext.hex(),
    }


def _decrypt_secret(enc_data: dict, passphrase: str) -> bytes:
    """Decrypt secret key bytes from AES-256-GCM."""
    salt = bytes.fromhex(enc_data["salt"])
    nonce = bytes.fromhex(enc_data["nonce"])
    ciphertext = bytes.fromhex(enc_data["ciphertext"])
    aesgcm = AESGCM(_derive_key(passphrase, salt))
    return aesgcm.decrypt(nonce, ciphertext, None)


class SoftwareCard:
    """An unlocked software card exposing the plural-hash signing API."""

    def __init__(self, card_id: str, private_key: keys.PrivateKey):
        self._card_id = card_id
        self._key = private_key

    @property
    def card_id(self) -> str:
        return self._card_id

    @property
    def public_key(self) -> bytes:
        """Compressed wallet public key, as hardware cards report it."""
        return self._key.public_key.to_compressed_bytes()

    def scan(self) -> dict:
        return {
            "cardId": self._card_id,
            "wallets": [
                {"publicKey": self.public_key.hex(), "curve": SUPPORTED_CURVE},
            ],
        }

    async def sign(self, hashes: list[str], wallet_public_key: str,
                   card_id: Optional[str] = None) -> list[str]:
        """Sign each hex digest and return r||s hex strings, no recovery id."""
        if card_id is not None and card_id != self._card_id:
            raise ValueError(f"Card {card_id} is not present")
        if not public_key_matches(wallet_public_key, self.public_key):
            raise ValueError("Wallet not found on card")

        signatures = []
        for hash_hex in hashes:
            digest = bytes.fromhex(hash_hex)
            if len(digest) != MSG_HASH_SIZE:
                raise ValueError(f"Hash must be {MSG_HASH_SIZE} bytes")
            sig = self._key.sign_msg_hash(digest)
            signatures.append(RawSignature(r=sig.r, s=sig.s).to_hex())
        logger.debug("Card %s signed %d hash(es)", self._card_id, len(hashes))
        return signatures


class CardStore:
    """Manages software cards stored as encrypted JSON files."""

    def __init__(self, card_dir: Path = DEFAULT_CARD_DIR):
        self._card_dir = Path(card_dir)
        self._card_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self._card_dir, 0o700)

    def _card_path(self, name: str) -> Path:
        if not re.match(r'^[a-zA-Z0-9_\-]+$', name):
            raise ValueError(
                f"Invalid card name '{name}': "
                "only alphanumeric characters, hyphens, and underscores are allowed"
            )
        path = (self._card_dir / f"{name}.json").resolve()
        if not str(path).startswith(str(self._card_dir.resolve())):
            raise ValueError(f"Invalid card name '{name}': path traversal detected")
        return path

    def _read(self, name: str) -> dict:
        path = self._card_path(name)
        if not path.exists():
            raise FileNotFoundError(f"Card '{name}' not found")
        with open(path) as f:
            return json.load(f)

    def create_card(self, name: str, passphrase: str) -> dict:
        """Generate a new card key and save it. Returns the card descriptor."""
        return self._save_card(name, keys.PrivateKey(os.urandom(32)), passphrase)

    def import_card(self, name: str, private_key: str, passphrase: str) -> dict:
        """Import an existing hex private key as a software card."""
        key_hex = private_key[2:] if private_key.startswith("0x") else private_key
        return self._save_card(name, keys.PrivateKey(bytes.fromhex(key_hex)), passphrase)

    def get_descriptor(self, name: str) -> dict:
        """Public card data (no passphrase needed)."""
        data = self._read(name)
        return {
            "cardId": data["card_id"],
            "wallets": [{"publicKey": data["public_key"], "curve": data["curve"]}],
            "address": data["address"],
        }

    def load_card(self, name: str, passphrase: str) -> SoftwareCard:
        data = self._read(name)
        secret_bytes = _decrypt_secret(data["secret"], passphrase)
        return SoftwareCard(data["card_id"], keys.PrivateKey(secret_bytes))

    def list_cards(self) -> list[dict]:
        cards = []
        for path in sorted(self._card_dir.glob("*.json")):
            with open(path) as f:
                data = json.load(f)
            cards.append({
                "name": path.stem,
                "card_id": data["card_id"],
                "address": data["address"],
            })
        return cards

    def delete_card(self, name: str) -> None:
        path = self._card_path(name)
        if not path.exists():
            raise FileNotFoundError(f"Card '{name}' not found")
        path.unlink()
        logger.info("Deleted card '%s'", name)

    def _save_card(self, name: str, private_key: keys.PrivateKey,
                   passphrase: str) -> dict:
        """Save a card to disk. Always encrypted -- passphrase is required."""
        if not passphrase:
            raise ValueError(
                "A passphrase is required to protect the card key. "
                "Card files are never stored unencrypted."
            )
        path = self._card_path(name)
        if path.exists():
            raise FileExistsError(f"Card '{name}' already exists")

        card = SoftwareCard(os.urandom(CARD_ID_SIZE).hex().upper(), private_key)
        address = bytes_to_address(derive_address(card.public_key))
        data = {
            "card_id": card.card_id,
            "public_key": card.public_key.hex(),
            "curve": SUPPORTED_CURVE,
            "address": address,
            "encrypted": True,
            "secret": _encrypt_secret(private_key.to_bytes(), passphrase),
        }

        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
        logger.info("Created card '%s' (%s): %s", name, card.card_id, address)
        return self.get_descriptor(name)
