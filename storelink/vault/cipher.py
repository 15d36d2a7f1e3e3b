"""
AES-256-GCM token cipher.

Blob format (lowercase hex, colon-delimited)::

    <iv: 32 hex>:<auth tag: 32 hex>:<ciphertext hex>

The 32-byte key is derived from the long-lived secret with scrypt
(N=2**14, r=8, p=1) exactly once, when the cipher is built. scrypt is slow
on purpose; build one TokenCipher at startup and share it.

``decrypt`` is fail-closed: anything malformed or tampered returns None.
``decrypt_strict`` raises instead, telling the two cases apart.
"""
from __future__ import annotations
import logging
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from storelink.errors import ConfigurationError, IntegrityError, ValidationError

logger = logging.getLogger(__name__)

IV_BYTES = 16
TAG_BYTES = 16
KEY_BYTES = 32
SEPARATOR = ":"

_HEX = re.compile(r"[0-9a-fA-F]*")


def derive_key(secret: str, salt: str | bytes = b"salt") -> bytes:
    """Derive a 256-bit key from ``secret`` with scrypt."""
    if not secret:
        raise ConfigurationError("Encryption secret must not be empty")
    salt_bytes = salt.encode("utf-8") if isinstance(salt, str) else salt
    kdf = Scrypt(salt=salt_bytes, length=KEY_BYTES, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


class TokenCipher:
    """Authenticated encryption for secrets at rest."""

    def __init__(self, key: bytes):
        if len(key) != KEY_BYTES:
            raise ConfigurationError(f"Cipher key must be {KEY_BYTES} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    @classmethod
    def from_secret(cls, secret: str, salt: str | bytes = b"salt") -> "TokenCipher":
        return cls(derive_key(secret, salt))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt with a fresh random IV. Same input never yields the same blob."""
        iv = os.urandom(IV_BYTES)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return SEPARATOR.join((iv.hex(), tag.hex(), ciphertext.hex()))

    def decrypt(self, blob: str) -> str | None:
        """Decrypt a blob, or return None if it is malformed or tampered."""
        try:
            return self.decrypt_strict(blob)
        except ValidationError:
            return None
        except IntegrityError as exc:
            logger.warning("%s; refusing to decrypt", exc.message)
            return None

    def decrypt_strict(self, blob: str) -> str:
        """Decrypt a blob.

        Raises ValidationError for a malformed blob and IntegrityError when
        the authentication tag does not verify.
        """
        parts = split_blob(blob)
        if parts is None:
            raise ValidationError("Malformed ciphertext blob", field="blob")
        iv, tag, ciphertext = parts

        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag:
            raise IntegrityError("Ciphertext failed authentication") from None

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise IntegrityError("Decrypted payload is not valid UTF-8") from None


def split_blob(blob: str) -> tuple[bytes, bytes, bytes] | None:
    """Parse ``iv:tag:cipher`` into raw bytes. None if the shape is wrong."""
    if not isinstance(blob, str):
        return None
    segments = blob.split(SEPARATOR)
    if len(segments) != 3:
        return None
    iv_hex, tag_hex, cipher_hex = segments
    if len(iv_hex) != IV_BYTES * 2 or len(tag_hex) != TAG_BYTES * 2:
        return None
    if len(cipher_hex) % 2 or not all(_HEX.fullmatch(s) for s in segments):
        return None
    return bytes.fromhex(iv_hex), bytes.fromhex(tag_hex), bytes.fromhex(cipher_hex)
