# carechain/crypto/codec.py
"""
Symmetric payload encryption for ledger blocks.

Keys are pre-shared secrets stretched to 256 bits with SHA-256. Payloads are
encrypted with AES-256-GCM by default; AES-256-CBC is kept as a legacy mode.
CBC has no authentication tag, so a wrong key or a flipped bit is only caught
when the padding happens to be invalid.
"""

import hashlib
import os
from enum import Enum
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from carechain.core.encoding import pack_envelope, unpack_envelope
from carechain.core.errors import (
    DecryptionError,
    MalformedEnvelopeError,
    MissingCiphertextError,
    MissingKeyError,
)

KEY_SIZE = 32
ASSOCIATED_DATA = b"secure-data-sharing"


def derive_key(secret: Optional[str]) -> bytes:
    """Deterministic 32-byte key from an arbitrary-length secret."""
    if not secret:
        raise MissingKeyError("Cannot derive a key from an empty secret")
    return hashlib.sha256(secret.encode("utf-8")).digest()


class CipherMode(str, Enum):
    GCM = "gcm"     # authenticated
    CBC = "cbc"     # legacy, no integrity

    @property
    def iv_size(self) -> int:
        return 12 if self is CipherMode.GCM else 16


class EnvelopeCodec:
    """Encrypts to / decrypts from the `hex(iv):hex(ciphertext)` envelope format."""

    def __init__(self, mode: CipherMode = CipherMode.GCM):
        self.mode = CipherMode(mode)

    def __repr__(self) -> str:
        return f"EnvelopeCodec(mode={self.mode.value!r})"

    @staticmethod
    def _check_key(key: Optional[bytes]) -> bytes:
        if not key:
            raise MissingKeyError("Encryption key is missing")
        if len(key) != KEY_SIZE:
            raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
        return key

    def encrypt(self, plaintext: Optional[str], key: Optional[bytes]) -> str:
        key = self._check_key(key)
        if plaintext is None:
            raise MissingCiphertextError("Nothing to encrypt")

        data = plaintext.encode("utf-8")
        iv = os.urandom(self.mode.iv_size)

        if self.mode is CipherMode.GCM:
            # AESGCM appends the 16-byte tag to the ciphertext
            encrypted = AESGCM(key).encrypt(iv, data, ASSOCIATED_DATA)
        else:
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(data) + padder.finalize()
            encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
            encrypted = encryptor.update(padded) + encryptor.finalize()

        return pack_envelope(iv, encrypted)

    def decrypt(self, envelope: Optional[str], key: Optional[bytes]) -> str:
        key = self._check_key(key)
        if not envelope:
            raise MissingCiphertextError("Nothing to decrypt")

        iv, encrypted = unpack_envelope(envelope)
        if len(iv) != self.mode.iv_size:
            raise MalformedEnvelopeError(f"Expected {self.mode.iv_size}-byte IV, got {len(iv)}")

        if self.mode is CipherMode.GCM:
            try:
                data = AESGCM(key).decrypt(iv, encrypted, ASSOCIATED_DATA)
            except InvalidTag as e:
                raise DecryptionError("Authentication tag mismatch (wrong key or tampered data)") from e
        else:
            if len(encrypted) % 16:
                raise MalformedEnvelopeError("CBC ciphertext is not a multiple of the block size")
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(encrypted) + decryptor.finalize()
            try:
                unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
                data = unpadder.update(padded) + unpadder.finalize()
            except ValueError as e:
                raise DecryptionError("Bad padding (wrong key or tampered data)") from e

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted payload is not valid UTF-8") from e


_default_codec = EnvelopeCodec()


def encrypt(plaintext: str, key: bytes) -> str:
    return _default_codec.encrypt(plaintext, key)


def decrypt(envelope: str, key: bytes) -> str:
    return _default_codec.decrypt(envelope, key)
