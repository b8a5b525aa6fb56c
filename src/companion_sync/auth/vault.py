"""Symmetric encryption of stored provider passwords.

Passwords are kept encrypted at rest only so a session can be refreshed
without asking the user again. The serialized form is
``hex(iv) + ":" + hex(ciphertext)`` using AES-256 in CBC mode with PKCS7
padding and a fresh random 16-byte IV per encryption.

Plaintext, ciphertext and key material never appear in exceptions or logs.
"""

from __future__ import annotations

import binascii
import hashlib
import os
from dataclasses import dataclass

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from companion_sync.core.config import MIN_CREDENTIAL_KEY_BYTES
from companion_sync.core.exceptions import ConfigurationError, CorruptSecretError, DecryptionError


IV_BYTES = 16
AES_KEY_BYTES = 32
SEPARATOR = ":"


@dataclass(frozen=True)
class EncryptedSecret:
    """An encrypted password and the IV it was encrypted with."""

    iv: bytes
    ciphertext: bytes

    def serialize(self) -> str:
        return f"{self.iv.hex()}{SEPARATOR}{self.ciphertext.hex()}"

    @classmethod
    def parse(cls, stored: str) -> EncryptedSecret:
        """Parse the stored ``iv:ciphertext`` form.

        Raises:
            CorruptSecretError: If the value does not split into exactly
                two non-empty hex segments, or the IV has the wrong length.
        """
        parts = stored.split(SEPARATOR)
        if len(parts) != 2 or not all(parts):
            raise CorruptSecretError(f"Stored secret has {len(parts)} segment(s), expected 2")
        try:
            iv = bytes.fromhex(parts[0])
            ciphertext = bytes.fromhex(parts[1])
        except (ValueError, binascii.Error) as exc:
            raise CorruptSecretError("Stored secret is not hex encoded") from exc
        if len(iv) != IV_BYTES:
            raise CorruptSecretError(f"Stored secret IV is {len(iv)} bytes, expected {IV_BYTES}")
        return cls(iv=iv, ciphertext=ciphertext)


def derive_key(key_material: bytes) -> bytes:
    """Reduce configured key material to an AES-256 key.

    Material of exactly 32 bytes is used as is; longer material is hashed
    with SHA-256 so every byte contributes.

    Raises:
        ConfigurationError: If fewer than 32 bytes are supplied.
    """
    if len(key_material) < MIN_CREDENTIAL_KEY_BYTES:
        raise ConfigurationError(
            f"credential key must be at least {MIN_CREDENTIAL_KEY_BYTES} bytes",
            config_key="credential_key",
        )
    if len(key_material) == AES_KEY_BYTES:
        return key_material
    return hashlib.sha256(key_material).digest()


def encrypt(plaintext: str, key: bytes) -> EncryptedSecret:
    """Encrypt a password.

    Args:
        plaintext: The password to protect.
        key: Key material of at least 32 bytes.

    Returns:
        The encrypted secret with its freshly generated IV.
    """
    iv = os.urandom(IV_BYTES)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(derive_key(key)), modes.CBC(iv)).encryptor()
    return EncryptedSecret(iv=iv, ciphertext=encryptor.update(padded) + encryptor.finalize())


def decrypt(secret: EncryptedSecret | str, key: bytes) -> str:
    """Decrypt a stored password.

    Args:
        secret: An EncryptedSecret or its serialized form.
        key: The key material used for encryption.

    Returns:
        The plaintext password.

    Raises:
        CorruptSecretError: If a serialized secret is malformed.
        DecryptionError: If padding or text decoding fails, which is what a
            wrong key or tampered ciphertext produces.
    """
    if isinstance(secret, str):
        secret = EncryptedSecret.parse(secret)
    if not secret.ciphertext or len(secret.ciphertext) % IV_BYTES:
        raise DecryptionError("Ciphertext length is not a multiple of the block size")

    decryptor = Cipher(algorithms.AES(derive_key(key)), modes.CBC(secret.iv)).decryptor()
    padded = decryptor.update(secret.ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        data = unpadder.update(padded) + unpadder.finalize()
        return data.decode("utf-8")
    except ValueError:
        # also covers UnicodeDecodeError
        raise DecryptionError("Stored secret could not be decrypted") from None
