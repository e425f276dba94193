"""
FieldVault - Cryptography Module

All cryptographic operations for the vault live in this one file:

    1. Master Password -> SHA-256 -> Vault Key (32 bytes)
    2. One random IV per document, shared by every field in it
    3. Each field: plaintext + random salt -> AES-256-CBC (PKCS7 padding)

Known weaknesses (kept for format compatibility, do not "fix" silently):
    - The key is a single unsalted hash of the password; no stretching.
    - CBC has no integrity check. A wrong key is only noticed when the
      padding happens to be invalid; otherwise it yields garbage plaintext.
    - The IV is shared across fields. Only the per-field salt keeps equal
      plaintexts from producing equal ciphertexts, so salt_length = 0
      leaks which fields are identical.

Format versions:
    - 1: no salt appended, decrypted bytes are the plaintext
    - 2: salt_length random characters appended before encryption
"""

import os
import hashlib
import secrets
import string
from typing import Callable, Dict, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .config import ENCODING
from .errors import DecryptError, VersionError


# =============================================================================
# Configuration
# =============================================================================

KEY_SIZE = 32            # 256-bit key
IV_SIZE = 16             # AES block size
BLOCK_BITS = 128         # PKCS7 padding works in bits

CIPHER_NAME = "AES-256-CBC"
KEYGEN_NAME = "SHA256"

CURRENT_VERSION = 2

# Characters the per-field salt is drawn from
SALT_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "!$%&?+*#-_."


# =============================================================================
# Key Derivation
# =============================================================================

def derive_key(password: Union[str, bytes]) -> bytes:
    """
    Derive the vault key from the master password.

    One pass of SHA-256 over the UTF-8 password. Deterministic and unsalted,
    which is what every existing document depends on.

    Args:
        password: Master password (str is UTF-8 encoded, bytes used as-is)

    Returns:
        32-byte vault key
    """
    if isinstance(password, str):
        password = password.encode(ENCODING)
    return hashlib.sha256(password).digest()


def generate_iv() -> bytes:
    """Random 16-byte IV for a new document."""
    return os.urandom(IV_SIZE)


def random_salt(length: int) -> str:
    """Random salt of `length` characters drawn from SALT_ALPHABET."""
    return ''.join(secrets.choice(SALT_ALPHABET) for _ in range(length))


# =============================================================================
# AES-256-CBC primitives
# =============================================================================

def _aes_encrypt(key: bytes, iv: bytes, data: bytes) -> bytes:
    padder = padding.PKCS7(BLOCK_BITS).padder()
    padded = padder.update(data) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def _aes_decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    """
    Decrypt and unpad.

    Raises:
        ValueError: Ciphertext is not a whole number of blocks, or padding
            is invalid (usually a wrong key)
    """
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


# =============================================================================
# Field Encryption
# =============================================================================

def encrypt_field(plaintext: str, key: bytes, iv: bytes, salt_length: int) -> bytes:
    """
    Encrypt one vault value.

    A fresh random salt is appended to the plaintext before encryption, so
    two calls with identical arguments give different ciphertext as long as
    salt_length > 0.

    Args:
        plaintext: Secret value
        key: 32-byte vault key
        iv: Document IV
        salt_length: Number of salt characters to append (0 disables salting)

    Returns:
        Raw ciphertext bytes
    """
    salted = plaintext + random_salt(salt_length)
    return _aes_encrypt(key, iv, salted.encode(ENCODING))


# =============================================================================
# Versioned Decryption
# =============================================================================

Decryptor = Callable[[bytes, bytes, bytes, int], bytes]

# version -> decryptor(ciphertext, key, iv, salt_length) -> plaintext bytes
DECRYPTORS: Dict[int, Decryptor] = {}


def register_decryptor(version: int) -> Callable[[Decryptor], Decryptor]:
    """
    Register the decrypt strategy for a document format version.

    Usage:
        @register_decryptor(3)
        def _decrypt_v3(ciphertext, key, iv, salt_length):
            ...
    """
    def wrap(func: Decryptor) -> Decryptor:
        DECRYPTORS[version] = func
        return func
    return wrap


@register_decryptor(1)
def _decrypt_v1(ciphertext: bytes, key: bytes, iv: bytes, salt_length: int) -> bytes:
    # Version 1 never appended a salt
    return _aes_decrypt(key, iv, ciphertext)


@register_decryptor(2)
def _decrypt_v2(ciphertext: bytes, key: bytes, iv: bytes, salt_length: int) -> bytes:
    data = _aes_decrypt(key, iv, ciphertext)
    if len(data) < salt_length:
        raise ValueError("Decrypted field is shorter than its salt")
    return data[:len(data) - salt_length]


def decrypt_field(
    ciphertext: bytes,
    key: bytes,
    iv: bytes,
    version: int,
    salt_length: int = 0
) -> str:
    """
    Decrypt one vault value written by format `version`.

    Args:
        ciphertext: Raw ciphertext bytes
        key: 32-byte vault key
        iv: Document IV
        version: Document format version (selects the decryptor)
        salt_length: Salt length recorded in the document (ignored by v1)

    Returns:
        Plaintext secret

    Raises:
        VersionError: No decryptor registered for `version`
        DecryptError: Bad padding, truncated block, or non-UTF-8 plaintext.
            A wrong key that happens to produce valid padding is NOT
            detected and returns garbage.
    """
    decryptor = DECRYPTORS.get(version)
    if decryptor is None:
        raise VersionError(version, CURRENT_VERSION)

    try:
        data = decryptor(ciphertext, key, iv, salt_length)
        return data.decode(ENCODING)
    except ValueError as e:
        # UnicodeDecodeError is a ValueError too
        raise DecryptError() from e
