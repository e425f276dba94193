"""
FieldVault - Document Codec

Turns a Vault into a self-describing JSON document and back.

Document layout (one flat JSON object):
    - one "<entry name>": "<base64 ciphertext>" pair per vault entry
    - iv:          base64 of the 16-byte IV shared by every field
    - salt_length: characters of random salt appended to each plaintext
    - version:     format version, selects the decrypt path
    - cipher, keygen, description: informational only, never consulted

Metadata names are reserved. An entry called e.g. "version" is overwritten
by the metadata when encoding and is therefore lost on the next load.
"""

import json
import base64
import binascii
import logging
from typing import Any, Callable, Dict, NamedTuple, Optional, Union

from . import crypto
from .config import DEFAULT_SALT_LENGTH, ENCODING
from .errors import DecryptError, ParseError, VersionError
from .vault import Vault

logger = logging.getLogger(__name__)


# =============================================================================
# Format
# =============================================================================

RESERVED_FIELDS = frozenset(("iv", "description", "cipher", "keygen", "version", "salt_length"))

DESCRIPTION = (
    "Every field except iv, description, cipher, keygen, version and salt_length "
    "is a vault entry. Its value is base64 of AES-256-CBC (PKCS7 padding) over "
    "the plaintext followed by salt_length random characters, keyed with the "
    "SHA-256 hash of the master password and the shared iv. Strip the last "
    "salt_length characters after decryption."
)

KeyDerivation = Callable[[Union[str, bytes]], bytes]


class DecodeResult(NamedTuple):
    """A decoded vault plus an optional compatibility warning for the user."""
    vault: Vault
    warning: Optional[str] = None


def is_reserved(name: str) -> bool:
    """True if `name` collides with document metadata and would be lost."""
    return name in RESERVED_FIELDS


# =============================================================================
# Encode
# =============================================================================

def encode(
    vault: Vault,
    password: str,
    salt_length: int = DEFAULT_SALT_LENGTH,
    debug: bool = False,
    key_derivation: KeyDerivation = crypto.derive_key
) -> Dict[str, Any]:
    """
    Encrypt every entry of `vault` into a new document.

    A single IV is generated for the whole document; each field gets its
    own random salt.

    Args:
        vault: Vault to encode
        password: Master password
        salt_length: Salt characters appended per field
        debug: Log diagnostics at DEBUG level
        key_derivation: Password -> key function (default: SHA-256)

    Returns:
        Document as a dict, ready for dumps()

    Raises:
        ValueError: salt_length is not a non-negative integer (a document
            written with it could never be decoded)
    """
    if not _valid_salt_length(salt_length):
        raise ValueError(f"salt_length must be a non-negative integer, got {salt_length!r}")

    key = key_derivation(password)
    iv = crypto.generate_iv()

    document: Dict[str, Any] = {}
    for name, value in vault.items():
        ciphertext = crypto.encrypt_field(value, key, iv, salt_length)
        document[name] = base64.b64encode(ciphertext).decode('ascii')

    # Metadata goes last so it always wins over a same-named entry
    document.update({
        "iv": base64.b64encode(iv).decode('ascii'),
        "description": DESCRIPTION,
        "cipher": crypto.CIPHER_NAME,
        "keygen": crypto.KEYGEN_NAME,
        "version": crypto.CURRENT_VERSION,
        "salt_length": salt_length,
    })

    if debug:
        shadowed = [name for name in vault.names() if is_reserved(name)]
        logger.debug("Encoded %d entries (version %d, salt_length %d)",
                     len(vault), crypto.CURRENT_VERSION, salt_length)
        if shadowed:
            logger.debug("Entries shadowed by metadata: %s", ", ".join(shadowed))

    return document


# =============================================================================
# Decode
# =============================================================================

def _read_version(document: Dict[str, Any]) -> int:
    version = document.get("version")
    # bool is an int subclass; reject it explicitly
    if not isinstance(version, int) or isinstance(version, bool):
        raise ParseError("Document has no integer 'version'")
    if version < 1:
        raise ParseError(f"Invalid document version: {version}")
    return version


def _read_iv(document: Dict[str, Any]) -> bytes:
    raw = document.get("iv")
    if not isinstance(raw, str):
        raise ParseError("Document has no 'iv'")
    try:
        iv = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ParseError("Document 'iv' is not valid base64") from e
    if len(iv) != crypto.IV_SIZE:
        raise ParseError(f"Document 'iv' must be {crypto.IV_SIZE} bytes, got {len(iv)}")
    return iv


def _valid_salt_length(salt_length: Any) -> bool:
    # bool is an int subclass; reject it explicitly
    return isinstance(salt_length, int) and not isinstance(salt_length, bool) and salt_length >= 0


def _read_salt_length(document: Dict[str, Any], version: int) -> int:
    # Version 1 never salted; whatever is recorded is ignored
    if version < 2:
        return 0
    salt_length = document.get("salt_length")
    if not _valid_salt_length(salt_length):
        raise ParseError("Document has no valid 'salt_length'")
    return salt_length


def decode(
    document: Dict[str, Any],
    password: str,
    debug: bool = False,
    key_derivation: KeyDerivation = crypto.derive_key
) -> DecodeResult:
    """
    Decrypt a document back into a Vault.

    Args:
        document: Parsed document (see loads())
        password: Master password
        debug: Log diagnostics at DEBUG level
        key_derivation: Password -> key function (default: SHA-256)

    Returns:
        DecodeResult(vault, warning). warning is set when the document was
        written by an older format version.

    Raises:
        ParseError: Missing or malformed metadata
        VersionError: Document is newer than CURRENT_VERSION (nothing is
            decrypted)
        DecryptError: Any field failed to decrypt. Treat as wrong password.
    """
    if not isinstance(document, dict):
        raise ParseError("Document must be a JSON object")

    version = _read_version(document)
    if version > crypto.CURRENT_VERSION:
        raise VersionError(version, crypto.CURRENT_VERSION)

    warning = None
    if version < crypto.CURRENT_VERSION:
        warning = (
            f"Vault was written by format version {version}; it will be "
            f"upgraded to version {crypto.CURRENT_VERSION} on the next save."
        )

    iv = _read_iv(document)
    salt_length = _read_salt_length(document, version)
    key = key_derivation(password)

    fields = {name: value for name, value in document.items() if not is_reserved(name)}

    vault = Vault()
    for name, encoded in fields.items():
        if not isinstance(encoded, str):
            raise ParseError(f"Field '{name}' is not a string")
        try:
            ciphertext = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptError() from e
        vault.set(name, crypto.decrypt_field(ciphertext, key, iv, version, salt_length))

    if debug:
        logger.debug("Decoded %d entries (version %d, salt_length %d)",
                     len(vault), version, salt_length)

    return DecodeResult(vault, warning)


# =============================================================================
# Serialization
# =============================================================================

def dumps(document: Dict[str, Any]) -> bytes:
    """
    Serialize a document to compact UTF-8 JSON.

    Output never contains a raw newline, so it can be sent as one
    newline-delimited message.
    """
    return json.dumps(document, separators=(",", ":"), sort_keys=True,
                      ensure_ascii=False).encode(ENCODING)


def loads(data: Union[bytes, str]) -> Dict[str, Any]:
    """
    Parse serialized document bytes.

    Raises:
        ParseError: Not UTF-8, not JSON, or not a JSON object
    """
    try:
        if isinstance(data, bytes):
            data = data.decode(ENCODING)
        document = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"Document is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise ParseError("Document must be a JSON object")
    return document


def save(
    vault: Vault,
    password: str,
    salt_length: int = DEFAULT_SALT_LENGTH,
    debug: bool = False
) -> bytes:
    """Encode and serialize `vault` in one step."""
    return dumps(encode(vault, password, salt_length=salt_length, debug=debug))


def load(data: Union[bytes, str], password: str, debug: bool = False) -> DecodeResult:
    """Parse and decode serialized document bytes in one step."""
    return decode(loads(data), password, debug=debug)
