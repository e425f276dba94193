"""
FieldVault - File Storage

Reads and writes the encoded document on disk.

Every save replaces the whole file. The new document is written to a
temporary file in the same directory and moved over the old one with
os.replace(), so an interrupted save leaves the previous file intact.

Two processes saving the same file at once is NOT guarded against: the
last one to finish wins.
"""

import os
import tempfile
from typing import Optional

from . import codec
from .config import Config
from .vault import Vault


def ensure_vault_dir(path: str) -> None:
    d = os.path.dirname(path)
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


def save_file(
    vault: Vault,
    password: str,
    path: Optional[str] = None,
    config: Optional[Config] = None
) -> None:
    """
    Encrypt `vault` and atomically replace the file at `path`.

    Args:
        vault: Vault to persist
        password: Master password
        path: Destination file (parent directory is created if missing);
            None means config.vault_path
        config: Salt length, debug flag and default path (defaults if None)

    Raises:
        ValueError: Invalid salt length. Nothing is written.
    """
    config = config or Config()
    path = path or config.vault_path
    data = codec.save(vault, password, salt_length=config.salt_length, debug=config.debug)

    ensure_vault_dir(path)
    fd, tmp_path = tempfile.mkstemp(
        prefix=".fieldvault-", suffix=".tmp", dir=os.path.dirname(path) or "."
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def load_file(
    path: Optional[str],
    password: str,
    config: Optional[Config] = None
) -> codec.DecodeResult:
    """
    Read and decrypt the vault file at `path` (None means config.vault_path).

    Raises:
        FileNotFoundError: No vault at `path` (caller decides whether to
            start with an empty Vault)
        ParseError, VersionError, DecryptError: See codec.decode()
    """
    config = config or Config()
    path = path or config.vault_path
    with open(path, "rb") as f:
        data = f.read()
    return codec.load(data, password, debug=config.debug)
