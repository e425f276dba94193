"""
FieldVault - Per-Field Encrypted Password Vault

Named secrets, each encrypted on its own, stored as one self-describing
JSON document, plus a tiny TCP protocol to merge two vaults.

Components:
- crypto.py: key derivation and versioned field encryption
- codec.py: vault <-> document encoding
- vault.py: in-memory vault
- storage.py: atomic file persistence
- sync.py: serve / fetch / merge
- config.py, errors.py: settings and error types

Usage:
    from fieldvault import Vault, storage

    vault = Vault()
    vault.create("github", "hunter2")
    storage.save_file(vault, "master password", "vault.json")
    vault, warning = storage.load_file("vault.json", "master password")
"""

from .codec import DecodeResult, load, save
from .config import Config
from .errors import DecryptError, FieldVaultError, NetworkError, ParseError, VersionError
from .sync import Resolution, merge, serve, sync
from .vault import Vault

__version__ = "2.0.0"

__all__ = [
    "Config",
    "DecodeResult",
    "DecryptError",
    "FieldVaultError",
    "NetworkError",
    "ParseError",
    "Resolution",
    "Vault",
    "VersionError",
    "load",
    "merge",
    "save",
    "serve",
    "sync",
]
