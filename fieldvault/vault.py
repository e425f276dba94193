"""
FieldVault - Vault Module

The in-memory vault: a plain mapping of entry name -> secret.

A Vault knows nothing about encryption or files. It is built empty or by
decoding a document (see codec.py), edited by the caller, then re-encoded
and written out in full (see storage.py).

Usage:
    vault = Vault()
    vault.create("github", "hunter2")
    vault.set("github", "correct horse")
    vault.delete("github")
"""

from typing import Dict, Iterator, List, Mapping, Optional, Tuple


class Vault:
    """Named plaintext secrets held for one process invocation."""

    def __init__(self, entries: Optional[Mapping[str, str]] = None):
        self._entries: Dict[str, str] = {}
        if entries:
            for name, value in entries.items():
                self.set(name, value)

    # =========================================================================
    # ENTRY OPERATIONS
    # =========================================================================

    def create(self, name: str, value: str) -> None:
        """
        Add a new entry.

        Raises:
            KeyError: If an entry with this name already exists
        """
        if name in self._entries:
            raise KeyError(f"Entry '{name}' already exists")
        self.set(name, value)

    def set(self, name: str, value: str) -> None:
        """Add or overwrite an entry."""
        if not isinstance(name, str) or not isinstance(value, str):
            raise TypeError("Entry names and values must be strings")
        self._entries[name] = value

    def get(self, name: str) -> str:
        """
        Return the secret stored under `name`.

        Raises:
            KeyError: If there is no such entry
        """
        try:
            return self._entries[name]
        except KeyError:
            raise KeyError(f"Entry '{name}' not found") from None

    def delete(self, name: str) -> None:
        """
        Remove an entry.

        Raises:
            KeyError: If there is no such entry
        """
        if name not in self._entries:
            raise KeyError(f"Entry '{name}' not found")
        del self._entries[name]

    def names(self) -> List[str]:
        """Entry names, sorted."""
        return sorted(self._entries)

    def items(self) -> List[Tuple[str, str]]:
        return sorted(self._entries.items())

    def to_dict(self) -> Dict[str, str]:
        return dict(self._entries)

    def copy(self) -> "Vault":
        return Vault(self._entries)

    # =========================================================================
    # PROTOCOL
    # =========================================================================

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Vault):
            return self._entries == other._entries
        if isinstance(other, Mapping):
            return self._entries == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        # Never print secrets
        return f"Vault(names={self.names()!r})"
