"""
FieldVault - Guided Journey (single run, no user input)

Run: python demo.py

Walks through what a caller (CLI, script) does with the core and explains
what happens under the hood:
 - Creating and editing a vault in memory
 - Saving it as an encrypted document (atomic file write)
 - Looking at the document on disk
 - Loading it back with the master password
 - Serving it over TCP and syncing it into a second vault
 - Resolving a conflict during the merge
"""

import os
import json
import tempfile
import threading
from textwrap import indent

from fieldvault import codec, storage
from fieldvault.config import Config
from fieldvault.sync import Resolution, SyncServer, sync
from fieldvault.vault import Vault


LINE = "=" * 70


def step(title: str, code_path: str):
    print(f"\n{LINE}\n{title}  (code: {code_path})\n{LINE}")


def explain(title: str, body: str):
    print(f"\n[Behind the scenes] {title}")
    print(indent(body.strip(), "  "))


def ask_user(name: str, local_value: str, remote_value: str) -> Resolution:
    """Stand-in for the interactive prompt a CLI would show."""
    print(f"  Conflict on '{name}': local={local_value!r} remote={remote_value!r} -> user keeps local")
    return Resolution.KEEP


def main():
    step("FieldVault - Guided Journey", "demo.py")
    master_password = "CorrectHorseBatteryStaple!"
    config = Config(debug=False)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "vault.json")

        # 1) Build a vault
        step("Create entries", "fieldvault/vault.py:Vault.create")
        vault = Vault()
        vault.create("github", "ghp_super_secret_token")
        vault.create("email", "hunter2")
        vault.set("email", "correct-horse")
        print(f"Vault entries: {vault.names()}")
        explain(
            "In-memory only",
            "A Vault is a plain name -> secret mapping. Nothing is encrypted until it is saved.",
        )

        # 2) Save
        step("Save vault", "fieldvault/storage.py:save_file")
        storage.save_file(vault, master_password, path, config)
        print(f"Output: saved to {path}")
        explain(
            "Encoding",
            "key = SHA-256(master password). One random IV for the whole document. "
            f"Each value gets {config.salt_length} random salt characters appended, then AES-256-CBC. "
            "The file is written to a temp file and moved into place with os.replace().",
        )

        # 3) Peek at the document
        step("Document on disk", "fieldvault/codec.py:encode")
        with open(path, "rb") as f:
            document = json.loads(f.read())
        for name, value in sorted(document.items()):
            if name == "description":
                value = value[:50] + "..."
            print(f"  {name:<12} {value}")

        # 4) Load
        step("Load vault", "fieldvault/storage.py:load_file")
        loaded, warning = storage.load_file(path, master_password, config)
        print(f"Output: {dict(loaded.items())}")
        print(f"Compatibility warning: {warning}")

        # 5) Sync
        step("Sync from another machine", "fieldvault/sync.py:SyncServer / sync")
        with SyncServer(loaded, master_password, port=0, host="127.0.0.1", config=config) as server:
            host, port = server.address
            thread = threading.Thread(target=server.serve_one, daemon=True)
            thread.start()

            laptop = Vault({"github": "old_token", "bank": "1234"})
            print(f"Laptop before sync: {laptop.names()}")
            result = sync(host, port, laptop, master_password, ask_user, timeout=5)
            thread.join(5)

        print(f"Laptop after sync: {dict(result.vault.items())}")
        explain(
            "Merge policy",
            "Remote-only entries are imported, equal values are skipped, differing values go to the "
            "resolver (KEEP or OVERWRITE). Laptop-only entries are never touched or sent back.",
        )

        # 6) Persist the merge result
        step("Save merged vault", "fieldvault/codec.py:save")
        data = codec.save(result.vault, master_password)
        print(f"Output: {len(data)} bytes, fully replaces the previous document")

    print("\nCleaned up temporary vault directory")


if __name__ == "__main__":
    main()
