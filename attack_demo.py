"""
FieldVault - Weakness Demonstration

Run: python attack_demo.py

The format trades security for compatibility. This script shows exactly
where the limits are:
1) Wrong master password: usually bad padding, sometimes silent garbage.
2) Newer format versions are refused before anything is decrypted.
3) Shared IV: with salt_length = 0, equal secrets give equal ciphertext.
4) Entries named like metadata ("version", "iv", ...) are lost.
5) No key stretching: a password guess costs one SHA-256.
"""

import time

from fieldvault import codec, crypto
from fieldvault.config import Config
from fieldvault.errors import DecryptError, VersionError
from fieldvault.vault import Vault


LINE = "=" * 70


def section(title: str):
    print(f"\n{LINE}\n{title}\n{LINE}")


def main():
    master_password = "CorrectHorseBatteryStaple!"
    vault = Vault({"github": "pw1", "email": "pw1", "bank": "1234"})
    document = codec.encode(vault, master_password)

    # 1) Wrong master password
    section("Weakness 1: Wrong master password")
    detected = garbage = 0
    for i in range(200):
        try:
            codec.decode(document, f"guess-{i}")
            garbage += 1
        except DecryptError:
            detected += 1
    print(f"Detected by padding: {detected}/200, silently decoded to garbage: {garbage}/200")
    print("CBC has no integrity check; only invalid padding reveals a wrong key.")

    # 2) Version gate
    section("Weakness 2: Version gate")
    future = dict(document, version=crypto.CURRENT_VERSION + 1)
    try:
        codec.decode(future, master_password)
        print("Unexpected: newer document decoded")
    except VersionError as e:
        print(f"Expected failure: {e}")

    # 3) Shared IV without salt
    section("Weakness 3: Shared IV with salt_length = 0")
    config = Config(salt_length=0)
    unsalted = codec.encode(vault, master_password, salt_length=config.salt_length)
    salted = codec.encode(vault, master_password)
    print(f"salt_length=0:  github == email ciphertext? {unsalted['github'] == unsalted['email']}")
    print(f"salt_length=10: github == email ciphertext? {salted['github'] == salted['email']}")

    # 4) Reserved names
    section("Weakness 4: Reserved field names")
    shadowed = Vault({"version": "my secret", "github": "pw1"})
    restored = codec.decode(codec.encode(shadowed, master_password), master_password).vault
    print(f"Before: {shadowed.names()}  After: {restored.names()}")

    # 5) No stretching
    section("Weakness 5: Unsalted single-hash key derivation")
    start = time.perf_counter()
    for i in range(100000):
        crypto.derive_key(f"guess-{i}")
    elapsed = time.perf_counter() - start
    print(f"100000 password guesses hashed in {elapsed:.2f}s on one core")
    print("Same password always gives the same key, across every vault.")


if __name__ == "__main__":
    main()
