"""
FieldVault - Error Types

Every failure the core can report to a caller. Nothing here is recovered
internally: the caller (CLI, GUI, script) decides whether to retry, prompt
again, or exit.
"""


class FieldVaultError(Exception):
    """Base class for all FieldVault errors."""


class ParseError(FieldVaultError):
    """Document is malformed or missing required metadata."""


class VersionError(FieldVaultError):
    """Document format version is newer than this decoder supports."""

    def __init__(self, version: int, supported: int):
        self.version = version
        self.supported = supported
        super().__init__(
            f"Document version {version} is not supported "
            f"(newest supported version is {supported})"
        )


class DecryptError(FieldVaultError):
    """
    Field decryption failed.

    Raised for the whole document, never per field. Callers should present
    it as "invalid password".
    """

    def __init__(self, message: str = "Invalid password"):
        super().__init__(message)


class NetworkError(FieldVaultError):
    """Connection failed or the peer disconnected mid-message."""
