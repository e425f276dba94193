"""
FieldVault - Configuration

Defaults live here as module constants. Anything that varies per run is
carried in a Config object passed explicitly to the components that need it.

Config reads FIELDVAULT_* environment variables when it is created, e.g.
FIELDVAULT_DEBUG=1, FIELDVAULT_SALT_LENGTH=16, FIELDVAULT_PORT=2100,
FIELDVAULT_VAULT_PATH=~/vault.json. Keyword arguments override them.
"""

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Defaults
# =============================================================================

ENCODING = "utf-8"

# Length of the random salt appended to every field before encryption.
# Changing it is safe: each document records the length it was written with.
DEFAULT_SALT_LENGTH = 10

DEFAULT_PORT = 2000

DEFAULT_VAULT_PATH = os.path.join(os.path.expanduser("~"), ".fieldvault", "vault.json")


class Config(BaseSettings):
    """Runtime settings for one process invocation."""

    debug: bool = False
    salt_length: int = Field(default=DEFAULT_SALT_LENGTH, ge=0)
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    vault_path: str = DEFAULT_VAULT_PATH

    model_config = SettingsConfigDict(env_prefix="FIELDVAULT_", extra="ignore")

    @field_validator("vault_path")
    @classmethod
    def _expand_home(cls, value: str) -> str:
        return os.path.expanduser(value)
