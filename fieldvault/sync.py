"""
FieldVault - Synchronization

Share a vault with another machine over plain TCP and merge it into a
local one.

Protocol (port 2000 by default):
    - server accepts a connection, writes ONE encoded document followed by
      a newline, closes the connection, then accepts the next one
    - client connects, reads one line, closes

There is no handshake, no authentication and no transport encryption.
Only the field-level encryption of the document protects the secrets, and
the master password is never sent: both ends must know it already.

The server handles one connection at a time. A stalled client stalls the
server; there are no timeouts unless the client passes one to fetch().
"""

import enum
import socket
import logging
from typing import Any, Callable, Dict, NamedTuple, Optional, Tuple

from . import codec
from .config import DEFAULT_PORT, Config
from .errors import NetworkError
from .vault import Vault

logger = logging.getLogger(__name__)

MESSAGE_DELIMITER = b"\n"


# =============================================================================
# Server
# =============================================================================

class SyncServer:
    """
    Serve one encoded vault to every client that connects.

    The document is encoded once, up front, and the same bytes are sent to
    every client.

    Usage:
        with SyncServer(vault, "master password", port=2000) as server:
            server.serve_forever()
    """

    def __init__(
        self,
        vault: Vault,
        password: str,
        port: Optional[int] = None,
        host: str = "",
        config: Optional[Config] = None
    ):
        self.config = config or Config()
        self.host = host
        # An explicit port wins over config.port
        self.port = self.config.port if port is None else port
        self.payload = codec.save(
            vault, password, salt_length=self.config.salt_length, debug=self.config.debug
        ) + MESSAGE_DELIMITER
        self._sock: Optional[socket.socket] = None

    def bind(self) -> None:
        """
        Open the listening socket.

        Raises:
            NetworkError: Port unavailable
        """
        if self._sock is not None:
            return
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(1)
        except OSError as e:
            sock.close()
            raise NetworkError(f"Could not listen on port {self.port}: {e}") from e
        self._sock = sock
        if self.config.debug:
            logger.debug("Sync server listening on %s:%d", *self.address)

    @property
    def address(self) -> Tuple[str, int]:
        """(host, port) actually bound; useful when port 0 was requested."""
        if self._sock is None:
            raise RuntimeError("Server is not bound. Call bind() first.")
        return self._sock.getsockname()[:2]

    def serve_one(self) -> Tuple[str, int]:
        """
        Accept one client, send the document, close the connection.

        Returns:
            Client address

        Raises:
            NetworkError: Accept or send failed
        """
        self.bind()
        try:
            conn, addr = self._sock.accept()
        except OSError as e:
            raise NetworkError(f"Accept failed: {e}") from e

        with conn:
            try:
                conn.sendall(self.payload)
            except OSError as e:
                raise NetworkError(f"Sending vault to {addr[0]}:{addr[1]} failed: {e}") from e

        if self.config.debug:
            logger.debug("Sent vault to %s:%d", addr[0], addr[1])
        return addr

    def serve_forever(self) -> None:
        """Serve clients one after another until interrupted."""
        while True:
            self.serve_one()

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "SyncServer":
        self.bind()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def serve(
    vault: Vault,
    password: str,
    port: Optional[int] = None,
    host: str = "",
    config: Optional[Config] = None
) -> None:
    """
    Serve `vault` on `port` (config.port if None) until interrupted.

    Blocks forever. KeyboardInterrupt propagates to the caller after the
    listening socket is closed.
    """
    with SyncServer(vault, password, port=port, host=host, config=config) as server:
        server.serve_forever()


# =============================================================================
# Client
# =============================================================================

def fetch(host: str, port: int = DEFAULT_PORT, timeout: Optional[float] = None) -> Dict[str, Any]:
    """
    Download one encoded document from a sync server.

    Args:
        host: Server hostname or IP
        port: Server port
        timeout: Socket timeout in seconds (None blocks indefinitely)

    Returns:
        Parsed (still encrypted) document

    Raises:
        NetworkError: Connection failed, timed out, or closed before a full
            line was received
        ParseError: Received line is not a document
    """
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            with sock.makefile("rb") as stream:
                line = stream.readline()
    except OSError as e:
        raise NetworkError(f"Could not fetch vault from {host}:{port}: {e}") from e

    if not line.endswith(MESSAGE_DELIMITER):
        raise NetworkError(f"Connection to {host}:{port} closed before a complete vault was received")

    return codec.loads(line[:-len(MESSAGE_DELIMITER)])


# =============================================================================
# Merge
# =============================================================================

class Resolution(enum.Enum):
    """What to do with an entry whose local and remote values differ."""
    KEEP = "keep"
    OVERWRITE = "overwrite"


ConflictResolver = Callable[[str, str, str], Resolution]


def keep_local(name: str, local_value: str, remote_value: str) -> Resolution:
    """Resolver that always keeps the local value."""
    return Resolution.KEEP


def take_remote(name: str, local_value: str, remote_value: str) -> Resolution:
    """Resolver that always takes the remote value."""
    return Resolution.OVERWRITE


def merge(local: Vault, remote: Vault, resolve: ConflictResolver) -> Vault:
    """
    Pull entries from `remote` into a copy of `local`.

    - name only in remote: imported
    - same value on both sides: nothing to do
    - different values: resolve(name, local_value, remote_value) decides
    - name only in local: kept

    Not symmetric: nothing ever flows from local to remote.

    Returns:
        New merged Vault (`local` is not modified)
    """
    merged = local.copy()

    for name, remote_value in remote.items():
        if name not in merged:
            merged.set(name, remote_value)
            continue

        local_value = merged.get(name)
        if local_value == remote_value:
            continue

        resolution = resolve(name, local_value, remote_value)
        if resolution is Resolution.OVERWRITE:
            merged.set(name, remote_value)
        elif resolution is not Resolution.KEEP:
            raise ValueError(f"Conflict resolver returned {resolution!r} for '{name}'")

    return merged


class SyncResult(NamedTuple):
    """Merged vault plus the remote document's compatibility warning, if any."""
    vault: Vault
    warning: Optional[str] = None


def sync(
    host: str,
    port: int,
    local: Vault,
    remote_password: str,
    resolve: ConflictResolver,
    timeout: Optional[float] = None,
    debug: bool = False
) -> SyncResult:
    """
    Fetch the vault served at host:port, decrypt it, and merge it into `local`.

    Returns:
        SyncResult(vault, warning). warning is the remote document's
        compatibility warning, if any.

    Raises:
        NetworkError, ParseError, VersionError, DecryptError
    """
    document = fetch(host, port, timeout=timeout)
    remote, warning = codec.decode(document, remote_password, debug=debug)

    if debug:
        logger.debug("Fetched %d entries from %s:%d", len(remote), host, port)

    return SyncResult(merge(local, remote, resolve), warning)
