"""
FieldVault - Sync Self-Tests (merge, serve, fetch)

Run with: python test_sync.py   (or: pytest)

Network tests use a server on 127.0.0.1 with an OS-assigned port, served
from a background thread so the test itself can act as the client.
"""

import time
import socket
import threading
from unittest import mock

from fieldvault import codec
from fieldvault.config import DEFAULT_PORT, Config
from fieldvault.errors import DecryptError, NetworkError, ParseError
from fieldvault.sync import (
    Resolution, SyncServer, fetch, keep_local, merge, serve, sync, take_remote
)
from fieldvault.vault import Vault

TIMEOUT = 5


def _serve_in_background(server: SyncServer, count: int = 1) -> threading.Thread:
    """Serve `count` clients from a daemon thread."""
    def run():
        for _ in range(count):
            server.serve_one()
    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_merge_keep_and_overwrite():
    """Test the conflict resolution policy."""
    print("Testing Merge...")

    local = Vault({"a": "1"})
    remote = Vault({"a": "2", "b": "3"})

    kept = merge(local, remote, keep_local)
    assert kept == {"a": "1", "b": "3"}
    print("  [OK] Keep leaves local value")

    overwritten = merge(local, remote, take_remote)
    assert overwritten == {"a": "2", "b": "3"}
    print("  [OK] Overwrite takes remote value")

    assert local == {"a": "1"}, "merge() must not modify local"


def test_merge_resolver_calls():
    """Test that the resolver only sees real conflicts."""
    print("Testing Merge Resolver Calls...")

    calls = []

    def resolver(name, local_value, remote_value):
        calls.append((name, local_value, remote_value))
        return Resolution.OVERWRITE

    local = Vault({"same": "x", "diff": "old", "local_only": "mine"})
    remote = Vault({"same": "x", "diff": "new", "remote_only": "theirs"})

    merged = merge(local, remote, resolver)
    assert calls == [("diff", "old", "new")]
    assert merged == {"same": "x", "diff": "new", "local_only": "mine", "remote_only": "theirs"}

    # Not symmetric: the first argument is the side being kept
    assert merge(local, remote, keep_local).get("diff") == "old"
    assert merge(remote, local, keep_local).get("diff") == "new"

    try:
        merge(local, remote, lambda *args: "overwrite")
    except ValueError:
        pass
    else:
        raise AssertionError("Resolver must return a Resolution")
    print("  [OK] Resolver called for conflicts only")


def test_serve_and_fetch():
    """Test one server, two sequential clients, same document."""
    print("Testing Serve/Fetch...")

    vault = Vault({"github": "pw1", "email": "pw2"})
    with SyncServer(vault, "secret", port=0, host="127.0.0.1") as server:
        host, port = server.address
        thread = _serve_in_background(server, count=2)

        first = fetch(host, port, timeout=TIMEOUT)
        second = fetch(host, port, timeout=TIMEOUT)
        thread.join(TIMEOUT)

    # Encoded once, shared across connections
    assert first == second
    assert codec.decode(first, "secret").vault == vault
    print("  [OK] Same document served to every client")


def test_sync_end_to_end():
    """Test sync() against a live server."""
    print("Testing Sync...")

    remote = Vault({"a": "2", "b": "3"})
    local = Vault({"a": "1"})

    with SyncServer(remote, "remote-pw", port=0, host="127.0.0.1", config=Config(debug=True)) as server:
        host, port = server.address
        thread = _serve_in_background(server, count=2)

        result = sync(host, port, local, "remote-pw", keep_local, timeout=TIMEOUT)
        assert result.vault == {"a": "1", "b": "3"}
        assert result.warning is None

        try:
            result = sync(host, port, local, "wrong-pw", take_remote, timeout=TIMEOUT)
        except DecryptError:
            pass
        else:
            assert result.vault != {"a": "2", "b": "3"}
        thread.join(TIMEOUT)

    print("  [OK] Sync merges the remote vault")


def test_fetch_connection_refused():
    """Test fetch() when nothing is listening."""
    print("Testing Connection Refused...")

    port = _free_port()
    try:
        fetch("127.0.0.1", port, timeout=TIMEOUT)
    except NetworkError:
        print("  [OK] Connection failure raises NetworkError")
    else:
        raise AssertionError("fetch() should fail with nothing listening")


def test_fetch_incomplete_message():
    """Test peers that disconnect early or send garbage."""
    print("Testing Incomplete Messages...")

    def one_shot_server(payload: bytes):
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)

        def run():
            conn, _ = listener.accept()
            with conn:
                conn.sendall(payload)
            listener.close()

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        return listener.getsockname()[1], thread

    # Disconnect before the newline
    port, thread = one_shot_server(b'{"version": 2')
    try:
        fetch("127.0.0.1", port, timeout=TIMEOUT)
    except NetworkError:
        pass
    else:
        raise AssertionError("Truncated message should fail")
    thread.join(TIMEOUT)

    # Complete line that is not a document
    port, thread = one_shot_server(b"hello\n")
    try:
        fetch("127.0.0.1", port, timeout=TIMEOUT)
    except ParseError:
        pass
    else:
        raise AssertionError("Garbage message should fail to parse")
    thread.join(TIMEOUT)

    print("  [OK] Incomplete or garbage messages rejected")


def test_bind_failure():
    """Test that an occupied port raises NetworkError."""
    print("Testing Bind Failure...")

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        port = busy.getsockname()[1]

        server = SyncServer(Vault(), "secret", port=port, host="127.0.0.1")
        try:
            server.bind()
        except NetworkError:
            print("  [OK] Occupied port raises NetworkError")
        else:
            server.close()
            raise AssertionError("Binding an occupied port should fail")


def test_server_port_from_config():
    """Test that config.port is used unless a port is passed."""
    print("Testing Server Port Selection...")

    assert SyncServer(Vault(), "secret").port == DEFAULT_PORT
    assert SyncServer(Vault(), "secret", config=Config(port=2100)).port == 2100
    assert SyncServer(Vault(), "secret", port=2200, config=Config(port=2100)).port == 2200

    port = _free_port()
    with SyncServer(Vault({"a": "1"}), "secret", host="127.0.0.1", config=Config(port=port)) as server:
        assert server.address[1] == port
        thread = _serve_in_background(server)
        document = fetch("127.0.0.1", port, timeout=TIMEOUT)
        thread.join(TIMEOUT)
    assert codec.decode(document, "secret").vault == {"a": "1"}
    print("  [OK] config.port is honoured")


def test_serve_closes_socket_on_interrupt():
    """Test serve(): serves clients, then releases the port when interrupted."""
    print("Testing serve() Interrupt...")

    port = _free_port()
    served = []

    def serve_once_then_interrupt(server):
        served.append(server.serve_one())
        raise KeyboardInterrupt

    def client():
        # Retry until serve() is listening
        for _ in range(100):
            try:
                served.append(fetch("127.0.0.1", port, timeout=TIMEOUT))
                return
            except NetworkError:
                time.sleep(0.05)

    thread = threading.Thread(target=client, daemon=True)
    thread.start()

    with mock.patch.object(SyncServer, "serve_forever", serve_once_then_interrupt):
        try:
            serve(Vault({"a": "1"}), "secret", host="127.0.0.1", config=Config(port=port))
        except KeyboardInterrupt:
            pass
        else:
            raise AssertionError("KeyboardInterrupt should propagate")
    thread.join(TIMEOUT)

    assert len(served) == 2
    document = [item for item in served if isinstance(item, dict)][0]
    assert codec.decode(document, "secret").vault == {"a": "1"}

    # Listening socket is closed: the port can be bound again
    # (SO_REUSEADDR skips TIME_WAIT but still fails against a listener)
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        s.bind(("127.0.0.1", port))
        s.listen(1)
    print("  [OK] serve() closes its socket on interrupt")


def run_all_tests():
    """Run all tests."""
    print("=" * 70)
    print("FieldVault - Sync Test Suite")
    print("=" * 70)
    print()

    tests = [
        test_merge_keep_and_overwrite,
        test_merge_resolver_calls,
        test_serve_and_fetch,
        test_sync_end_to_end,
        test_fetch_connection_refused,
        test_fetch_incomplete_message,
        test_bind_failure,
        test_server_port_from_config,
        test_serve_closes_socket_on_interrupt,
    ]

    failed = []

    for test in tests:
        try:
            test()
            print()
        except Exception as e:
            print(f"  [FAIL] TEST FAILED: {e}")
            failed.append((test.__name__, e))
            print()

    print("=" * 70)
    if not failed:
        print("[OK] ALL TESTS PASSED!")
    else:
        print(f"[FAIL] {len(failed)} TESTS FAILED:")
        for name, error in failed:
            print(f"  - {name}: {error}")
    print("=" * 70)

    return len(failed) == 0


if __name__ == "__main__":
    import sys
    success = run_all_tests()
    sys.exit(0 if success else 1)
