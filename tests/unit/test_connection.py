"""
Unit tests for the Connection transport and the WaitGroup.
"""

import socket
import threading
import time

import pytest

from minihttp.core.connection import Connection
from minihttp.core.socket_server import WaitGroup
from minihttp.http.errors import Timeout, WriteFailure


@pytest.fixture
def pair():
    server_sock, client_sock = socket.socketpair()
    yield server_sock, client_sock
    for sock in (server_sock, client_sock):
        try:
            sock.close()
        except OSError:
            pass


class TestConnectionReading:
    """Tests for buffered reads."""

    def test_readline_splits_buffered_data(self, pair):
        server_sock, client_sock = pair
        conn = Connection(socket=server_sock, address=("test", 0))
        client_sock.sendall(b"first\r\nsecond\r\nrest")

        assert conn.readline() == b"first\r\n"
        assert conn.readline() == b"second\r\n"
        assert conn.read(4) == b"rest"

    def test_readline_respects_limit(self, pair):
        server_sock, client_sock = pair
        conn = Connection(socket=server_sock, address=("test", 0))
        client_sock.sendall(b"abcdefgh\n")

        assert conn.readline(4) == b"abcd"
        assert conn.readline() == b"efgh\n"

    def test_readline_at_eof(self, pair):
        server_sock, client_sock = pair
        conn = Connection(socket=server_sock, address=("test", 0))
        client_sock.sendall(b"partial")
        client_sock.shutdown(socket.SHUT_WR)

        assert conn.readline() == b"partial"
        assert conn.readline() == b""
        assert conn.read(10) == b""

    def test_read_deadline(self, pair):
        server_sock, _client_sock = pair
        conn = Connection(socket=server_sock, address=("test", 0))
        conn.set_deadlines(read_timeout=0.2, write_timeout=None)

        started = time.monotonic()
        with pytest.raises(Timeout):
            conn.readline()
        assert time.monotonic() - started < 2

    def test_elapsed_deadline_fails_before_recv(self, pair):
        server_sock, client_sock = pair
        conn = Connection(socket=server_sock, address=("test", 0))
        conn.set_deadlines(read_timeout=0.05, write_timeout=None)
        time.sleep(0.1)
        client_sock.sendall(b"too late\n")

        with pytest.raises(Timeout):
            conn.readline()

    def test_timeout_is_a_timeout_error(self):
        assert issubclass(Timeout, TimeoutError)


class TestConnectionWriting:
    """Tests for buffered writes."""

    def test_nothing_sent_until_flush(self, pair):
        server_sock, client_sock = pair
        conn = Connection(socket=server_sock, address=("test", 0))
        client_sock.settimeout(0.2)

        conn.write(b"hello ")
        conn.write(b"world")
        with pytest.raises(socket.timeout):
            client_sock.recv(100)

        conn.flush()
        client_sock.settimeout(2)
        assert client_sock.recv(100) == b"hello world"

    def test_elapsed_write_deadline(self, pair):
        server_sock, _client_sock = pair
        conn = Connection(socket=server_sock, address=("test", 0))
        conn.set_deadlines(read_timeout=None, write_timeout=0.05)
        time.sleep(0.1)

        conn.write(b"late")
        with pytest.raises(Timeout):
            conn.flush()

    def test_flush_after_peer_closed(self, pair):
        server_sock, client_sock = pair
        conn = Connection(socket=server_sock, address=("test", 0))
        client_sock.close()

        conn.write(b"x" * 1024 * 1024)
        with pytest.raises(WriteFailure):
            conn.flush()


class TestConnectionClose:
    """Tests for close()."""

    def test_close_is_idempotent(self, pair):
        server_sock, client_sock = pair
        conn = Connection(socket=server_sock, address=("test", 0))
        client_sock.shutdown(socket.SHUT_WR)

        conn.close()
        conn.close()

        assert conn.closed

    def test_deadlines_on_closed_connection(self, pair):
        server_sock, client_sock = pair
        conn = Connection(socket=server_sock, address=("test", 0))
        client_sock.shutdown(socket.SHUT_WR)
        conn.close()

        with pytest.raises(OSError):
            conn.set_deadlines(5.0, 5.0)

    def test_short_id(self, pair):
        server_sock, _ = pair
        assert len(Connection(socket=server_sock, address=("test", 0)).id) == 8


class TestWaitGroup:
    """Tests for WaitGroup."""

    def test_wait_returns_immediately_at_zero(self):
        assert WaitGroup().wait(timeout=0.1) is True

    def test_wait_times_out(self):
        wg = WaitGroup()
        wg.add(1)

        assert wg.wait(timeout=0.1) is False
        assert wg.count == 1

    def test_done_from_other_thread_releases_wait(self):
        wg = WaitGroup()
        wg.add(2)

        def worker():
            time.sleep(0.1)
            wg.done()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()

        assert wg.wait(timeout=5) is True
        assert wg.count == 0
        for t in threads:
            t.join()

    def test_negative_counter_rejected(self):
        with pytest.raises(ValueError):
            WaitGroup().done()
