"""
Unit tests for the connection lifecycle, driven over socket.socketpair().
"""

import gzip
import logging
import socket
import threading
import time

import pytest

from minihttp.core.connection import Connection
from minihttp.core.session import Session, SessionState, process_common_headers
from minihttp.http.request import HTTPRequest
from minihttp.http.response import HTTPResponse, ok
from minihttp.http.router import Router
from minihttp.handlers import register_default_routes


@pytest.fixture
def router() -> Router:
    router = register_default_routes(Router())

    @router.exact("/boom")
    def boom(request):
        raise RuntimeError("handler bug")

    router.freeze()
    return router


@pytest.fixture
def pair():
    server_sock, client_sock = socket.socketpair()
    yield server_sock, client_sock
    for sock in (server_sock, client_sock):
        try:
            sock.close()
        except OSError:
            pass


def start_session(server_sock, router, **kwargs):
    conn = Connection(socket=server_sock, address=("test", 0))
    session = Session(conn, router, **kwargs)
    thread = threading.Thread(target=session.run, daemon=True)
    thread.start()
    return session, thread


class TestSessionKeepAlive:
    """Tests for the request/response loop."""

    def test_multiple_requests_on_one_connection(self, pair, router, client):
        server_sock, client_sock = pair
        session, thread = start_session(server_sock, router)
        c = client(sock=client_sock)

        first = c.request("GET", "/echo/one")
        second = c.request("GET", "/echo/two")

        assert (first.status, first.body) == (200, b"one")
        assert (second.status, second.body) == (200, b"two")
        assert thread.is_alive()

        c.request("GET", "/", headers={"Connection": "close"})
        thread.join(timeout=5)
        assert session.connection.requests_handled == 3

    def test_connection_close_ends_session(self, pair, router, client):
        server_sock, client_sock = pair
        session, thread = start_session(server_sock, router)
        c = client(sock=client_sock)

        response = c.request("GET", "/", headers={"Connection": "Close"})

        assert response.status == 200
        assert response.headers["connection"] == "close"
        assert c.is_closed()
        thread.join(timeout=5)
        assert session.state is SessionState.CLOSED

    def test_pipelined_requests_answered_in_order(self, pair, router, client):
        server_sock, client_sock = pair
        start_session(server_sock, router)
        c = client(sock=client_sock)

        c.send(
            b"GET /echo/a HTTP/1.1\r\n\r\n"
            b"POST /echo/b HTTP/1.1\r\nContent-Length: 4\r\n\r\nbody"
            b"GET /echo/c HTTP/1.1\r\n\r\n"
        )

        assert [c.read_response().body for _ in range(3)] == [b"a", b"b", b"c"]

    def test_gzip_negotiated(self, pair, router, client):
        server_sock, client_sock = pair
        start_session(server_sock, router)
        c = client(sock=client_sock)

        response = c.request("GET", "/echo/abc", headers={"Accept-Encoding": "invalid, gzip"})

        assert response.headers["content-encoding"] == "gzip"
        assert int(response.headers["content-length"]) == len(response.body)
        assert gzip.decompress(response.body) == b"abc"

    def test_keep_running_false_closes_after_response(self, pair, router, client):
        server_sock, client_sock = pair
        _, thread = start_session(server_sock, router, keep_running=lambda: False)
        c = client(sock=client_sock)

        assert c.request("GET", "/").status == 200
        assert c.is_closed()
        thread.join(timeout=5)
        assert not thread.is_alive()


class TestSessionErrors:
    """Tests for the failure paths."""

    def test_handler_exception_becomes_500(self, pair, router, client, caplog):
        server_sock, client_sock = pair
        _, thread = start_session(server_sock, router)
        c = client(sock=client_sock)

        with caplog.at_level(logging.ERROR, logger="minihttp"):
            response = c.request("GET", "/boom")

        assert response.status == 500
        assert "Handler error" in caplog.text
        # The connection is still usable
        assert c.request("GET", "/echo/after").body == b"after"
        assert thread.is_alive()

    def test_malformed_request_closes_without_response(self, pair, router, client):
        server_sock, client_sock = pair
        session, thread = start_session(server_sock, router)
        c = client(sock=client_sock)

        c.send(b"NOT A VALID REQUEST LINE\r\n\r\n")

        assert c.is_closed()
        thread.join(timeout=5)
        assert session.state is SessionState.CLOSED
        assert session.connection.requests_handled == 0

    def test_invalid_content_length_closes(self, pair, router, client):
        server_sock, client_sock = pair
        start_session(server_sock, router)
        c = client(sock=client_sock)

        c.send(b"POST /echo/x HTTP/1.1\r\nContent-Length: -5\r\n\r\n")

        assert c.is_closed()

    def test_client_disconnect_mid_request(self, pair, router):
        server_sock, client_sock = pair
        session, thread = start_session(server_sock, router)

        client_sock.sendall(b"GET / HTTP/1.1\r\nHost: x")
        client_sock.shutdown(socket.SHUT_WR)

        thread.join(timeout=5)
        assert not thread.is_alive()
        assert session.state is SessionState.CLOSED

    def test_idle_connection_times_out(self, pair, router, client):
        server_sock, client_sock = pair
        started = time.monotonic()
        session, thread = start_session(server_sock, router, read_timeout=0.3)
        c = client(sock=client_sock)

        assert c.is_closed(timeout=5)
        thread.join(timeout=5)
        assert time.monotonic() - started < 4
        assert session.state is SessionState.CLOSED

    def test_slow_request_hits_read_deadline(self, pair, router, client):
        """Test that the deadline covers the whole request, not each recv()."""
        server_sock, client_sock = pair
        _, thread = start_session(server_sock, router, read_timeout=0.5)
        c = client(sock=client_sock)

        c.send(b"GET / HTTP/1.1\r\n")
        for _ in range(4):
            time.sleep(0.2)
            try:
                c.send(b"X-Slow: 1\r\n")
            except OSError:
                break

        thread.join(timeout=5)
        assert not thread.is_alive()


class TestRequestLogging:
    def test_request_line_logged(self, pair, router, client, caplog):
        server_sock, client_sock = pair
        session, thread = start_session(server_sock, router)
        c = client(sock=client_sock)

        with caplog.at_level(logging.INFO, logger="minihttp"):
            c.request("GET", "/echo/hi", headers={"Connection": "close"})
            thread.join(timeout=5)

        assert f"[{session.connection.id}] GET /echo/hi -> 200" in caplog.text


class TestProcessCommonHeaders:
    """Tests for process_common_headers()."""

    def test_adds_content_length_for_body(self):
        response = ok("abc")
        process_common_headers(HTTPRequest(method="GET", path="/"), response)

        assert response.headers["content-length"] == "3"

    def test_no_content_length_for_empty_body(self):
        response = HTTPResponse(status=404)
        process_common_headers(HTTPRequest(method="GET", path="/"), response)

        assert "content-length" not in response.headers

    def test_existing_content_length_kept(self):
        response = HTTPResponse(headers={"Content-Length": "3"}, body=b"abc")
        process_common_headers(HTTPRequest(method="GET", path="/"), response)

        assert response.headers["content-length"] == "3"

    def test_connection_close_echoed(self):
        response = ok()
        request = HTTPRequest(method="GET", path="/", headers={"Connection": "CLOSE"})
        process_common_headers(request, response)

        assert response.headers["connection"] == "close"

    def test_keep_alive_request_gets_no_connection_header(self):
        response = ok()
        process_common_headers(HTTPRequest(method="GET", path="/"), response)

        assert "connection" not in response.headers
