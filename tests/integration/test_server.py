"""
End-to-end tests against a running server on an ephemeral port.
"""

import socket
import time

import pytest

from conftest import ResponseReader, TestServer, recv_response, recv_until_closed
from echohttp import HTTPServer, ServerConfig


def body_of(response: bytes) -> bytes:
    return response.partition(b"\r\n\r\n")[2]


class TestKeepAlive:

    def test_single_request(self, test_server, sample_get_request):
        with test_server.connect() as sock:
            sock.sendall(sample_get_request)
            response = recv_response(sock)

        head = response.partition(b"\r\n\r\n")[0]
        assert head.split(b"\r\n")[:2] == [b"HTTP/1.1 200 OK", b"Content-Type: text/html"]
        assert b"<tr><td>Host</td><td>a</td></tr>" in body_of(response)

    def test_sequential_requests_on_one_connection(self, test_server):
        with test_server.connect() as sock:
            sock.sendall(b"GET /first HTTP/1.1\r\nX-First: yes\r\n\r\n")
            first = recv_response(sock)

            sock.sendall(b"GET /second HTTP/1.1\r\nX-Second: yes\r\n\r\n")
            second = recv_response(sock)

        assert b"X-First" in body_of(first)
        assert b"X-Second" in body_of(second)
        assert b"X-First" not in body_of(second)

    def test_byte_by_byte_delivery(self, test_server, sample_post_request):
        with test_server.connect() as sock:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            for i in range(len(sample_post_request)):
                sock.sendall(sample_post_request[i:i + 1])
            response = recv_response(sock)

        assert b"<pre>name=Alice</pre>" in body_of(response)

    def test_body_in_two_writes(self, test_server):
        with test_server.connect() as sock:
            sock.sendall(b"POST /f HTTP/1.1\r\nContent-Length: 5\r\n\r\nab")
            time.sleep(0.05)
            sock.sendall(b"cde")
            response = recv_response(sock)

        assert b"<pre>abcde</pre>" in body_of(response)

    def test_content_length_matches_body(self, test_server):
        with test_server.connect() as sock:
            sock.sendall("GET /café HTTP/1.1\r\n\r\n".encode("utf-8"))
            response = recv_response(sock)

        head, _, body = response.partition(b"\r\n\r\n")
        assert f"Content-Length: {len(body)}".encode() in head

    def test_pipelined_requests(self, test_server):
        with test_server.connect() as sock:
            sock.sendall(b"GET /a HTTP/1.1\r\n\r\nGET /b HTTP/1.1\r\n\r\n")
            reader = ResponseReader(sock)
            first = reader.read_response()
            second = reader.read_response()

        assert b"Path: /a " in body_of(first)
        assert b"Path: /b " in body_of(second)


class TestMalformed:

    @pytest.mark.parametrize("payload", [
        b"GET /x\r\n",
        b"GET /x HTTP/1.1 extra\r\n",
        b"GET / HTTP/1.1\r\nBadHeaderNoColon\r\n",
        b"POST / HTTP/1.1\r\nContent-Length: abc\r\n",
    ])
    def test_connection_closed_silently(self, test_server, payload):
        with test_server.connect() as sock:
            sock.sendall(payload)
            assert recv_until_closed(sock) == b""

    def test_huge_content_length_only_drops_that_client(self, test_server, sample_get_request):
        with test_server.connect() as sock:
            sock.sendall(b"POST / HTTP/1.1\r\nContent-Length: " + b"9" * 5000 + b"\r\n")
            assert recv_until_closed(sock) == b""

        assert test_server.server.is_running
        with test_server.connect() as sock:
            sock.sendall(sample_get_request)
            assert recv_response(sock).startswith(b"HTTP/1.1 200 OK\r\n")

    def test_400_when_enabled(self, strict_server):
        with strict_server.connect() as sock:
            sock.sendall(b"GET /x\r\n")
            data = recv_until_closed(sock)

        assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")


class TestTransport:

    def test_idle_connection_closed(self, config):
        config.idle_timeout = 0.3
        server = TestServer(HTTPServer(config))
        server.start()
        try:
            with server.connect() as sock:
                sock.sendall(b"GET /slow HTTP/1.1\r\n")
                started = time.monotonic()
                assert recv_until_closed(sock) == b""
                assert time.monotonic() - started < 3.0
        finally:
            server.stop()

    def test_shutdown_stops_loop(self, config):
        server = TestServer(HTTPServer(config))
        server.start()
        server.stop()

        assert server.server.wait_for_shutdown(timeout=2.0)
        assert not server.server.is_running

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            HTTPServer(ServerConfig(port=-5))
