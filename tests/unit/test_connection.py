"""
Unit tests for Connection, driven over a local socket pair.
"""

import logging
import socket

import pytest

from conftest import ResponseReader, recv_response, recv_until_closed
from echohttp.core import Connection, ConnectionState


@pytest.fixture
def socket_pair():
    server_side, client_side = socket.socketpair()
    client_side.settimeout(2.0)
    yield server_side, client_side
    client_side.close()
    server_side.close()


def make_connection(server_side, **kwargs) -> Connection:
    return Connection(socket=server_side, address=("127.0.0.1", 50000), **kwargs)


class TestReadAndRespond:

    def test_answers_request(self, socket_pair, sample_get_request):
        server_side, client = socket_pair
        conn = make_connection(server_side)

        client.sendall(sample_get_request)
        conn.handle_read()

        response = recv_response(client)
        assert response.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Method: GET Path: /x Protocol: HTTP/1.1" in response
        assert conn.requests_handled == 1
        assert conn.state == ConnectionState.OPEN

    def test_request_split_across_reads(self, socket_pair, sample_post_request):
        server_side, client = socket_pair
        conn = make_connection(server_side)

        client.sendall(sample_post_request[:20])
        conn.handle_read()
        assert conn.requests_handled == 0

        client.sendall(sample_post_request[20:])
        conn.handle_read()

        response = recv_response(client)
        assert b"<pre>name=Alice</pre>" in response

    def test_two_requests_in_one_read(self, socket_pair):
        server_side, client = socket_pair
        conn = make_connection(server_side)

        client.sendall(b"GET /a HTTP/1.1\r\n\r\nGET /b HTTP/1.1\r\n\r\n")
        conn.handle_read()

        reader = ResponseReader(client)
        first = reader.read_response()
        second = reader.read_response()
        assert b"Path: /a " in first
        assert b"Path: /b " in second
        assert conn.requests_handled == 2

    def test_access_log_entry(self, socket_pair, sample_get_request, caplog):
        server_side, client = socket_pair
        conn = make_connection(server_side)

        with caplog.at_level(logging.INFO, logger="echohttp.access"):
            client.sendall(sample_get_request)
            conn.handle_read()

        messages = [r.getMessage() for r in caplog.records if r.name == "echohttp.access"]
        assert len(messages) == 1
        assert '"GET /x HTTP/1.1"' in messages[0]

    def test_access_log_survives_failed_send(self, socket_pair, sample_get_request, caplog):
        """A send error closes the connection; the log still names the request."""
        server_side, client = socket_pair
        conn = make_connection(server_side)

        client.sendall(sample_get_request)
        client.close()

        with caplog.at_level(logging.INFO, logger="echohttp.access"):
            conn.handle_read()

        messages = [r.getMessage() for r in caplog.records if r.name == "echohttp.access"]
        assert conn.state == ConnectionState.CLOSED
        assert len(messages) == 1
        assert '"GET /x HTTP/1.1"' in messages[0]


class TestBackpressure:

    def test_reading_pauses_while_output_is_queued(self, socket_pair, sample_get_request):
        server_side, client = socket_pair
        conn = make_connection(server_side, max_pending_output=1024)

        # the client reads nothing, so most of this stays queued
        size = 4 * 1024 * 1024
        conn.write(b"x" * size)
        assert conn.wants_write
        assert not conn.wants_read

        client.sendall(sample_get_request)
        conn.handle_read()
        assert conn.requests_handled == 0

        received = 0
        while received < size:
            received += len(client.recv(min(65536, size - received)))
            conn.handle_write()

        assert conn.wants_read
        conn.handle_read()

        assert recv_response(client).startswith(b"HTTP/1.1 200 OK\r\n")
        assert conn.requests_handled == 1


class TestMalformedInput:

    def test_closes_without_response(self, socket_pair, caplog):
        server_side, client = socket_pair
        conn = make_connection(server_side)

        with caplog.at_level(logging.WARNING, logger="echohttp.core.connection"):
            client.sendall(b"GET /x\r\n")
            conn.handle_read()

        assert conn.state == ConnectionState.CLOSED
        assert recv_until_closed(client) == b""
        assert any("3 parts" in r.getMessage() for r in caplog.records)

    def test_bad_header_closes(self, socket_pair):
        server_side, client = socket_pair
        conn = make_connection(server_side)

        client.sendall(b"GET / HTTP/1.1\r\nBadHeaderNoColon\r\n")
        conn.handle_read()

        assert conn.state == ConnectionState.CLOSED
        assert recv_until_closed(client) == b""

    def test_sends_400_when_enabled(self, socket_pair):
        server_side, client = socket_pair
        conn = make_connection(server_side, send_error_response=True)

        client.sendall(b"POST / HTTP/1.1\r\nContent-Length: abc\r\n")
        conn.handle_read()

        data = recv_until_closed(client)
        assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")
        assert conn.state == ConnectionState.CLOSED

    def test_earlier_responses_are_kept(self, socket_pair):
        """A good request answered before the bad one still gets its response."""
        server_side, client = socket_pair
        conn = make_connection(server_side)

        client.sendall(b"GET /ok HTTP/1.1\r\n\r\nnonsense\r\n")
        conn.handle_read()

        data = recv_until_closed(client)
        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert data.count(b"HTTP/1.1 200 OK\r\n") == 1
        assert b"400 Bad Request" not in data

    def test_body_over_limit_closes(self, socket_pair):
        server_side, client = socket_pair
        conn = make_connection(server_side, max_body_size=4)

        client.sendall(b"POST / HTTP/1.1\r\nContent-Length: 5\r\n\r\nabcde")
        conn.handle_read()

        assert conn.state == ConnectionState.CLOSED
        assert conn.requests_handled == 0

    def test_too_many_headers_closes(self, socket_pair):
        server_side, client = socket_pair
        conn = make_connection(server_side, max_headers=2)

        client.sendall(b"GET / HTTP/1.1\r\nA: 1\r\nB: 2\r\nC: 3\r\n\r\n")
        conn.handle_read()

        assert conn.state == ConnectionState.CLOSED
        assert conn.requests_handled == 0

    def test_overlong_line(self, socket_pair):
        server_side, client = socket_pair
        conn = make_connection(server_side, max_line_size=16)

        client.sendall(b"GET /" + b"a" * 32)
        conn.handle_read()

        assert conn.state == ConnectionState.CLOSED


class TestClose:

    def test_peer_close(self, socket_pair):
        server_side, client = socket_pair
        conn = make_connection(server_side)

        client.sendall(b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc")
        conn.handle_read()
        client.shutdown(socket.SHUT_WR)
        conn.handle_read()

        assert conn.state == ConnectionState.CLOSED
        assert conn.parser.detached
        assert conn.requests_handled == 0

    def test_close_is_idempotent(self, socket_pair):
        server_side, _ = socket_pair
        closed = []
        conn = make_connection(server_side, on_close=closed.append)

        conn.close()
        conn.close()

        assert closed == [conn]
        assert not conn.wants_read
        assert not conn.wants_write

    def test_context_manager(self, socket_pair):
        server_side, _ = socket_pair

        with make_connection(server_side) as conn:
            assert conn.state == ConnectionState.OPEN

        assert conn.state == ConnectionState.CLOSED
