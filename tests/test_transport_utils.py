# -*- coding: utf-8 -*-
"""
Tests for transport_utils.py - TLS transport and CRLF line framing.
"""

import socket
import ssl
import unittest
from unittest.mock import MagicMock
from unittest.mock import patch

from fakes import TIMEOUT
from fakes import FakeClock
from fakes import FakeTransport
from imap_errors import ImapConnectionError
from imap_errors import ImapIOError
from imap_errors import ImapTimeoutError
from imap_errors import ProtocolError
from transport_utils import LineChannel
from transport_utils import TlsTransport


class TestLineChannelFraming(unittest.TestCase):
    """Tests for splitting the byte stream into lines"""

    def read_all(self, *chunks):
        channel = LineChannel(FakeTransport(chunks))
        lines = []
        while True:
            try:
                lines.append(channel.next_line(channel.clock() + 60))
            except ImapTimeoutError:
                return lines

    def test_single_chunk(self):
        self.assertEqual(self.read_all(b"* 6 EXISTS\r\n"), ["* 6 EXISTS"])

    def test_several_lines_in_one_read(self):
        lines = self.read_all(b"* 1 EXISTS\r\n* 2 EXISTS\r\nA001 OK done\r\n")
        self.assertEqual(lines, ["* 1 EXISTS", "* 2 EXISTS", "A001 OK done"])

    def test_split_at_every_boundary_matches_single_read(self):
        data = b"* 42 EXISTS\r\n"
        for cut in range(1, len(data)):
            with self.subTest(cut=cut):
                self.assertEqual(
                    self.read_all(data[:cut], data[cut:]), ["* 42 EXISTS"]
                )

    def test_split_between_cr_and_lf(self):
        self.assertEqual(self.read_all(b"+ idling\r", b"\n"), ["+ idling"])

    def test_lone_lf_is_not_a_terminator(self):
        self.assertEqual(self.read_all(b"* OK a\nb\r\n"), ["* OK a\nb"])

    def test_empty_line(self):
        self.assertEqual(self.read_all(b"\r\n"), [""])


class TestLineChannelLimits(unittest.TestCase):
    """Tests for deadlines and oversized lines"""

    def test_timeout_keeps_partial_line(self):
        transport = FakeTransport([b"* 6 EX", TIMEOUT, b"ISTS\r\n"])
        channel = LineChannel(transport)

        with self.assertRaises(ImapTimeoutError):
            channel.next_line(channel.clock() + 60)
        self.assertEqual(channel.next_line(channel.clock() + 60), "* 6 EXISTS")

    def test_passed_deadline_does_not_read(self):
        clock = FakeClock(100)
        transport = FakeTransport([b"* 1 EXISTS\r\n"])
        channel = LineChannel(transport, clock=clock)

        with self.assertRaises(ImapTimeoutError):
            channel.next_line(100)
        self.assertEqual(transport.timeouts, [])

    def test_buffered_line_returned_after_deadline(self):
        clock = FakeClock(0)
        channel = LineChannel(FakeTransport([b"* 1 EXISTS\r\n* 2 EXISTS\r\n"]), clock=clock)
        channel.next_line(10)
        clock.advance(20)

        self.assertEqual(channel.next_line(10), "* 2 EXISTS")

    def test_read_timeout_is_remaining_time(self):
        clock = FakeClock(0)
        transport = FakeTransport([b"* O", b"K\r\n"], clock=clock, step=4)
        channel = LineChannel(transport, clock=clock)

        channel.next_line(30)

        self.assertEqual(transport.timeouts, [30, 26])

    def test_oversized_line_without_terminator(self):
        channel = LineChannel(FakeTransport([b"x" * 20]), max_line_length=10)
        with self.assertRaises(ProtocolError):
            channel.next_line(channel.clock() + 60)

    def test_oversized_complete_line(self):
        channel = LineChannel(FakeTransport([b"x" * 11 + b"\r\n"]), max_line_length=10)
        with self.assertRaises(ProtocolError):
            channel.next_line(channel.clock() + 60)

    def test_line_at_limit_accepted(self):
        channel = LineChannel(FakeTransport([b"x" * 10, b"\r\n"]), max_line_length=10)
        self.assertEqual(channel.next_line(channel.clock() + 60), "x" * 10)

    def test_io_error_propagates(self):
        channel = LineChannel(FakeTransport([ImapIOError("reset")]))
        with self.assertRaises(ImapIOError):
            channel.next_line(channel.clock() + 60)


class TestLineChannelSend(unittest.TestCase):
    """Tests for writing lines"""

    def test_appends_crlf(self):
        transport = FakeTransport()
        LineChannel(transport).send("A001 IDLE")
        self.assertEqual(transport.written, [b"A001 IDLE\r\n"])

    def test_echo_replaces_logged_text(self):
        transport = FakeTransport()
        with self.assertLogs("transport_utils", level="DEBUG") as logs:
            LineChannel(transport).send('A001 LOGIN "u" "secret"', echo="A001 LOGIN u ***")

        self.assertNotIn("secret", "\n".join(logs.output))
        self.assertEqual(transport.written, [b'A001 LOGIN "u" "secret"\r\n'])

    def test_write_failure(self):
        transport = FakeTransport()
        transport.fail_writes = True
        with self.assertRaises(ImapIOError):
            LineChannel(transport).send("DONE")

    def test_close_closes_transport(self):
        transport = FakeTransport()
        LineChannel(transport).close()
        self.assertTrue(transport.closed)


class TestTlsTransport(unittest.TestCase):
    """Tests for the socket layer with the network mocked out"""

    def make_transport(self):
        context = MagicMock()
        return TlsTransport("imap.example.com", 993, timeout=5, context=context), context

    @patch("transport_utils.socket.create_connection")
    def test_connect_wraps_with_server_hostname(self, create_connection):
        transport, context = self.make_transport()

        transport.connect()

        create_connection.assert_called_once_with(("imap.example.com", 993), timeout=5)
        context.wrap_socket.assert_called_once_with(
            create_connection.return_value, server_hostname="imap.example.com"
        )
        self.assertIs(transport.sock, context.wrap_socket.return_value)

    @patch("transport_utils.socket.create_connection")
    def test_dns_failure(self, create_connection):
        create_connection.side_effect = socket.gaierror("Name or service not known")
        transport, _ = self.make_transport()

        with self.assertRaises(ImapConnectionError):
            transport.connect()

    @patch("transport_utils.socket.create_connection")
    def test_bad_certificate_closes_socket(self, create_connection):
        transport, context = self.make_transport()
        context.wrap_socket.side_effect = ssl.SSLCertVerificationError("hostname mismatch")

        with self.assertRaises(ImapConnectionError):
            transport.connect()
        create_connection.return_value.close.assert_called_once_with()

    def test_default_context_verifies_hostname(self):
        transport = TlsTransport("imap.example.com", 993)
        self.assertTrue(transport.context.check_hostname)
        self.assertEqual(transport.context.verify_mode, ssl.CERT_REQUIRED)

    def test_read_returns_data(self):
        transport, _ = self.make_transport()
        transport.sock = MagicMock()
        transport.sock.recv.return_value = b"* OK\r\n"

        self.assertEqual(transport.read(7), b"* OK\r\n")
        transport.sock.settimeout.assert_called_with(7)

    def test_read_timeout(self):
        transport, _ = self.make_transport()
        transport.sock = MagicMock()
        transport.sock.recv.side_effect = socket.timeout("timed out")

        with self.assertRaises(ImapTimeoutError):
            transport.read(1)

    def test_read_peer_close(self):
        transport, _ = self.make_transport()
        transport.sock = MagicMock()
        transport.sock.recv.return_value = b""

        with self.assertRaises(ImapIOError) as ctx:
            transport.read(1)
        self.assertNotIsInstance(ctx.exception, ImapTimeoutError)

    def test_read_reset(self):
        transport, _ = self.make_transport()
        transport.sock = MagicMock()
        transport.sock.recv.side_effect = ConnectionResetError()

        with self.assertRaises(ImapIOError):
            transport.read(1)

    def test_write_broken_pipe(self):
        transport, _ = self.make_transport()
        transport.sock = MagicMock()
        transport.sock.sendall.side_effect = BrokenPipeError()

        with self.assertRaises(ImapIOError):
            transport.write(b"DONE\r\n")

    def test_unconnected_read(self):
        transport, _ = self.make_transport()
        with self.assertRaises(ImapIOError):
            transport.read(1)

    def test_close_is_idempotent(self):
        transport, _ = self.make_transport()
        sock = transport.sock = MagicMock()

        transport.close()
        transport.close()

        sock.close.assert_called_once_with()
        self.assertIsNone(transport.sock)


if __name__ == "__main__":
    unittest.main(verbosity=2)
