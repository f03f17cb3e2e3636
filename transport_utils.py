# -*- coding: utf-8 -*-
"""
TLS transport and CRLF line framing for the IMAP session.
"""

import logging
import socket
import ssl
import time

import config_data
from imap_errors import ImapConnectionError
from imap_errors import ImapIOError
from imap_errors import ImapTimeoutError
from imap_errors import ProtocolError

CRLF = b"\r\n"

logger = logging.getLogger(__name__)


# ============================================================================
# Transport
# ============================================================================


class TlsTransport:
    """
    Encrypted byte stream to an IMAP server.

    The peer certificate is verified against the system trust store and
    must be valid for the host name.
    """

    def __init__(self, host, port, timeout=config_data.connect_timeout, context=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.context = context or ssl.create_default_context()
        self.sock = None

    def connect(self):
        """
        Resolve, connect and complete the TLS handshake.

        Raises:
            ImapConnectionError: On DNS, TCP, handshake or certificate failure
        """
        raw = None
        try:
            raw = socket.create_connection((self.host, self.port), timeout=self.timeout)
            self.sock = self.context.wrap_socket(raw, server_hostname=self.host)
        except (OSError, ssl.SSLError) as e:
            if raw is not None:
                raw.close()
            raise ImapConnectionError(
                f"cannot connect to {self.host}:{self.port}: {e}"
            ) from e

        logger.debug(
            "TLS established: %s %s", self.sock.version(), (self.sock.cipher() or ("?",))[0]
        )
        return self

    def read(self, timeout, size=config_data.read_size):
        """
        Read at most size bytes, blocking up to timeout seconds.

        Raises:
            ImapTimeoutError: Nothing arrived in time
            ImapIOError: Connection reset or closed by the server
        """
        if self.sock is None:
            raise ImapIOError("not connected")
        try:
            self.sock.settimeout(timeout)
            data = self.sock.recv(size)
        except socket.timeout as e:
            raise ImapTimeoutError("read timed out") from e
        except (OSError, ssl.SSLError) as e:
            raise ImapIOError(f"read failed: {e}") from e

        if not data:
            raise ImapIOError("connection closed by server")
        return data

    def write(self, data):
        """Send all of data. Raises ImapIOError on failure."""
        if self.sock is None:
            raise ImapIOError("not connected")
        try:
            self.sock.settimeout(self.timeout)
            self.sock.sendall(data)
        except (OSError, ssl.SSLError) as e:
            raise ImapIOError(f"write failed: {e}") from e

    def close(self):
        if self.sock is None:
            return
        try:
            self.sock.close()
        except OSError:
            pass
        self.sock = None


# ============================================================================
# Line framing
# ============================================================================


class LineChannel:
    """
    Splits the transport byte stream into CRLF-terminated protocol lines.

    Args:
        transport: Object with read(timeout) and write(data)
        max_line_length: Longest line accepted from the server, in bytes
        clock: Monotonic time source used for deadlines
    """

    def __init__(
        self,
        transport,
        max_line_length=config_data.max_line_length,
        clock=time.monotonic,
    ):
        self.transport = transport
        self.max_line_length = max_line_length
        self.clock = clock
        self.buffer = b""

    def send(self, line, echo=None):
        """
        Write one line, appending CRLF.

        Args:
            line: Command text without terminator
            echo: Text to log instead of line (hides credentials)
        """
        logger.debug("C: %s", line if echo is None else echo)
        self.transport.write(line.encode("utf-8") + CRLF)

    def next_line(self, deadline):
        """
        Return the next line without its CRLF.

        Args:
            deadline: Absolute time on self.clock

        Raises:
            ImapTimeoutError: Deadline passed before a full line arrived
            ImapIOError: Transport failure
            ProtocolError: Line longer than max_line_length
        """
        while True:
            end = self.buffer.find(CRLF)
            if end >= 0:
                raw, self.buffer = self.buffer[:end], self.buffer[end + len(CRLF):]
                if len(raw) > self.max_line_length:
                    raise ProtocolError(f"line exceeds {self.max_line_length} bytes")
                line = raw.decode("utf-8", errors="replace")
                logger.debug("S: %s", line)
                return line

            # A trailing CR may be the first half of a split terminator
            if len(self.buffer) > self.max_line_length + 1:
                raise ProtocolError(f"line exceeds {self.max_line_length} bytes")

            remaining = deadline - self.clock()
            if remaining <= 0:
                raise ImapTimeoutError("no complete line before deadline")
            self.buffer += self.transport.read(remaining)

    def close(self):
        self.buffer = b""
        self.transport.close()
