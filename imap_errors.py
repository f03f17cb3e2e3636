# -*- coding: utf-8 -*-
"""
Exception hierarchy for the IMAP session and its transport.
"""


class ImapError(Exception):
    """Base class for everything raised by the IMAP layers"""


class ImapConnectionError(ImapError):
    """DNS, TCP or TLS failure, or the server dropped the session"""


class ImapIOError(ImapError):
    """Read or write fault on an established connection"""


class ImapTimeoutError(ImapIOError):
    """A read deadline passed without a complete line"""


class ProtocolError(ImapError):
    """Malformed or unexpected server response"""


class AuthenticationError(ImapError):
    """The server rejected the credentials"""


# Errors the supervisor recovers from by reconnecting.
# AuthenticationError is fatal and not listed.
RETRYABLE_ERRORS = (ImapConnectionError, ImapIOError, ProtocolError)
