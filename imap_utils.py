# -*- coding: utf-8 -*-
"""
IMAP protocol utilities: session state machine, IDLE, credentials, connection helper.
Only LOGIN, SELECT, IDLE/DONE and LOGOUT are ever sent.
"""

import collections
import getpass
import logging
import os

import config_data
from imap_errors import AuthenticationError
from imap_errors import ImapConnectionError
from imap_errors import ImapError
from imap_errors import ImapTimeoutError
from imap_errors import ProtocolError
from response_utils import Tagged
from response_utils import Untagged
from response_utils import parse
from transport_utils import LineChannel
from transport_utils import TlsTransport

logger = logging.getLogger(__name__)

Credentials = collections.namedtuple(
    "Credentials", ["server", "port", "username", "password"]
)

# Session states
CONNECTING = "CONNECTING"
AUTHENTICATING = "AUTHENTICATING"
SELECTING = "SELECTING"
SELECTED = "SELECTED"
IDLING = "IDLING"
LOGGED_OUT = "LOGGED_OUT"

# Results of Session.wait()
NEW_MAIL = "NEW_MAIL"
INTERVAL_ELAPSED = "INTERVAL_ELAPSED"


def get_credential(env_var, prompt, value=None):
    """
    Get credential from command line, environment, or prompt.

    Priority:
    1. Explicit value (from the command line)
    2. Environment variable
    3. Interactive prompt (masked input)
    """
    if value:
        return value

    value = os.environ.get(env_var)
    if value:
        return value

    return getpass.getpass(prompt)


def quote(value):
    """
    Encode a command argument.

    Returns:
        (text, literal) where literal is None for a quoted string, or the
        raw value when it has to go out as a synchronizing literal
    """
    if any(c in value for c in "\r\n\0") or not value.isascii():
        return "{%d}" % len(value.encode("utf-8")), value
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"', None


class Session:
    """
    One authenticated IMAP connection with a selected mailbox.

    At most one command is outstanding. Its tag is kept in self.tag until
    the tagged completion arrives; a completion carrying any other tag is
    a ProtocolError.

    Args:
        channel: LineChannel connected to the server
        config: Module or object with command_timeout
    """

    def __init__(self, channel, config=config_data):
        self.channel = channel
        self.config = config
        self.state = CONNECTING
        self.tag = None
        self.tagnum = 0
        self.count = 0
        self.preauth = False
        self.closing = False
        self.announced = False

    @property
    def awaiting(self):
        """True while a tagged completion is outstanding"""
        return self.tag is not None

    # ------------------------------------------------------------------
    # Command plumbing
    # ------------------------------------------------------------------

    def _new_tag(self):
        self.tagnum += 1
        return "A%03d" % self.tagnum

    def _deadline(self, timeout=None):
        if timeout is None:
            timeout = self.config.command_timeout
        return self.channel.clock() + timeout

    def _next(self, deadline):
        return parse(self.channel.next_line(deadline), self.tag)

    def _untagged(self, response):
        """Track mailbox state from untagged data, unknown keywords are ignored"""
        if response.keyword == "EXISTS" and response.number is not None:
            if self.state == SELECTING or response.number > self.count:
                self.count = response.number
        elif response.keyword == "EXPUNGE" and response.number is not None:
            self.count = max(self.count - 1, 0)
        elif response.keyword == "BYE" and not self.closing:
            raise ImapConnectionError(f"server closed session: {response.text}")

    def _await_tagged(self, deadline, continuation=False):
        """
        Read until the completion of self.tag, feeding untagged data to
        _untagged(). With continuation=True a "+" line ends the wait early
        and None is returned.
        """
        while True:
            response = self._next(deadline)
            if isinstance(response, Tagged):
                self.tag = None
                return response
            if isinstance(response, Untagged):
                self._untagged(response)
            elif continuation and response.text.startswith("+"):
                return None

    def _command(self, name, *args, echo=None):
        """
        Send a tagged command and return its completion.

        Args:
            name: Command name
            args: Plain strings or (text, literal) pairs from quote();
                  each literal is sent after the server's "+" go-ahead
            echo: Text logged in place of the arguments

        Returns:
            Tagged completion
        """
        self.tag = self._new_tag()

        segments = [[self.tag, name]]
        for arg in args:
            text, literal = arg if isinstance(arg, tuple) else (arg, None)
            segments[-1].append(text)
            if literal is not None:
                segments.append([literal])
        lines = [" ".join(segment) for segment in segments]

        deadline = self._deadline()
        for i, line in enumerate(lines):
            if i:
                completion = self._await_tagged(deadline, continuation=True)
                if completion is not None:
                    return completion
            if echo is None:
                shown = None
            elif i == 0:
                shown = f"{self.tag} {echo}"
            else:
                shown = "***"
            self.channel.send(line, echo=shown)

        return self._await_tagged(deadline)

    # ------------------------------------------------------------------
    # Protocol steps
    # ------------------------------------------------------------------

    def greet(self):
        """Read the server greeting"""
        response = self._next(self._deadline())
        if isinstance(response, Untagged) and response.keyword == "BYE":
            raise ImapConnectionError(f"server refused connection: {response.text}")
        if not isinstance(response, Untagged) or response.keyword not in ("OK", "PREAUTH"):
            raise ProtocolError(f"unexpected greeting: {response}")
        self.preauth = response.keyword == "PREAUTH"
        self.state = AUTHENTICATING

    def login(self, username, password):
        """
        Authenticate with LOGIN, skipped after a PREAUTH greeting.

        Raises:
            AuthenticationError: Server answered NO or BAD
        """
        self.state = AUTHENTICATING
        if self.preauth:
            return
        completion = self._command(
            "LOGIN", quote(username), quote(password), echo=f"LOGIN {username} ***"
        )
        if completion.status != "OK":
            raise AuthenticationError(
                f"server rejected login for {username}: {completion.status} {completion.text}"
            )

    def select(self, mailbox=config_data.inbox):
        """
        SELECT the mailbox and record its message count.

        Raises:
            ProtocolError: Mailbox unavailable
        """
        self.state = SELECTING
        self.count = 0
        completion = self._command("SELECT", quote(mailbox))
        if completion.status != "OK":
            raise ProtocolError(
                f"mailbox unavailable: {mailbox}: {completion.status} {completion.text}"
            )
        self.state = SELECTED
        logger.info("%s contains %d messages", mailbox, self.count)

    def idle(self):
        """
        Send IDLE and enter the wait state without reading the reply.
        self.tag then names the completion that ends the wait.
        """
        if self.state != SELECTED:
            raise ProtocolError(f"cannot IDLE in state {self.state}")
        self.tag = self._new_tag()
        self.channel.send(f"{self.tag} IDLE")
        self.state = IDLING

    def done(self):
        """
        End IDLE and wait for its tagged completion.

        Returns:
            True if the message count grew while the reply was drained
        """
        baseline = self.count
        self.channel.send("DONE")
        completion = self._await_tagged(self._deadline())
        if completion.status != "OK":
            raise ProtocolError(f"IDLE failed: {completion.status} {completion.text}")
        self.state = SELECTED
        return self.count > baseline

    def wait(self, timeout):
        """
        Block in IDLE until new mail arrives or timeout seconds pass.
        Ignored lines do not extend the deadline. An EXPUNGE lowers the
        count and with it the baseline, so an arrival after a deletion
        still counts as new mail even when EXISTS does not pass the
        count seen when IDLE began.

        Returns:
            NEW_MAIL or INTERVAL_ELAPSED, with IDLE ended in both cases
        """
        if self.state != IDLING:
            raise ProtocolError(f"cannot wait in state {self.state}")

        deadline = self._deadline(timeout)
        baseline = self.count
        try:
            while True:
                response = self._next(deadline)
                if isinstance(response, Untagged):
                    self._untagged(response)
                    if self.count > baseline:
                        self.done()
                        return NEW_MAIL
                    # EXPUNGE lowers the bar for the next arrival
                    baseline = self.count
                elif isinstance(response, Tagged):
                    # server ended IDLE by itself
                    self.tag = None
                    self.state = SELECTED
                    if response.status != "OK":
                        raise ProtocolError(
                            f"IDLE rejected: {response.status} {response.text}"
                        )
                    return INTERVAL_ELAPSED
                elif response.text.startswith("+"):
                    if self.announced:
                        logger.debug("IDLE refreshed")
                    else:
                        logger.info("Connected and idling ...")
                        self.announced = True
        except ImapTimeoutError:
            pass

        return NEW_MAIL if self.done() else INTERVAL_ELAPSED

    def logout(self):
        """Best-effort LOGOUT, protocol errors are logged and ignored"""
        if self.state in (LOGGED_OUT, CONNECTING):
            return
        self.closing = True
        try:
            if self.state == IDLING:
                self.done()
            self._command("LOGOUT")
        except ImapError as e:
            logger.debug("logout failed: %s", e)
        self.state = LOGGED_OUT

    def close(self):
        self.state = LOGGED_OUT
        self.tag = None
        self.channel.close()


def connect_and_idle(config, credentials, mailbox=None, transport_factory=TlsTransport):
    """
    Connect to IMAP server, log in, select the mailbox and enter IDLE.

    Args:
        config: Configuration module with timeouts and limits
        credentials: Credentials namedtuple
        mailbox: Mailbox to watch, defaults to config.inbox
        transport_factory: (host, port, timeout) -> unconnected transport

    Returns:
        Session in IDLING state

    Raises:
        ImapConnectionError, ImapIOError, ProtocolError on connection failures
        AuthenticationError if the credentials are rejected
    """
    transport = transport_factory(
        credentials.server, credentials.port, config.connect_timeout
    )
    transport.connect()
    session = Session(LineChannel(transport, config.max_line_length), config)
    try:
        session.greet()
        session.login(credentials.username, credentials.password)
        session.select(mailbox or config.inbox)
        session.idle()
    except BaseException:
        session.close()
        raise
    return session
