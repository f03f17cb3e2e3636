#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Continuous IMAP IDLE watcher daemon.
Runs a command whenever new mail arrives or an interval elapses.
Automatically reconnects with exponential backoff on failures.
"""

import logging
import sys
import time

import click

import command_utils
import config_data
import imap_utils
import log_utils
from imap_errors import RETRYABLE_ERRORS
from imap_errors import AuthenticationError

logger = logging.getLogger(__name__)


def next_timeout(config, interval, last_run, now):
    """
    Seconds to stay in IDLE before the next wake-up.

    Without an interval this is the IDLE refresh ceiling; with one it is
    whatever remains of the interval, capped by the ceiling.
    """
    if interval is None:
        return config.idle_timeout
    remaining = interval - (now - last_run)
    return max(0, min(config.idle_timeout, remaining))


def run(
    config,
    credentials,
    handler,
    interval=None,
    mailbox=None,
    connect=imap_utils.connect_and_idle,
    sleep=time.sleep,
    clock=time.time,
):
    """
    Keep an IDLE session alive forever and call handler on triggers.

    Args:
        config: Configuration module with timeouts and backoff limits
        credentials: imap_utils.Credentials
        handler: handler(reason) called for new mail and elapsed intervals
        interval: Seconds between unconditional runs, None to disable
        mailbox: Mailbox to watch, defaults to config.inbox
        connect: (config, credentials, mailbox) -> Session in IDLE
        sleep: Delay function used between reconnects
        clock: Wall-clock time source for the interval

    Raises:
        AuthenticationError: Credentials rejected, retrying cannot help
    """
    retry_delay = config.initial_delay
    last_run = clock()

    while True:
        session = None
        try:
            session = connect(config, credentials, mailbox)
            retry_delay = config.initial_delay
            logger.info("Connected to %s", credentials.server)

            while True:
                timeout = next_timeout(config, interval, last_run, clock())
                trigger = session.wait(timeout)

                if trigger == imap_utils.NEW_MAIL:
                    handler("New email")
                    last_run = clock()
                elif interval is not None and clock() - last_run >= interval:
                    handler("Interval timer expired")
                    last_run = clock()

                session.idle()

        except AuthenticationError:
            raise

        except RETRYABLE_ERRORS as e:
            logger.info("Connection failed: %s", e)

        except Exception:
            logger.exception("Unexpected error")

        except KeyboardInterrupt:
            logger.info("Shutting down gracefully...")
            if session is not None:
                session.logout()
            break

        finally:
            if session is not None:
                session.close()

        logger.info("Retrying in %s seconds...", retry_delay)
        try:
            sleep(retry_delay)
        except KeyboardInterrupt:
            logger.info("Shutting down gracefully...")
            break
        retry_delay = min(retry_delay * 2, config.max_delay)


@click.command()
@click.option("-s", "--server", envvar="IMAPIDLE_SERVER", required=True, help="IMAP server domain")
@click.option("--port", default=config_data.imap_port, show_default=True, help="IMAP server port")
@click.option("-u", "--username", envvar="IMAPIDLE_USERNAME", required=True, help="IMAP user name")
@click.option("-p", "--password", help="IMAP password (default: $IMAPIDLE_PASSWORD or prompt)")
@click.option(
    "-i",
    "--interval",
    type=click.IntRange(min=1),
    help="Interval (in seconds) at which to run even if no email arrives",
)
@click.option("-c", "--command", required=True, help="Command to run when new mail arrives")
@click.option("--mailbox", default=config_data.inbox, show_default=True, help="Mailbox to watch")
@click.option(
    "--command-timeout",
    type=click.IntRange(min=1),
    default=config_data.external_command_timeout,
    help="Kill the command after this many seconds",
)
@click.option("-v", "--verbose", count=True, help="Show status lines and all server responses")
def main(server, port, username, password, interval, command, mailbox, command_timeout, verbose):
    """Uses IMAP IDLE to run a command whenever a new email arrives."""
    password = imap_utils.get_credential("IMAPIDLE_PASSWORD", "Password: ", password)
    log_utils.setup_logging(verbose, secrets=[password])

    credentials = imap_utils.Credentials(server, port, username, password)
    handler = command_utils.Command(command, command_timeout)

    try:
        run(config_data, credentials, handler, interval=interval, mailbox=mailbox)
    except AuthenticationError as e:
        logger.error("The server rejected authentication: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
