# -*- coding: utf-8 -*-
"""
External command runner.
The command's exit status is reported, never raised: a failing command
must not break the IDLE loop.
"""

import logging
import subprocess

logger = logging.getLogger(__name__)


def run_command(command, timeout=None):
    """
    Run command through the shell and wait for it.

    Output goes straight to our stdout/stderr.

    Args:
        command: Shell command string
        timeout: Seconds before the command is killed, None to wait forever

    Returns:
        Exit status, or None if the command could not be started or timed out
    """
    try:
        completed = subprocess.run(command, shell=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning("Command timed out after %s seconds: %s", timeout, command)
        return None
    except OSError as e:
        logger.warning("Command failed to start: %s: %s", command, e)
        return None

    if completed.returncode != 0:
        logger.info("Command exited with status %d", completed.returncode)
    else:
        logger.info("Command finished.")
    return completed.returncode


def Command(command, timeout=None, execute=run_command):
    """
    Factory: Create trigger handler that runs command.

    Handler signature: handler(reason) -> exit status or None
    """

    def handler(reason):
        logger.info("%s, running command ...", reason)
        return execute(command, timeout)

    return handler
