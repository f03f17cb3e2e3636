# -*- coding: utf-8 -*-
"""
Logging setup: verbosity levels and secret masking.
"""

import logging

LOG_FORMAT = "%(asctime)s %(message)s"
LOG_DATE_FORMAT = "%Y.%m.%d %H.%M.%S"

# -v shows status lines and every protocol line
LEVELS = [logging.WARNING, logging.DEBUG]

# Shorter secrets would mangle unrelated text
MIN_SECRET_LENGTH = 4


class SecretMaskingFilter(logging.Filter):
    """Replace registered secrets in log records with ***"""

    def __init__(self, secrets=()):
        super().__init__()
        self.secrets = [s for s in secrets if s and len(s) >= MIN_SECRET_LENGTH]

    def mask(self, text):
        for secret in self.secrets:
            text = text.replace(secret, "***")
        return text

    def filter(self, record):
        if self.secrets:
            record.msg = self.mask(str(record.msg))
            if record.args:
                record.args = tuple(
                    self.mask(str(arg)) if isinstance(arg, (str, BaseException)) else arg
                    for arg in record.args
                )
        return True


def setup_logging(verbosity=0, secrets=(), stream=None):
    """
    Configure the root logger once.

    Args:
        verbosity: 0 quiet, 1 or more for status lines and protocol echo
        secrets: Strings that must never appear in the log
        stream: Output stream, defaults to stderr

    Returns:
        The installed handler
    """
    level = LEVELS[min(max(verbosity, 0), len(LEVELS) - 1)]

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    handler.addFilter(SecretMaskingFilter(secrets))

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(level)
    return handler
