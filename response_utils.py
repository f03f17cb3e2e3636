# -*- coding: utf-8 -*-
"""
Server response classification.
Every line is exactly one of Tagged, Untagged or Continuation.
"""

import collections

from imap_errors import ProtocolError

STATUSES = ("OK", "NO", "BAD")

Tagged = collections.namedtuple("Tagged", ["tag", "status", "text"])
Untagged = collections.namedtuple("Untagged", ["number", "keyword", "text"])
Continuation = collections.namedtuple("Continuation", ["text"])


def _split(text, limit):
    parts = text.split(" ", limit)
    return parts + [""] * (limit + 1 - len(parts))


def parse(line, tag=None):
    """
    Classify one server line.

    Args:
        line: Line without CRLF
        tag: Tag of the command currently awaiting completion, if any

    Returns:
        Tagged, Untagged or Continuation

    Raises:
        ProtocolError: Malformed untagged line, bad status on our tag,
                       or a completion carrying some other tag
    """
    if line.startswith("* "):
        first, rest = _split(line[2:], 1)
        if first.isdigit():
            keyword, text = _split(rest, 1)
            number = int(first)
        else:
            keyword, text = first, rest
            number = None
        if not keyword:
            raise ProtocolError(f"malformed untagged response: {line!r}")
        return Untagged(number, keyword.upper(), text)

    if line == "*":
        raise ProtocolError("malformed untagged response: '*'")

    if line.startswith("+"):
        return Continuation(line)

    first, status, text = _split(line, 2)

    if tag is not None and first == tag:
        if status.upper() not in STATUSES:
            raise ProtocolError(f"malformed tagged response: {line!r}")
        return Tagged(first, status.upper(), text)

    if first and first != "*" and status.upper() in STATUSES:
        raise ProtocolError(f"unexpected tag {first!r} (awaiting {tag!r})")

    return Continuation(line)


def serialize(response):
    """Rebuild a wire line (without CRLF) from a parsed response"""
    if isinstance(response, Tagged):
        fields = [response.tag, response.status, response.text]
    elif isinstance(response, Untagged):
        fields = ["*"]
        if response.number is not None:
            fields.append(str(response.number))
        fields += [response.keyword, response.text]
    else:
        return response.text
    return " ".join(f for f in fields if f)
