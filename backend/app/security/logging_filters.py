"""Logging filters that scrub sensitive content."""

from __future__ import annotations

import logging
import re

_SENSITIVE_PATTERN = re.compile(
    r"(Authorization: Bearer\s+[\w\.-]+"
    r"|access_token\"\s*:\s*\"[^\"]+\""
    r"|delivery_code\"?\s*[:=]\s*\"?[A-Z0-9]+\"?"
    r"|\bpi_[A-Za-z0-9]+(?:_secret_[A-Za-z0-9]+)?)",
    re.IGNORECASE,
)

REDACTED = "**REDACTED**"


def redact(message: str) -> str:
    return _SENSITIVE_PATTERN.sub(REDACTED, message)


class SensitiveFilter(logging.Filter):
    """Replace bearer tokens, delivery codes and payment references in log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True


__all__ = ["REDACTED", "SensitiveFilter", "redact"]
