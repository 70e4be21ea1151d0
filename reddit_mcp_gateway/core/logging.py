"""Secure structured logging for the Reddit MCP Gateway.

Features:
    - Masking of Reddit credentials (client secret, password, bearer and
      access tokens) in every formatted line
    - JSON structured logging format
    - Request context integration ([req=xxx][tool=yyy] prefixes)

Logs go to stderr; stdout belongs to the MCP stdio transport.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone

from reddit_mcp_gateway.core.tracing import format_context_prefix, get_current_context

# Patterns to mask in logs
SENSITIVE_PATTERNS = [
    (
        re.compile(r'client[_-]?secret["\']?\s*[:=]\s*["\']?[^\s"\',]+', re.I),
        "client_secret=***MASKED***",
    ),
    (
        re.compile(r'password["\']?\s*[:=]\s*["\']?[^\s"\',]+', re.I),
        "password=***MASKED***",
    ),
    (
        re.compile(r'(?:access|refresh)[_-]?token["\']?\s*[:=]\s*["\']?[^\s"\',]+', re.I),
        "token=***MASKED***",
    ),
    (re.compile(r"bearer\s+[\w.~+/-]+=*", re.I), "Bearer ***MASKED***"),
]


def mask_sensitive(message: str) -> str:
    """Apply every SENSITIVE_PATTERNS replacement to `message`."""
    for pattern, replacement in SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def _get_trace_context() -> tuple[str | None, str | None]:
    """Get (request_id, tool_name) from the tracing context, if any."""
    ctx = get_current_context()
    if ctx:
        return ctx.request_id, ctx.tool_name
    return None, None


class SecureFormatter(logging.Formatter):
    """Formatter that masks sensitive data and includes trace context."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_trace_context: bool = True,
        mask: bool = True,
    ) -> None:
        """Initialize the secure formatter.

        Args:
            fmt: Format string for log messages.
            datefmt: Date format string.
            include_trace_context: Whether to include the [req=xxx][tool=yyy] prefix.
            mask: Whether to mask credentials.
        """
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.include_trace_context = include_trace_context
        self.mask = mask

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        if self.include_trace_context:
            prefix = format_context_prefix()
            if prefix:
                # "time - logger - LEVEL - message" -> "time - logger - LEVEL - [req=..] message"
                parts = message.split(" - ", 3)
                if len(parts) == 4:
                    message = f"{parts[0]} - {parts[1]} - {parts[2]} - {prefix} {parts[3]}"
                else:
                    message = f"{prefix} {message}"

        if self.mask:
            message = mask_sensitive(message)
        return message


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging with trace context."""

    def __init__(self, include_trace_context: bool = True, mask: bool = True) -> None:
        super().__init__()
        self.include_trace_context = include_trace_context
        self.mask = mask

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, str | None] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_trace_context:
            request_id, tool_name = _get_trace_context()
            if request_id:
                log_data["request_id"] = request_id
            if tool_name:
                log_data["tool"] = tool_name

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        json_str = json.dumps(log_data)
        if self.mask:
            json_str = mask_sensitive(json_str)
        return json_str


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    mask_sensitive: bool = True,
    include_trace_context: bool = True,
) -> None:
    """Configure root logging for the gateway process.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        json_format: Use JSON format for structured logging.
        mask_sensitive: Mask credentials in logs.
        include_trace_context: Include [req=xxx][tool=yyy] in log messages.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = JSONFormatter(
            include_trace_context=include_trace_context, mask=mask_sensitive
        )
    else:
        formatter = SecureFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            include_trace_context=include_trace_context,
            mask=mask_sensitive,
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
