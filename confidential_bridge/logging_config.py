"""
Structured logging for the bridge.

JSON lines for the API server, a console renderer when debugging or running
the CLI interactively. Key material never reaches a log line.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional

import structlog

from .config import settings

SECRET_FIELDS = frozenset({"private_key", "signer_private_key", "secret", "keypair", "input_proof"})
QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx")


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask bound values whose key names hold key material or proofs."""
    for key in SECRET_FIELDS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def setup_logging(log_level: Optional[str] = None, stream=None, console: Optional[bool] = None) -> None:
    """Route structlog and stdlib logging through one handler.

    Args:
        log_level: Override log level (default: settings.log_level)
        stream: Output stream (default: stdout; the CLI passes stderr)
        console: Force the console renderer; defaults to on at DEBUG
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    use_console = level == logging.DEBUG if console is None else console

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]

    renderer: structlog.types.Processor
    if use_console:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Records from logging.getLogger() get the same context and redaction
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
