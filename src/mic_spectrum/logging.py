"""Structured logging for mic_spectrum.

structlog renders through stdlib logging. Output goes to stderr because the
CLI redraws the spectrum bars on stdout. Two formats:
- console: human-readable, colored only when the stream is a terminal
- json: one event per line, for piping into other tools

Every logger carries a ``component`` field; the capture loop also binds the
frame size and sample rate of its session.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, List, Optional

import structlog

_configured = False

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(
    log_format: Optional[str] = None,
    level: Optional[str] = None,
    *,
    force: bool = False,
    stream: Optional[IO[str]] = None,
) -> None:
    """Configure structured logging.

    Idempotent unless ``force`` is set (the CLI forces its own flags).

    Args:
        log_format: "json" or "console". Default via MIC_SPECTRUM_LOG_FORMAT env or "console".
        level: Level name. Default via MIC_SPECTRUM_LOG_LEVEL env or "INFO". An
            unknown name falls back to INFO with a warning.
        force: Reconfigure even if already configured.
        stream: Destination (default: sys.stderr).
    """
    global _configured
    if _configured and not force:
        return

    resolved_format = log_format or os.environ.get("MIC_SPECTRUM_LOG_FORMAT", "console")
    requested_level = (level or os.environ.get("MIC_SPECTRUM_LOG_LEVEL", "INFO")).upper()
    resolved_level = requested_level if requested_level in _LEVELS else "INFO"
    out = stream if stream is not None else sys.stderr

    shared_processors: List[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    if resolved_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        isatty = getattr(out, "isatty", None)
        renderer = structlog.dev.ConsoleRenderer(colors=bool(isatty and isatty()))

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(out)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, resolved_level))

    _configured = True

    if requested_level != resolved_level:
        structlog.get_logger().bind(component="logging").warning(
            "unknown_log_level", requested=requested_level, using=resolved_level
        )


def get_logger(component: str, **context: object) -> structlog.stdlib.BoundLogger:
    """Return a logger with component context.

    Args:
        component: Component name (e.g., "pipeline.controller", "audio.device").
        **context: Extra fields bound to every event (e.g. frame_size).
    """
    configure_logging()
    return structlog.get_logger().bind(component=component, **context)  # type: ignore[no-any-return]
