from __future__ import annotations

import logging

TRACE_LEVEL = 5
PAHO_LOGGER_NAME = "paho.mqtt"

# Registered on import so TRACE records render by name even before
# configure_logging() runs (e.g. under pytest's caplog).
logging.addLevelName(TRACE_LEVEL, "TRACE")

_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s %(message)s"


def configure_logging(level: int, paho_level: int = logging.WARNING) -> None:
    handlers: list[logging.Handler] = []
    try:
        from colorlog import ColoredFormatter  # type: ignore

        formatter = ColoredFormatter(
            "%(log_color)s" + _FORMAT,
            log_colors={
                "TRACE": "cyan",
                "DEBUG": "blue",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        handlers.append(handler)
    except ImportError:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handlers.append(handler)
    logging.basicConfig(level=level, handlers=handlers)
    # paho's own packet-level chatter is only useful when tracing
    logging.getLogger(PAHO_LOGGER_NAME).setLevel(
        level if level <= TRACE_LEVEL else paho_level
    )


def resolve_log_level(verbosity: int, fallback: str) -> int:
    if verbosity >= 2:
        return TRACE_LEVEL
    if verbosity == 1:
        return logging.DEBUG
    return logging._nameToLevel.get(fallback.upper(), logging.INFO)
