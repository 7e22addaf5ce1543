import logging
import sys

from pythonjsonlogger import jsonlogger

# Library loggers that are too chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "websockets", "httpx", "httpcore")


def setup_logging(log_level: str = "INFO", service_name: str | None = None) -> None:
    """Route all records through one JSON handler on stdout.

    Structured context is passed with ``extra={...}`` at the call site and
    ends up as top-level keys of the JSON line.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if root_logger.handlers:
        root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
        rename_fields={"levelname": "level"},
        static_fields={"service": service_name} if service_name else {},
    )
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
