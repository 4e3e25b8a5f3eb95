import logging

import structlog
from pythonjsonlogger.json import JsonFormatter

from events_dashboard.core.settings import Settings

_configured = False


def configure_logging(settings: Settings) -> None:
    """Configure JSON logging for stdlib loggers and structlog, once per process"""
    global _configured
    if _configured:
        return

    log_handler = logging.StreamHandler()
    if settings.monitoring.LOG_FORMAT == "json":
        formatter: logging.Formatter = JsonFormatter(
            "%(levelname)s %(asctime)s %(message)s %(name)s "
            "%(processName)s %(filename)s %(lineno)d",
            rename_fields={
                "levelname": "level",
                "asctime": "time",
                "name": "loggerName",
                "lineno": "lineNumber",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        )
    log_handler.setFormatter(formatter)
    logging.basicConfig(handlers=[log_handler], level=settings.monitoring.LOG_LEVEL)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            (
                structlog.processors.JSONRenderer()
                if settings.monitoring.LOG_FORMAT == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    _configured = True
    logging.getLogger(__name__).info("Application logging configured.")
