import logging
import sys
import structlog
from loguru import logger as loguru_logger
from ..core.config import settings


class InterceptHandler(logging.Handler):
    """Forwards stdlib records (structlog, uvicorn, httpx) into the loguru sink."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        loguru_logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logger(service_name: str, level: str = settings.log_level):
    """
    Configures a non-blocking async-friendly logger using structlog + loguru.
    """

    level = level.upper()
    logging.basicConfig(handlers=[InterceptHandler()], level=level, force=True)

    loguru_logger.remove()
    loguru_logger.add(
        sys.stdout,
        level=level,
        colorize=True,
        enqueue=True,
        backtrace=True,
        diagnose=False,
        format="<green>{time:HH:mm:ss}</green> | "
               "<level>{level: <8}</level> | "
               "<level>{message}</level>",
    )

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.ExceptionRenderer(),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )

    return structlog.get_logger(service=service_name)

logger = setup_logger("rent_reclaim")
