# app/utils/logging.py
import logging
import os

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(format="%(message)s", level=LOG_LEVEL)

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=False),
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

# biblioteki sa glosne
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("celery").setLevel(logging.WARNING)


def get_logger(name: str):
    return structlog.get_logger(name)
