import logging
import os
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <5}</level> | "
    "<cyan>{extra[origin]}</cyan> - {message}"
)


def _default_origin(record):
    # Records routed from stdlib logging already carry their own origin
    record["extra"].setdefault("origin", f"{record['name']}:{record['line']}")


logger.remove()
logger.configure(patcher=_default_origin)
logger.add(
    sys.stderr,
    format=LOG_FORMAT,
    level=os.environ.get("ARBITRAGE_LOG_LEVEL", "INFO").upper(),
    colorize=True,
)


class InterceptHandler(logging.Handler):
    """Forward core.arbitrage stdlib log records to loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.bind(origin=f"{record.name}:{record.lineno}").opt(
            exception=record.exc_info
        ).log(level, record.getMessage())


logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

for name in list(logging.root.manager.loggerDict):
    logging.getLogger(name).handlers = []
    logging.getLogger(name).propagate = True
