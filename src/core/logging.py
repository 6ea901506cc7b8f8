"""
Loguru configuration shared by the API host and the pipeline services.

Modules log through ``from loguru import logger`` with keyword context,
e.g. ``logger.info("Extraction complete", document_type="invoice")``.
"""

import sys
from loguru import logger
from .config import settings

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level> | {extra}"
)


def setup_logging(level: str | None = None, json_output: bool | None = None):
    """
    Replace loguru's default handler with one configured from settings.

    Args:
        level: Minimum log level (defaults to LOG_LEVEL)
        json_output: Emit one JSON object per line (defaults to LOG_JSON)

    Returns:
        The configured loguru logger
    """
    level = (level or settings.log_level).upper()
    json_output = settings.log_json if json_output is None else json_output

    logger.remove()
    if json_output:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=DEFAULT_FORMAT)

    logger.debug("Logging configured", level=level, json_output=json_output)
    return logger
