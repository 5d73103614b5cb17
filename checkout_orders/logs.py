import json
import logging
import sys

LOG_TAG = "SHOPIFY-ORDER"


def setup_logging(log_level: str = "INFO") -> None:
    """Configure the root logger with a console handler."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


def log_step(
    logger: logging.Logger,
    step: str,
    level: int = logging.INFO,
    **details,
) -> None:
    """Log one stage-tagged line, with optional context fields as JSON."""
    if details:
        logger.log(level, "[%s] %s - %s", LOG_TAG, step, json.dumps(details, default=str))
    else:
        logger.log(level, "[%s] %s", LOG_TAG, step)
