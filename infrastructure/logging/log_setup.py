# infrastructure/logging/log_setup.py
from loguru import logger

DEFAULT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {message}"


def setup_console_logging(level: str = "INFO", fmt: str = DEFAULT_FORMAT) -> None:
    logger.remove()
    logger.add(lambda msg: print(msg, end=""), level=level.upper(), format=fmt)
