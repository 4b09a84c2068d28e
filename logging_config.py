"""
Logging setup for the terrain modules and the server.
"""
import logging
import sys
from typing import Optional

# '__main__' covers `python converter.py` and `python server.py`
LOGGER_NAMES = ('converter', 'decoder', 'session', 'stl_export', 'stl_to_web', 'server', '__main__')


def setup_logging(level=logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the loggers of the terrain modules.

    Args:
        level: Logging level, either an int or a name such as "DEBUG"
        log_file: Optional path to also write logs to.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        # avoid duplicate output when called again (e.g. flask reloader)
        for old in logger.handlers:
            old.close()
        logger.handlers.clear()
        for handler in handlers:
            logger.addHandler(handler)
        logger.propagate = False

    logging.getLogger('server').info("Logging initialized.")
