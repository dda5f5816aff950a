"""
Logging configuration for the pipe field modules.
"""
import logging
import sys

LOGGER_NAMES = ('pipe_core', 'pipe_field', 'dissolve', 'pipe_render')


def setup_logging(level=logging.INFO, log_file=None):
    """
    Configures the loggers of the pipe field modules.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
    """
    # Format: Time - Module - Level - Message
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
        # Streamlit reruns call this again; avoid duplicate handlers
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        for handler in handlers:
            logger.addHandler(handler)

    logging.getLogger('pipe_field').info("Logging initialized.")
