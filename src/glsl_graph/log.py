import logging
import sys

# Package logger; every module logger (logging.getLogger(__name__)) is a child
LOGGER_NAME = __name__.rpartition('.')[0]

TAG = "glsl_graph"


def get_logger() -> logging.Logger:
    """Get the package logger."""
    return logging.getLogger(LOGGER_NAME)


def setup_logger(level=logging.INFO):
    """
    Attach a console handler to the package logger.

    Library code never calls this; scripts and tools do.

    Args:
        level: Logging level (default: INFO)
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Remove existing handlers to prevent duplicates
    if logger.handlers:
        logger.handlers.clear()

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(level)

    # Format: [glsl_graph] [DEBUG] src.glsl_graph.core.graph_compiler: Message
    formatter = logging.Formatter(f'[{TAG}] [%(levelname)s] %(name)s: %(message)s')
    ch.setFormatter(formatter)

    logger.addHandler(ch)
    return logger
