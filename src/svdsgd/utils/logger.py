import logging
import sys

PACKAGE = "svdsgd"


def setup_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """
    Sets up and returns a basic logger with a stdout StreamHandler if no handlers exist.

    Parameters:
        name (str): Name of the logger.
        level (int | str | None): Logging level. ``svdsgd.*`` loggers default to
            NOTSET and follow the package logger (see ``set_package_level``);
            any other name defaults to INFO.

    Returns:
        logging.Logger: Configured logger instance.
    """
    package = logging.getLogger(PACKAGE)
    if package.level == logging.NOTSET:
        package.setLevel(logging.INFO)

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    elif not (name == PACKAGE or name.startswith(PACKAGE + ".")):
        logger.setLevel(logging.INFO)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False  # the job owns stdout, no root handler needed

    return logger


def set_package_level(level: int | str) -> None:
    """Set the level every ``svdsgd`` logger left at NOTSET inherits."""
    logging.getLogger(PACKAGE).setLevel(level)
