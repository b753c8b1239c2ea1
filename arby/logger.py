# arby/logger.py
import logging
import os
import sys
from dataclasses import dataclass

FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'


@dataclass(frozen=True)
class Loggers:
    """
    Independent log sinks, one per concern. Created once per run.
    """
    main: logging.Logger
    centralized: logging.Logger
    opendex: logging.Logger


def setup_logger(name: str, level: str, log_path: str = None) -> logging.Logger:
    """
    Console logger on stdout, plus an append-only file when log_path is given.
    Handlers are only attached the first time a name is seen.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        formatter = logging.Formatter(FORMAT)

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if log_path:
            directory = os.path.dirname(log_path)
            if directory and not os.path.exists(directory):
                os.makedirs(directory, exist_ok=True)
            file_handler = logging.FileHandler(log_path, mode='a')
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def create_loggers(level: str, log_path: str = None) -> Loggers:
    return Loggers(
        main=setup_logger("arby", level, log_path),
        centralized=setup_logger("arby.centralized", level, log_path),
        opendex=setup_logger("arby.opendex", level, log_path),
    )
