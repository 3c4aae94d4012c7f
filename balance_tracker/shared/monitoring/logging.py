import logging
import os
import sys
from typing import Any, Dict

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"


def setup_logging(log_level: str = "INFO", log_dir: str = "logs") -> None:
    """
    Configure console, combined file and error file logging on the root logger
    """
    os.makedirs(log_dir, exist_ok=True)

    # Clear existing handlers to avoid conflicts with uvicorn
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    level = getattr(logging, log_level.upper())
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = logging.FileHandler(os.path.join(log_dir, "app.log"), mode="a")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    error_handler = logging.FileHandler(os.path.join(log_dir, "error.log"), mode="a")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    root_logger.addHandler(error_handler)

    # web3 request logging is noisy at DEBUG
    logging.getLogger("web3").setLevel(max(level, logging.INFO))


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance
    """
    return logging.getLogger(name)


class LoggerMixin:
    """
    Mixin to add a class-named logger
    """

    @property
    def logger(self):
        if not hasattr(self, "_logger"):
            self._logger = get_logger(self.__class__.__name__)
        return self._logger


def log_database_operation(operation: str, table: str, **kwargs) -> Dict[str, Any]:
    """
    Create a log context for database operations
    """
    return {
        "operation": operation,
        "table": table,
        "log_event": "database_operation",
        **kwargs,
    }


def log_blockchain_operation(operation: str, **kwargs) -> Dict[str, Any]:
    """
    Create a log context for blockchain operations
    """
    return {"operation": operation, "log_event": "blockchain_operation", **kwargs}


def log_collection_cycle(status: str, **kwargs) -> Dict[str, Any]:
    """
    Create a log context for a balance collection cycle
    """
    return {"status": status, "log_event": "collection_cycle", **kwargs}
