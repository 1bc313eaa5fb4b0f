"""
Logging Configuration Module

Thread-safe logging for the engine. Batch workers, the Flask app and the
offline CLI all log through a single queue so that lines from concurrent
chunks never interleave.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from queue import Queue
from typing import List, Optional

LOG_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"

# Rotated log files kept for offline runs
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3


class ThreadSafeLoggingConfig:
    """Thread-safe logging configuration with queue-based logging."""

    def __init__(self):
        self._log_listener: Optional[logging.handlers.QueueListener] = None
        self._log_queue: Optional[Queue] = None

    def setup_logging(self, debug: bool = False, log_file: Optional[Path] = None) -> None:
        """
        Configure queue-based logging for the engine.

        Batch worker threads write to a queue through a QueueHandler and a
        single QueueListener drains it to stdout and, when given, a rotating
        log file.

        Args:
            debug: Whether to enable debug logging
            log_file: Optional file that receives a copy of every record
        """
        if self._log_listener is not None:
            self.stop()

        formatter = logging.Formatter(LOG_FORMAT)
        handlers: List[logging.Handler] = []

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

        if log_file is not None:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

        self._log_queue = Queue()
        self._log_listener = logging.handlers.QueueListener(
            self._log_queue, *handlers, respect_handler_level=True
        )
        self._log_listener.start()

        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.addHandler(logging.handlers.QueueHandler(self._log_queue))
        root_logger.setLevel(logging.DEBUG if debug else logging.INFO)

        if not debug:
            self._silence_noisy_libraries()

    def _silence_noisy_libraries(self) -> None:
        """Silence request logs for health checks and chatty libraries."""
        class _MuteHealthCheckFilter(logging.Filter):
            def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
                msg = record.getMessage()
                return not (isinstance(msg, str) and "/actuator/health" in msg)

        for handler in logging.getLogger().handlers:
            handler.addFilter(_MuteHealthCheckFilter())

        for name in ("werkzeug", "urllib3", "asyncio"):
            logging.getLogger(name).setLevel(logging.WARNING)

    def stop(self) -> None:
        """Flush pending records and stop the listener."""
        if self._log_listener:
            self._log_listener.stop()
            for handler in self._log_listener.handlers:
                handler.close()
            self._log_listener = None
        self._log_queue = None


# Global logging configuration instance
logging_config = ThreadSafeLoggingConfig()


def setup_logging(debug: bool = False, log_file: Optional[Path] = None) -> None:
    """
    Setup thread-safe logging configuration.

    Args:
        debug: Whether to enable debug logging
        log_file: Optional rotating log file
    """
    logging_config.setup_logging(debug, log_file)


def stop_logging() -> None:
    logging_config.stop()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
