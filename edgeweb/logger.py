"""Process-wide logging front end writing through an asynchronous logger."""

from __future__ import annotations

import atexit
import inspect
import threading
import time

from edgeweb.asynclogging import AsyncLogging
from edgeweb.logstream import LogStream

_log_file_name = "./WebServer.log"
_async_logger: AsyncLogging | None = None
_state_lock = threading.Lock()
_atexit_registered = False


def set_log_file_name(name: str) -> None:
    """Choose the file the background writer opens on first use.

    Raises ValueError for names shorter than two characters, which the
    asynchronous writer cannot accept.
    """
    global _log_file_name
    if len(name) <= 1:
        raise ValueError(f"log file name too short: {name!r}")
    with _state_lock:
        _log_file_name = name


def get_log_file_name() -> str:
    return _log_file_name


def _output(data: bytes) -> None:
    global _async_logger, _atexit_registered
    logger = _async_logger
    if logger is None:
        with _state_lock:
            if _async_logger is None:
                _async_logger = AsyncLogging(_log_file_name)
                _async_logger.start()
                if not _atexit_registered:
                    atexit.register(shutdown_logging)
                    _atexit_registered = True
            logger = _async_logger
    logger.append(data)


def shutdown_logging() -> None:
    """Stop the background writer, flushing everything logged so far."""
    global _async_logger
    with _state_lock:
        logger, _async_logger = _async_logger, None
    if logger is not None:
        logger.stop()


class Logger:
    """One log entry: a timestamp, the streamed values and the source location."""

    def __init__(self, file_name: str | None = None, line: int | None = None) -> None:
        if file_name is None or line is None:
            frame = inspect.currentframe()
            caller = frame.f_back if frame is not None else None
            if caller is not None:
                file_name = caller.f_code.co_filename if file_name is None else file_name
                line = caller.f_lineno if line is None else line
        self.basename = file_name or "?"
        self.line = line or 0
        self.stream = LogStream()
        self._finished = False
        self.stream << time.strftime("%Y-%m-%d %H:%M:%S\n", time.localtime())

    def __lshift__(self, value: object) -> "Logger":
        self.stream << value
        return self

    def finish(self) -> None:
        """Append the location trailer and hand the entry to the writer once."""
        if self._finished:
            return
        self._finished = True
        self.stream << " -- " << self.basename << ":" << self.line << "\n"
        _output(self.stream.buffer.getvalue())

    def __enter__(self) -> "Logger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.finish()


def log(*args: object) -> None:
    """Write one log entry made of ``args``, tagged with the caller's location."""
    frame = inspect.currentframe()
    caller = frame.f_back if frame is not None else None
    if caller is not None:
        entry = Logger(caller.f_code.co_filename, caller.f_lineno)
    else:
        entry = Logger("?", 0)
    for value in args:
        entry << value
    entry.finish()