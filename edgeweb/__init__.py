"""A multi-reactor static-file HTTP server, asynchronous file logger, thread pool and HTTP load generator."""

__version__ = "0.1.0"
__all__ = [
    "asynclogging",
    "bench",
    "channel",
    "eventloop",
    "http",
    "logfile",
    "logger",
    "logstream",
    "poller",
    "server",
    "sync",
    "threadpool",
    "timer",
    "util",
]