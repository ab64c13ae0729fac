"""The HTTP server: accepts connections and spreads them over loop threads."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass

from edgeweb.channel import Channel, Event
from edgeweb.eventloop import EventLoop, EventLoopThreadPool
from edgeweb.http import HttpData
from edgeweb.logger import log, set_log_file_name, shutdown_logging
from edgeweb.util import (
    ignore_sigpipe,
    set_nodelay,
    set_nonblocking,
    socket_bind_listen,
)

MAXFDS = 100000
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class Server:
    """Listens on a port and hands each accepted connection to a worker loop."""

    def __init__(
        self,
        loop: EventLoop,
        thread_num: int,
        port: int,
        document_root: str | os.PathLike = ".",
    ) -> None:
        self.loop = loop
        self.thread_num = thread_num
        self.document_root = document_root
        self._pool = EventLoopThreadPool(loop, thread_num)
        self._started = False
        self._stopped = False
        self._accept_channel = Channel(loop)
        self._listener = socket_bind_listen(port)
        self._accept_channel.fd = self._listener.fileno()
        ignore_sigpipe()
        try:
            set_nonblocking(self._listener)
        except OSError:
            self._listener.close()
            raise

    @property
    def port(self) -> int:
        """The port actually bound, useful when asked for port 0."""
        return self._listener.getsockname()[1]

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """Start the worker loops and begin accepting; call from the base loop."""
        self._pool.start()
        self._accept_channel.events = Event.IN | Event.ET
        self._accept_channel.read_handler = self.handle_new_connection
        self._accept_channel.conn_handler = self.handle_this_connection
        self.loop.add_to_poller(self._accept_channel, 0)
        self._started = True

    def handle_new_connection(self) -> None:
        """Accept every pending connection."""
        while True:
            try:
                conn, address = self._listener.accept()
            except BlockingIOError:
                break
            except OSError as exc:
                log("accept failed: ", str(exc))
                break
            loop = self._pool.get_next_loop()
            log("New connection from ", address[0], ":", address[1])
            if conn.fileno() >= MAXFDS:
                conn.close()
                continue
            try:
                set_nonblocking(conn)
            except OSError:
                log("Set non block failed!")
                conn.close()
                return
            set_nodelay(conn)
            http_data = HttpData(loop, conn, self.document_root)
            http_data.channel.holder = http_data
            loop.queue_in_loop(http_data.new_event)
        self._accept_channel.events = Event.IN | Event.ET

    def handle_this_connection(self) -> None:
        self.loop.update_poller(self._accept_channel, 0)

    def stop(self) -> None:
        """Stop the worker loops and close the listening socket."""
        if self._stopped:
            return
        self._stopped = True
        self._pool.stop()
        if self._started:
            self.loop.remove_from_poller(self._accept_channel)
            self._started = False
        self._listener.close()


@dataclass
class ServerOptions:
    threads: int = 4
    port: int = 80
    log_path: str = "./WebServer.log"


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def parse_args(argv: list[str] | None = None) -> ServerOptions:
    """Read ``-t threads``, ``-l /log/path`` and ``-p port``; others are ignored."""
    args = sys.argv[1:] if argv is None else argv
    options = ServerOptions()
    it = iter(args)
    for arg in it:
        if arg == "--":
            break
        if not arg.startswith("-") or arg == "-":
            continue
        for pos, flag in enumerate(arg[1:], start=2):
            if flag not in "tlp":
                print(f"invalid option -- '{flag}'", file=sys.stderr)
                continue
            value = arg[pos:] or next(it, None)
            if value is None:
                print(f"option requires an argument -- '{flag}'", file=sys.stderr)
                break
            if flag == "t":
                options.threads = _atoi(value)
            elif flag == "p":
                options.port = _atoi(value)
            else:
                if len(value) < 2 or not value.startswith("/"):
                    raise ValueError('logPath should start with "/"')
                options.log_path = value
            break
    return options


def main(argv: list[str] | None = None) -> int:
    try:
        options = parse_args(argv)
    except ValueError as exc:
        print(exc)
        return 1
    set_log_file_name(options.log_path)
    loop = EventLoop()
    try:
        server = Server(loop, options.threads, options.port)
    except (ValueError, OSError) as exc:
        print(exc, file=sys.stderr)
        loop.close()
        shutdown_logging()
        return 1
    try:
        server.start()
        loop.loop()
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
        loop.close()
        shutdown_logging()
    return 0