"""A simple HTTP load generator: many clients hammering one URL for a fixed time."""

from __future__ import annotations

import enum
import re
import socket
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

PROGRAM_NAME = "edgebench"
PROGRAM_VERSION = "1.5"
MAX_URL_LENGTH = 1500
READ_SIZE = 1500

USAGE = f"""{PROGRAM_NAME} [option]... URL
  -f|--force               Don't wait for reply from server.
  -r|--reload              Send reload request - Pragma: no-cache.
  -t|--time <sec>          Run benchmark for <sec> seconds. Default 30.
  -p|--proxy <server:port> Use proxy server for request.
  -c|--clients <n>         Run <n> HTTP clients at once. Default one.
  -k|--keep                Keep-Alive
  -9|--http09              Use HTTP/0.9 style requests.
  -1|--http10              Use HTTP/1.0 protocol.
  -2|--http11              Use HTTP/1.1 protocol.
  --get                    Use GET request method.
  --head                   Use HEAD request method.
  --options                Use OPTIONS request method.
  --trace                  Use TRACE request method.
  -?|-h|--help             This information.
  -V|--version             Display program version.
"""

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

_SHORT_WITH_ARG = "tpc"
_SHORT_FLAGS = "912Vfr?hk"

# Long option name -> (option key, takes an argument).
_LONG_OPTIONS = {
    "force": ("f", False),
    "reload": ("r", False),
    "time": ("t", True),
    "help": ("h", False),
    "http09": ("9", False),
    "http10": ("1", False),
    "http11": ("2", False),
    "get": ("get", False),
    "head": ("head", False),
    "options": ("options", False),
    "trace": ("trace", False),
    "version": ("V", False),
    "proxy": ("p", True),
    "clients": ("c", True),
}


class Method(enum.Enum):
    GET = "GET"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"


class BenchError(Exception):
    """A benchmark failure carrying the process exit code to report."""

    def __init__(self, message: str = "", exit_code: int = 2, show_usage: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code
        self.show_usage = show_usage


@dataclass
class BenchConfig:
    url: str | None = None
    method: Method = Method.GET
    http_version: int = 1  # 0 - HTTP/0.9, 1 - HTTP/1.0, 2 - HTTP/1.1
    force: bool = False
    force_reload: bool = False
    benchtime: float = 30
    clients: int = 1
    proxy_host: str | None = None
    proxy_port: int = 80
    keep_alive: bool = False
    show_version: bool = False

    @property
    def effective_http_version(self) -> int:
        """The protocol version actually used once the method's needs are met."""
        version = self.http_version
        if self.force_reload and self.proxy_host is not None and version < 1:
            version = 1
        if self.method is Method.HEAD and version < 1:
            version = 1
        if self.method in (Method.OPTIONS, Method.TRACE) and version < 2:
            version = 2
        return version


@dataclass
class BenchResult:
    speed: int = 0
    failed: int = 0
    bytes_received: int = 0

    def __add__(self, other: "BenchResult") -> "BenchResult":
        return BenchResult(
            self.speed + other.speed,
            self.failed + other.failed,
            self.bytes_received + other.bytes_received,
        )

    def pages_per_minute(self, benchtime: float) -> int:
        return int((self.speed + self.failed) / (benchtime / 60.0))

    def bytes_per_second(self, benchtime: float) -> int:
        return int(self.bytes_received / float(benchtime))


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _apply_option(config: BenchConfig, key: str, value: str | None) -> None:
    if key == "f":
        config.force = True
    elif key == "r":
        config.force_reload = True
    elif key == "9":
        config.http_version = 0
    elif key == "1":
        config.http_version = 1
    elif key == "2":
        config.http_version = 2
    elif key == "V":
        config.show_version = True
    elif key == "k":
        config.keep_alive = True
    elif key == "t":
        config.benchtime = _atoi(value or "")
    elif key == "c":
        config.clients = _atoi(value or "")
    elif key == "p":
        _apply_proxy(config, value or "")
    elif key in ("h", "?"):
        raise BenchError(show_usage=True)
    else:
        config.method = Method(key.upper())


def _apply_proxy(config: BenchConfig, value: str) -> None:
    colon = value.rfind(":")
    config.proxy_host = value
    if colon < 0:
        return
    if colon == 0:
        raise BenchError(f"Error in option --proxy {value}: Missing hostname.")
    if colon == len(value) - 1:
        raise BenchError(f"Error in option --proxy {value} Port number is missing.")
    config.proxy_host = value[:colon]
    config.proxy_port = _atoi(value[colon + 1 :])


def _match_long(name: str) -> tuple[str, bool]:
    if name in _LONG_OPTIONS:
        return _LONG_OPTIONS[name]
    candidates = [option for option in _LONG_OPTIONS if option.startswith(name)]
    if len(candidates) != 1:
        raise BenchError(show_usage=True)
    return _LONG_OPTIONS[candidates[0]]


def parse_args(argv: list[str] | None = None) -> BenchConfig:
    """Parse command-line options into a :class:`BenchConfig`.

    Raises :class:`BenchError` with exit code 2 for bad or missing arguments.
    Parsing stops at ``-V``, which sets ``show_version``.
    """
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        raise BenchError(show_usage=True)
    config = BenchConfig()
    positionals: list[str] = []
    index = 0
    while index < len(args):
        arg = args[index]
        index += 1
        if arg == "--":
            positionals.extend(args[index:])
            break
        if arg.startswith("--"):
            name, eq, inline = arg[2:].partition("=")
            key, needs_value = _match_long(name)
            value: str | None = None
            if needs_value:
                if eq:
                    value = inline
                elif index < len(args):
                    value = args[index]
                    index += 1
                else:
                    raise BenchError(show_usage=True)
            elif eq:
                raise BenchError(show_usage=True)
            _apply_option(config, key, value)
            if config.show_version:
                return config
            continue
        if not arg.startswith("-") or arg == "-":
            positionals.append(arg)
            continue
        for pos, flag in enumerate(arg[1:], start=2):
            if flag in _SHORT_WITH_ARG:
                value = arg[pos:]
                if not value:
                    if index >= len(args):
                        raise BenchError(show_usage=True)
                    value = args[index]
                    index += 1
                _apply_option(config, flag, value)
                break
            if flag not in _SHORT_FLAGS:
                raise BenchError(show_usage=True)
            _apply_option(config, flag, None)
            if config.show_version:
                return config

    if not positionals:
        raise BenchError(f"{PROGRAM_NAME}: Missing URL!", show_usage=True)
    config.url = positionals[0]
    if config.clients == 0:
        config.clients = 1
    if config.benchtime == 0:
        config.benchtime = 30
    return config


def build_request(config: BenchConfig, url: str) -> tuple[str, str, int]:
    """Build the request text for ``url``.

    Returns the request together with the host and port to connect to,
    which are the proxy's when one is configured.
    """
    version = config.effective_http_version
    request = config.method.value + " "

    if "://" not in url:
        raise BenchError(f"\n{url}: is not a valid URL.")
    if len(url) > MAX_URL_LENGTH:
        raise BenchError("URL is too long.")
    if url[:7].lower() != "http://":
        raise BenchError(
            "\nOnly HTTP protocol is directly supported, set --proxy for others."
        )

    rest = url[url.find("://") + 3 :]
    slash = rest.find("/")
    if slash < 0:
        raise BenchError("\nInvalid URL syntax - hostname don't ends with '/'.")

    host = ""
    port = config.proxy_port
    if config.proxy_host is None:
        colon = rest.find(":")
        if 0 <= colon < slash:
            host = rest[:colon]
            port = _atoi(rest[colon + 1 : slash]) or 80
        else:
            host = rest[:slash]
        request += rest[slash:]
    else:
        request += url

    if version == 1:
        request += " HTTP/1.0"
    elif version == 2:
        request += " HTTP/1.1"
    request += "\r\n"

    if version > 0:
        request += f"User-Agent: EdgeBench {PROGRAM_VERSION}\r\n"
    if config.proxy_host is None and version > 0:
        request += f"Host: {host}\r\n"
    if config.force_reload and config.proxy_host is not None:
        request += "Pragma: no-cache\r\n"
    if version > 1:
        request += "Connection: Keep-Alive\r\n" if config.keep_alive else "Connection: close\r\n"
    if version > 0:
        request += "\r\n"

    if config.proxy_host is not None:
        return request, config.proxy_host, config.proxy_port
    return request, host, port


def connect(host: str, port: int) -> socket.socket:
    """Open a TCP connection to an IPv4 ``host``; raises ``OSError`` on failure."""
    address = socket.gethostbyname(host)
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.connect((address, port))
    except OSError:
        sock.close()
        raise
    return sock


def _connect_until(host: str, port: int, expired: Callable[[], bool]) -> socket.socket | None:
    while not expired():
        try:
            return connect(host, port)
        except OSError:
            continue
    return None


def bench_core(config: BenchConfig, host: str, port: int, request: str) -> BenchResult:
    """Send requests to ``host:port`` for ``config.benchtime`` seconds from one client."""
    deadline = time.monotonic() + config.benchtime
    payload = request.encode("utf-8")
    result = BenchResult()

    def remaining() -> float:
        return deadline - time.monotonic()

    def expired() -> bool:
        return remaining() <= 0

    def finish() -> BenchResult:
        # The request cut short by the deadline is not counted as a failure.
        if result.failed > 0:
            result.failed -= 1
        return result

    if config.keep_alive:
        return _bench_keep_alive(config, host, port, payload, result, remaining, expired, finish)

    version = config.effective_http_version
    while True:
        if expired():
            return finish()
        try:
            sock = connect(host, port)
        except OSError:
            result.failed += 1
            continue
        try:
            sock.settimeout(max(remaining(), 0.001))
            sock.sendall(payload)
            if version == 0:
                sock.shutdown(socket.SHUT_WR)
        except OSError:
            result.failed += 1
            sock.close()
            continue
        if not config.force:
            broken = False
            while not expired():
                try:
                    sock.settimeout(max(remaining(), 0.001))
                    data = sock.recv(READ_SIZE)
                except OSError:
                    broken = True
                    break
                if not data:
                    break
                result.bytes_received += len(data)
            if broken:
                result.failed += 1
                sock.close()
                continue
        try:
            sock.close()
        except OSError:
            result.failed += 1
            continue
        result.speed += 1


def _bench_keep_alive(
    config: BenchConfig,
    host: str,
    port: int,
    payload: bytes,
    result: BenchResult,
    remaining: Callable[[], float],
    expired: Callable[[], bool],
    finish: Callable[[], BenchResult],
) -> BenchResult:
    sock = _connect_until(host, port, expired)
    try:
        while True:
            if expired() or sock is None:
                return finish()
            try:
                sock.settimeout(max(remaining(), 0.001))
                sock.sendall(payload)
            except OSError:
                result.failed += 1
                sock.close()
                sock = _connect_until(host, port, expired)
                continue
            if not config.force and not expired():
                try:
                    sock.settimeout(max(remaining(), 0.001))
                    data = sock.recv(READ_SIZE)
                except OSError:
                    # The closed socket makes the next send fail and reconnect.
                    result.failed += 1
                    sock.close()
                    continue
                result.bytes_received += len(data)
            result.speed += 1
    finally:
        if sock is not None:
            sock.close()


def run_benchmark(config: BenchConfig, host: str, port: int, request: str) -> BenchResult:
    """Check the server is reachable, then run all clients and sum their results."""
    try:
        probe = connect(host, port)
    except OSError as exc:
        raise BenchError("\nConnect to server failed. Aborting benchmark.", exit_code=1) from exc
    probe.close()

    clients = max(config.clients, 1)
    with ThreadPoolExecutor(max_workers=clients) as executor:
        futures = [
            executor.submit(bench_core, config, host, port, request) for _ in range(clients)
        ]
        total = BenchResult()
        for future in futures:
            total = total + future.result()
    return total


def _running_info(config: BenchConfig) -> str:
    parts = ["1 client" if config.clients == 1 else f"{config.clients} clients"]
    parts.append(f"running {config.benchtime} sec")
    if config.force:
        parts.append("early socket close")
    if config.proxy_host is not None:
        parts.append(f"via proxy server {config.proxy_host}:{config.proxy_port}")
    if config.force_reload:
        parts.append("forcing reload")
    return "Running info: " + ", ".join(parts) + "."


def main(argv: list[str] | None = None) -> int:
    try:
        config = parse_args(argv)
        if config.show_version:
            print(PROGRAM_VERSION)
            return 0
        print(f"EdgeBench - Simple Web Benchmark {PROGRAM_VERSION}", file=sys.stderr)
        assert config.url is not None
        request, host, port = build_request(config, config.url)
        print(f"\nRequest:\n{request}")
        print(_running_info(config))
        result = run_benchmark(config, host, port, request)
    except BenchError as exc:
        if exc.message:
            print(exc.message, file=sys.stderr)
        if exc.show_usage:
            print(USAGE, end="", file=sys.stderr)
        return exc.exit_code
    print(
        f"\nSpeed={result.pages_per_minute(config.benchtime)} pages/min, "
        f"{result.bytes_per_second(config.benchtime)} bytes/sec.\n"
        f"Requests: {result.speed} succeeded, {result.failed} failed."
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())