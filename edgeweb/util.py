"""Socket helpers for non-blocking reads and writes and listener setup."""

from __future__ import annotations

import signal
import socket
import struct

MAX_BUFF = 4096
LISTEN_BACKLOG = 2048


def read_available(sock: socket.socket) -> tuple[bytes, bool]:
    """Read everything the socket can give right now.

    Returns the bytes read and whether the peer closed the connection.
    Reading stops when the socket would block or reaches end of stream;
    any other socket error is raised.
    """
    chunks: list[bytes] = []
    eof = False
    while True:
        try:
            chunk = sock.recv(MAX_BUFF)
        except BlockingIOError:
            break
        if not chunk:
            eof = True
            break
        chunks.append(chunk)
    return b"".join(chunks), eof


def write_all(sock: socket.socket, data: bytes) -> int:
    """Write as much of ``data`` as the socket accepts and return the count.

    Writing stops early when the socket would block; other errors are raised.
    """
    view = memoryview(data)
    total = 0
    while total < len(view):
        try:
            sent = sock.send(view[total:])
        except BlockingIOError:
            break
        total += sent
    return total


def ignore_sigpipe() -> None:
    """Ignore SIGPIPE so writes to closed peers fail with an error instead."""
    sigpipe = getattr(signal, "SIGPIPE", None)
    if sigpipe is None:
        return
    try:
        signal.signal(sigpipe, signal.SIG_IGN)
    except ValueError:
        # Not in the main thread: signal handlers cannot be changed here.
        pass


def set_nonblocking(sock: socket.socket) -> None:
    sock.setblocking(False)


def set_nodelay(sock: socket.socket) -> None:
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)


def set_no_linger(sock: socket.socket) -> None:
    """Enable lingering on close for up to 30 seconds."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 30))


def shutdown_write(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_WR)
    except OSError:
        pass


def socket_bind_listen(port: int) -> socket.socket:
    """Create an IPv4 TCP socket listening on ``port`` on all interfaces."""
    if port < 0 or port > 65535:
        raise ValueError(f"port out of range: {port}")
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        listener.bind(("", port))
        listener.listen(LISTEN_BACKLOG)
    except OSError:
        listener.close()
        raise
    return listener