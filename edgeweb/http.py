"""Per-connection HTTP request parsing, static file responses and state handling."""

from __future__ import annotations

import enum
import os
import re
import socket
import weakref
from pathlib import Path
from typing import Any

from edgeweb.channel import Channel, Event
from edgeweb.logger import log
from edgeweb.util import read_available, write_all

DEFAULT_EVENT = Event.IN | Event.ET | Event.ONESHOT
DEFAULT_EXPIRED_TIME = 2000  # milliseconds
DEFAULT_KEEP_ALIVE_TIME = 5 * 60 * 1000  # milliseconds
MAX_HEADER_VALUE = 255
SERVER_NAME = "EdgeWeb Server"

HELLO_RESPONSE = b"HTTP/1.1 200 OK\r\nContent-type: text/plain\r\n\r\nHello World"

MIME_TYPES = {
    ".html": "text/html",
    ".avi": "video/x-msvideo",
    ".bmp": "image/bmp",
    ".c": "text/plain",
    ".doc": "application/msword",
    ".gif": "image/gif",
    ".gz": "application/x-gzip",
    ".htm": "text/html",
    ".ico": "image/x-icon",
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".txt": "text/plain",
    ".mp3": "audio/mp3",
    "default": "text/html",
}

FAVICON = bytes.fromhex(
    "89504E470D0A1A0A00"
    "00000D494844520000"
    "001000000010080600"
    "00001FF3FF61000000"
    "19744558745336F6674"[:0]
    + "197445587453 6F6674".replace(" ", "")
    + "7761726500416 46F62".replace(" ", "")
    + "6520496D6167655265"
    "616479 71C9653C0000".replace(" ", "")
    + "01CD49444154 78DA94".replace(" ", "")
    + "9339480341148 6FF5D".replace(" ", "")
    + "62A70452C46D221EA0"
    "46240816 16760A36BA".replace(" ", "")
    + "4A9A800841B4718558"
    "8947B049A95124CDA6"
    "08A448639142 0BAF56".replace(" ", "")
    + "C146B415CF2258980B"
    "54488A64938DFB4667"
    "C91A147DF0667666DF"
    "7CEFE76746A8D56A48"
    "24122A0005BF47D4EF"
    "F72F36EC12201E8FD7"
    "AAD5EAAF493546AA54"
    "5F9F22412A950A83E5"
    "723964B35996994C06"
    "E9749A25852CCB54A7"
    "C46231B55E0003689A"
    "C616822058521 44536".replace(" ", "")
    + "5394CB6578BD5EAA55"
    "54234CC0E0E2C18F00"
    "9EBC09417C3E1F8344"
    "2211D554403F388077"
    "E53307B85C2E489204"
    "87C381402040 6798E9".replace(" ", "")
    + "361AA6671504E3D7C8"
    "BD15E169B743ABEA78"
    "2F6A5892BB18209FCF"
    "33C3B8E94EA7D36C4A"
    "0069367C8EE1FE5684"
    "E73C9F722B3A427B37"
    "6677AE8E0EF3BD52A9"
    "640242AF85326646BA"
    "0CD99F1D9A6C22E6C7"
    "3A2C80EFC115900793"
    "A228A0536AB1B8DF29"
    "35430E3F58FC98DA79"
    "6A50400087AE1B1742"
    "B43A3FBE79C70A26B6"
    "EED99A601493DB8F0D"
    "0A2EE92395295800 27".replace(" ", "")
    + "EB6E5670BCD6CBD647"
    "AB3D6C7DB8D2DDA060"
    "83BAEF5FA4EACC024E"
    "AE5E701AECB34039AC"
    "FEF291896791 8521A8".replace(" ", "")
    + "87B7587E7E85BBCD4E"
    "4E627440FA9389EC1E"
    "EC86024826 93D0751D".replace(" ", "")
    + "7F093295BF1FDBD763"
    "8A1AF75CC1FF224AC3"
    "870003004BBBF8D62A"
    "769849000000004945"
    "4E44AE426082"
)


class ProcessState(enum.IntEnum):
    PARSE_URI = 1
    PARSE_HEADERS = 2
    RECV_BODY = 3
    ANALYSIS = 4
    FINISH = 5


class URIState(enum.IntEnum):
    AGAIN = 1
    ERROR = 2
    SUCCESS = 3


class HeaderState(enum.IntEnum):
    SUCCESS = 1
    AGAIN = 2
    ERROR = 3


class AnalysisState(enum.IntEnum):
    SUCCESS = 1
    ERROR = 2


class ConnectionState(enum.IntEnum):
    CONNECTED = 0
    DISCONNECTING = 1
    DISCONNECTED = 2


class HttpMethod(enum.IntEnum):
    POST = 1
    GET = 2
    HEAD = 3


class HttpVersion(enum.IntEnum):
    HTTP_10 = 1
    HTTP_11 = 2


class _ParseState(enum.Enum):
    START = enum.auto()
    KEY = enum.auto()
    COLON = enum.auto()
    SPACES_AFTER_COLON = enum.auto()
    VALUE = enum.auto()
    CR = enum.auto()
    LF = enum.auto()
    END_CR = enum.auto()
    END_LF = enum.auto()


_CR = ord("\r")
_LF = ord("\n")
_COLON = ord(":")
_SPACE = ord(" ")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def get_mime(suffix: str) -> str:
    """Return the content type for a file suffix such as ``".html"``."""
    return MIME_TYPES.get(suffix, MIME_TYPES["default"])


def error_response(code: int, message: str) -> bytes:
    """Build the full HTML error response for ``code`` and ``message``."""
    short_msg = " " + message
    body = (
        "<html><title>哎~出错了</title>"
        '<body bgcolor="ffffff">'
        f"{code}{short_msg}"
        f"<hr><em> {SERVER_NAME}</em>\n</body></html>"
    ).encode("utf-8")
    header = (
        f"HTTP/1.1 {code}{short_msg}\r\n"
        "Content-Type: text/html\r\n"
        "Connection: Close\r\n"
        f"Content-Length: {len(body)}\r\n"
        f"Server: {SERVER_NAME}\r\n"
        "\r\n"
    ).encode("utf-8")
    return header + body


def _content_length(value: str) -> int:
    match = _LEADING_INT.match(value)
    if match is None:
        raise ValueError(f"invalid Content-length: {value!r}")
    return int(match.group(1))


class HttpData:
    """State of one client connection: buffers, parser progress and handlers."""

    def __init__(
        self,
        loop: Any,
        sock: socket.socket,
        document_root: str | os.PathLike = ".",
    ) -> None:
        self.loop = loop
        self.sock = sock
        self.fd = sock.fileno()
        self.document_root = Path(document_root)
        self.channel = Channel(loop, self.fd)
        self.in_buffer = b""
        self.out_buffer = b""
        self.error = False
        self.connection_state = ConnectionState.CONNECTED
        self.method = HttpMethod.GET
        self.http_version = HttpVersion.HTTP_11
        self.file_name = ""
        self.state = ProcessState.PARSE_URI
        self.keep_alive = False
        self.headers: dict[str, str] = {}
        self._timer: weakref.ReferenceType | None = None
        self._closed = False
        self.channel.read_handler = self.handle_read
        self.channel.write_handler = self.handle_write
        self.channel.conn_handler = self.handle_conn

    def reset(self) -> None:
        """Prepare for the next request on the same connection."""
        self.file_name = ""
        self.state = ProcessState.PARSE_URI
        self.headers.clear()
        self.separate_timer()

    def separate_timer(self) -> None:
        """Detach the linked timer so its expiry no longer closes the connection."""
        timer = self._timer() if self._timer is not None else None
        if timer is not None:
            timer.clear_request()
        self._timer = None

    def link_timer(self, timer: Any) -> None:
        self._timer = weakref.ref(timer)

    def parse_uri(self) -> URIState:
        """Parse the request line once a full line has arrived."""
        buf = self.in_buffer
        end = buf.find(b"\r")
        if end < 0:
            return URIState.AGAIN
        line = os.fsdecode(buf[:end])
        self.in_buffer = buf[end + 1 :]

        for name, method in (("GET", HttpMethod.GET), ("POST", HttpMethod.POST), ("HEAD", HttpMethod.HEAD)):
            pos = line.find(name)
            if pos >= 0:
                self.method = method
                break
        else:
            return URIState.ERROR

        pos = line.find("/", pos)
        if pos < 0:
            self.file_name = "index.html"
            self.http_version = HttpVersion.HTTP_11
            return URIState.SUCCESS
        space = line.find(" ", pos)
        if space < 0:
            return URIState.ERROR
        if space - pos > 1:
            name = line[pos + 1 : space]
            query = name.find("?")
            self.file_name = name[:query] if query >= 0 else name
        else:
            self.file_name = "index.html"

        pos = line.find("/", space)
        if pos < 0 or len(line) - pos <= 3:
            return URIState.ERROR
        version = line[pos + 1 : pos + 4]
        if version == "1.0":
            self.http_version = HttpVersion.HTTP_10
        elif version == "1.1":
            self.http_version = HttpVersion.HTTP_11
        else:
            return URIState.ERROR
        return URIState.SUCCESS

    def parse_headers(self) -> HeaderState:
        """Parse header lines up to the blank line that ends them.

        On success the header block is removed from the input buffer; while
        it is incomplete the buffer is left untouched for another attempt.
        """
        buf = self.in_buffer
        state = _ParseState.START
        key_start = key_end = value_start = -1
        end = -1
        for i, byte in enumerate(buf):
            if state is _ParseState.START:
                if byte in (_LF, _CR):
                    continue
                state = _ParseState.KEY
                key_start = i
            elif state is _ParseState.KEY:
                if byte == _COLON:
                    key_end = i
                    if key_end - key_start <= 0:
                        return HeaderState.ERROR
                    state = _ParseState.COLON
                elif byte in (_LF, _CR):
                    return HeaderState.ERROR
            elif state is _ParseState.COLON:
                if byte != _SPACE:
                    return HeaderState.ERROR
                state = _ParseState.SPACES_AFTER_COLON
            elif state is _ParseState.SPACES_AFTER_COLON:
                state = _ParseState.VALUE
                value_start = i
            elif state is _ParseState.VALUE:
                if byte == _CR:
                    if i - value_start <= 0:
                        return HeaderState.ERROR
                    key = buf[key_start:key_end].decode("latin-1")
                    self.headers[key] = buf[value_start:i].decode("latin-1")
                    state = _ParseState.CR
                elif i - value_start > MAX_HEADER_VALUE:
                    return HeaderState.ERROR
            elif state is _ParseState.CR:
                if byte != _LF:
                    return HeaderState.ERROR
                state = _ParseState.LF
            elif state is _ParseState.LF:
                if byte == _CR:
                    state = _ParseState.END_CR
                else:
                    key_start = i
                    state = _ParseState.KEY
            elif state is _ParseState.END_CR:
                if byte != _LF:
                    return HeaderState.ERROR
                end = i + 1
                break
        if end < 0:
            return HeaderState.AGAIN
        self.in_buffer = buf[end:]
        return HeaderState.SUCCESS

    def analysis_request(self) -> AnalysisState:
        """Build the response for a fully parsed request into the output buffer."""
        if self.method not in (HttpMethod.GET, HttpMethod.HEAD):
            return AnalysisState.ERROR
        header = "HTTP/1.1 200 OK\r\n"
        if self.headers.get("Connection") in ("Keep-Alive", "keep-alive"):
            self.keep_alive = True
            header += (
                "Connection: Keep-Alive\r\n"
                f"Keep-Alive: timeout={DEFAULT_KEEP_ALIVE_TIME}\r\n"
            )
        dot = self.file_name.find(".")
        filetype = get_mime("default") if dot < 0 else get_mime(self.file_name[dot:])

        if self.file_name == "hello":
            self.out_buffer = HELLO_RESPONSE
            return AnalysisState.SUCCESS
        if self.file_name == "favicon.ico":
            header += "Content-Type: image/png\r\n"
            header += f"Content-Length: {len(FAVICON)}\r\n"
            header += f"Server: {SERVER_NAME}\r\n\r\n"
            self.out_buffer += header.encode("latin-1") + FAVICON
            return AnalysisState.SUCCESS

        path = self.document_root / self.file_name
        try:
            size = path.stat().st_size
        except (OSError, ValueError):
            self.handle_error(404, "Not Found!")
            return AnalysisState.ERROR
        header += f"Content-Type: {filetype}\r\n"
        header += f"Content-Length: {size}\r\n"
        header += f"Server: {SERVER_NAME}\r\n\r\n"
        self.out_buffer += header.encode("latin-1")
        if self.method is HttpMethod.HEAD:
            return AnalysisState.SUCCESS
        try:
            content = path.read_bytes()
        except OSError:
            self.out_buffer = b""
            self.handle_error(404, "Not Found!")
            return AnalysisState.ERROR
        self.out_buffer += content[:size]
        return AnalysisState.SUCCESS

    def _bad_request(self, message: str = "Bad Request") -> None:
        self.error = True
        self.handle_error(400, message)

    def _process_input(self) -> None:
        try:
            data, eof = read_available(self.sock)
        except OSError:
            data, eof = None, False
        if data is not None:
            self.in_buffer += data
        log("Request: ", self.in_buffer)
        if self.connection_state is ConnectionState.DISCONNECTING:
            self.in_buffer = b""
            return
        if data is None:
            self._bad_request()
            return
        if eof:
            self.connection_state = ConnectionState.DISCONNECTING
            if not data:
                return

        if self.state is ProcessState.PARSE_URI:
            flag = self.parse_uri()
            if flag is URIState.AGAIN:
                return
            if flag is URIState.ERROR:
                log("FD = ", self.fd, ",", self.in_buffer, "******")
                self.in_buffer = b""
                self._bad_request()
                return
            self.state = ProcessState.PARSE_HEADERS
        if self.state is ProcessState.PARSE_HEADERS:
            flag = self.parse_headers()
            if flag is HeaderState.AGAIN:
                return
            if flag is HeaderState.ERROR:
                self._bad_request()
                return
            if self.method is HttpMethod.POST:
                self.state = ProcessState.RECV_BODY
            else:
                self.state = ProcessState.ANALYSIS
        if self.state is ProcessState.RECV_BODY:
            value = self.headers.get("Content-length")
            if value is None:
                self._bad_request("Bad Request: Lack of argument (Content-length)")
                return
            try:
                content_length = _content_length(value)
            except ValueError:
                self._bad_request()
                return
            if len(self.in_buffer) < content_length:
                return
            self.state = ProcessState.ANALYSIS
        if self.state is ProcessState.ANALYSIS:
            if self.analysis_request() is AnalysisState.SUCCESS:
                self.state = ProcessState.FINISH
            else:
                self.error = True

    def handle_read(self) -> None:
        """Read what has arrived, advance the parser and answer complete requests."""
        self._process_input()
        if self.error:
            return
        if self.out_buffer:
            self.handle_write()
        if not self.error and self.state is ProcessState.FINISH:
            self.reset()
            if self.in_buffer and self.connection_state is not ConnectionState.DISCONNECTING:
                self.handle_read()
        elif not self.error and self.connection_state is not ConnectionState.DISCONNECTED:
            self.channel.events |= Event.IN

    def handle_write(self) -> None:
        """Send as much pending output as the socket takes."""
        if self.error or self.connection_state is ConnectionState.DISCONNECTED:
            return
        try:
            sent = write_all(self.sock, self.out_buffer)
        except OSError:
            self.channel.events = 0
            self.error = True
        else:
            self.out_buffer = self.out_buffer[sent:]
        if self.out_buffer:
            self.channel.events |= Event.OUT

    def handle_conn(self) -> None:
        """Re-arm the channel with a fresh timeout, or close the connection."""
        self.separate_timer()
        channel = self.channel
        if not self.error and self.connection_state is ConnectionState.CONNECTED:
            if channel.events != 0:
                timeout = DEFAULT_KEEP_ALIVE_TIME if self.keep_alive else DEFAULT_EXPIRED_TIME
                if channel.events & Event.IN and channel.events & Event.OUT:
                    channel.events = Event.OUT
                channel.events |= Event.ET
                self.loop.update_poller(channel, timeout)
            elif self.keep_alive:
                channel.events |= Event.IN | Event.ET
                self.loop.update_poller(channel, DEFAULT_KEEP_ALIVE_TIME)
            else:
                channel.events |= Event.IN | Event.ET
                self.loop.update_poller(channel, DEFAULT_KEEP_ALIVE_TIME >> 1)
        elif (
            not self.error
            and self.connection_state is ConnectionState.DISCONNECTING
            and channel.events & Event.OUT
        ):
            channel.events = Event.OUT | Event.ET
        else:
            self.loop.run_in_loop(self.handle_close)

    def handle_error(self, code: int, message: str) -> None:
        """Send an error page; partial writes are not retried."""
        try:
            write_all(self.sock, error_response(code, message))
        except OSError:
            pass

    def handle_close(self) -> None:
        """Remove the connection from its loop and close the socket."""
        self.connection_state = ConnectionState.DISCONNECTED
        if self._closed:
            return
        self._closed = True
        self.loop.remove_from_poller(self.channel)
        self.sock.close()

    def new_event(self) -> None:
        """Register the connection with its loop for the first request."""
        self.channel.events = DEFAULT_EVENT
        self.loop.add_to_poller(self.channel, DEFAULT_EXPIRED_TIME)

    def __repr__(self) -> str:
        return f"HttpData(fd={self.fd}, state={self.state.name})"