# edgeweb

edgeweb is a small static-file HTTP server for Linux. A main event loop accepts
connections and hands each one, round robin, to a pool of worker event loops,
one per thread. The package also has a threaded HTTP load generator, an
asynchronous double-buffered file logger and a simple bounded thread pool.

It needs Python 3.10 or later on Linux, because the event loops use
`select.epoll` and `os.eventfd`. It has no third-party dependencies.

## Installation

```
pip install .
```

## Running the server

```
edgeweb -t 4 -p 8080 -l /tmp/edgeweb.log
```

Options:

- `-t N`: number of worker event-loop threads. The default is 4.
- `-p PORT`: port to listen on. The default is 80.
- `-l PATH`: log file. It must start with `/` and be at least two characters
  long; otherwise the command prints `logPath should start with "/"` and exits
  with status 1. The default is `./WebServer.log`.

Other options are reported on standard error and ignored. Press Ctrl-C to stop
the server.

### What the server answers

- `GET` and `HEAD` requests in HTTP/1.0 or HTTP/1.1 are served from the
  directory the server was started in. A request for `/` serves `index.html`,
  and a query string after `?` is dropped from the file name.
- The `Content-Type` comes from the file's suffix (`.html`, `.htm`, `.txt`,
  `.c`, `.png`, `.jpg`, `.gif`, `.bmp`, `.ico`, `.gz`, `.doc`, `.avi`, `.mp3`)
  and is `text/html` for anything else.
- `/hello` answers `Hello World` as plain text, and `/favicon.ico` answers with
  a small icon built into the server.
- A missing file gets a `404 Not Found!` HTML page; a malformed request line
  or header block gets `400 Bad Request`.
- A request with `Connection: Keep-Alive` (or `keep-alive`) keeps the
  connection open; idle connections are closed by timers (2 seconds while a
  request is pending, 5 minutes for keep-alive connections).

Example requests once the server is up:

```
curl http://localhost:8080/hello
curl -I http://localhost:8080/index.html
```

### Embedding the server

```python
from edgeweb.eventloop import EventLoop
from edgeweb.server import Server

loop = EventLoop()
server = Server(loop, thread_num=2, port=0, document_root="/srv/www")
print("listening on", server.port)
server.start()
try:
    loop.loop()
finally:
    server.stop()
    loop.close()
```

`EventLoop.loop()` runs until `EventLoop.quit()` is called.

## Benchmarking

```
edgeweb-bench -c 100 -t 10 http://localhost:8080/hello
```

Each client runs on its own thread and sends requests for the given time.
Options:

- `-f`, `--force`: do not wait for the reply.
- `-r`, `--reload`: send `Pragma: no-cache` (only when a proxy is used).
- `-t`, `--time SEC`: run time in seconds. The default is 30.
- `-p`, `--proxy HOST:PORT`: send requests through a proxy.
- `-c`, `--clients N`: number of concurrent clients. The default is 1.
- `-k`, `--keep`: reuse one connection per client (keep-alive).
- `-9`, `-1`, `-2`: use HTTP/0.9, HTTP/1.0 (the default) or HTTP/1.1.
- `--get`, `--head`, `--options`, `--trace`: choose the request method.
- `-h`, `-?`, `--help`: show the usage text.
- `-V`, `--version`: print the version.

The URL must start with `http://` and have a `/` after the host name. The
command prints the request it will send, then the pages per minute, bytes per
second and the number of succeeded and failed requests. It exits with 2 for
bad arguments and 1 if the server cannot be reached.

The same steps are available from code as `edgeweb.bench.parse_args`,
`build_request`, `run_benchmark` and `bench_core`.

## Using the logger from code

```python
from edgeweb.logger import log, set_log_file_name, shutdown_logging

set_log_file_name("/tmp/app.log")
log("listening on port ", 8080)
shutdown_logging()
```

Each entry is written as a timestamp line, the logged values, and a
` -- file:line` trailer naming the caller. Entries are collected in memory and
written by a background thread; `shutdown_logging()` flushes and stops it, and
is also run at interpreter exit. `edgeweb.logger.Logger` offers the same entry
with `<<` chaining, and `edgeweb.asynclogging.AsyncLogging` and
`edgeweb.logfile.LogFile` can be used on their own.

## Thread pool

`edgeweb.threadpool.ThreadPool(thread_count, queue_size)` runs `func(arg)`
tasks added with `add()`. `add()` raises `QueueFullError` when the queue is
full and `PoolShutdownError` after `destroy()`. `destroy()` either drains the
queue (`ShutdownOption.GRACEFUL`, the default) or drops waiting tasks
(`ShutdownOption.IMMEDIATE`). The server does not use it.

## What it does not do

- `POST` requests are parsed (a `Content-length` header is required) but not
  answered: the connection is closed without a response. `PUT`, `DELETE` and
  other methods are rejected with `400 Bad Request`.
- There is no TLS, no directory listing, no configuration file, and no
  document-root option on the command line; the `edgeweb` command always
  serves the current directory.
- It runs only on Linux.

## Running the tests

```
pip install .[test]
pytest
```