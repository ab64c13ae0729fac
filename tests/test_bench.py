import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from edgeweb.bench import (
    BenchConfig,
    BenchError,
    BenchResult,
    Method,
    bench_core,
    build_request,
    connect,
    main,
    parse_args,
    run_benchmark,
)

BODY = b"hello"


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Length", str(len(BODY)))
        self.end_headers()
        self.wfile.write(BODY)

    def do_HEAD(self):
        self.send_response(200)
        self.send_header("Content-Length", str(len(BODY)))
        self.end_headers()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def server_port():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[1]
    server.shutdown()
    server.server_close()


@pytest.fixture
def closed_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def test_build_request_default_get():
    request, host, port = build_request(BenchConfig(), "http://example.com/")
    assert request == (
        "GET / HTTP/1.0\r\nUser-Agent: EdgeBench 1.5\r\nHost: example.com\r\n\r\n"
    )
    assert host == "example.com"
    assert port == 80


def test_build_request_port_from_url():
    request, host, port = build_request(BenchConfig(), "http://example.com:8080/x/y")
    assert request.startswith("GET /x/y HTTP/1.0\r\n")
    assert host == "example.com"
    assert port == 8080


def test_build_request_zero_port_defaults_to_80():
    _, host, port = build_request(BenchConfig(), "http://example.com:0/")
    assert (host, port) == ("example.com", 80)


def test_build_request_http09_has_no_headers():
    request, _, _ = build_request(BenchConfig(http_version=0), "http://example.com/a")
    assert request == "GET /a\r\n"


def test_head_upgrades_http09_to_http10():
    config = BenchConfig(method=Method.HEAD, http_version=0)
    request, _, _ = build_request(config, "http://example.com/")
    assert config.effective_http_version == 1
    assert request.startswith("HEAD / HTTP/1.0\r\n")
    assert request.endswith("\r\n\r\n")


def test_options_upgrades_to_http11_with_close():
    config = BenchConfig(method=Method.OPTIONS)
    request, _, _ = build_request(config, "http://example.com/")
    assert request.startswith("OPTIONS / HTTP/1.1\r\n")
    assert "Connection: close\r\n" in request


def test_keep_alive_header_for_http11():
    config = BenchConfig(http_version=2, keep_alive=True)
    request, _, _ = build_request(config, "http://example.com/")
    assert "Connection: Keep-Alive\r\n" in request
    assert "Connection: close" not in request


def test_proxy_request_uses_full_url_and_pragma():
    config = BenchConfig(proxy_host="proxy.example.com", proxy_port=3128, force_reload=True)
    request, host, port = build_request(config, "http://example.com/page")
    assert request.startswith("GET http://example.com/page HTTP/1.0\r\n")
    assert "Host:" not in request
    assert "Pragma: no-cache\r\n" in request
    assert (host, port) == ("proxy.example.com", 3128)


def test_reload_without_proxy_has_no_pragma():
    request, _, _ = build_request(BenchConfig(force_reload=True), "http://example.com/")
    assert "Pragma" not in request


@pytest.mark.parametrize(
    "url",
    [
        "example.com/",
        "http://example.com/" + "a" * 1500,
        "https://example.com/",
        "http://example.com",
    ],
)
def test_build_request_rejects_bad_urls(url):
    with pytest.raises(BenchError) as info:
        build_request(BenchConfig(), url)
    assert info.value.exit_code == 2


def test_parse_args_empty_is_usage_error():
    with pytest.raises(BenchError) as info:
        parse_args([])
    assert info.value.exit_code == 2
    assert info.value.show_usage


def test_parse_args_missing_url():
    with pytest.raises(BenchError) as info:
        parse_args(["-f"])
    assert "Missing URL" in info.value.message


def test_parse_args_defaults_for_zero_values():
    config = parse_args(["-c", "0", "-t", "0", "http://example.com/"])
    assert config.clients == 1
    assert config.benchtime == 30
    assert config.url == "http://example.com/"


def test_parse_args_short_and_long_options():
    config = parse_args(["-fr", "-c5", "--time=7", "--head", "--http11", "http://example.com/"])
    assert config.force and config.force_reload
    assert config.clients == 5
    assert config.benchtime == 7
    assert config.method is Method.HEAD
    assert config.http_version == 2


def test_parse_args_options_after_url():
    config = parse_args(["http://example.com/", "-9", "-k"])
    assert config.http_version == 0
    assert config.keep_alive


def test_parse_args_proxy():
    config = parse_args(["-p", "proxy.example.com:3128", "http://example.com/"])
    assert config.proxy_host == "proxy.example.com"
    assert config.proxy_port == 3128


def test_parse_args_proxy_without_port_keeps_default():
    config = parse_args(["--proxy", "proxy.example.com", "http://example.com/"])
    assert config.proxy_host == "proxy.example.com"
    assert config.proxy_port == 80


@pytest.mark.parametrize("value", [":3128", "proxy.example.com:"])
def test_parse_args_bad_proxy(value):
    with pytest.raises(BenchError) as info:
        parse_args(["-p", value, "http://example.com/"])
    assert info.value.exit_code == 2
    assert value in info.value.message


@pytest.mark.parametrize("args", [["-x", "http://example.com/"], ["--keep", "http://example.com/"], ["-h"], ["-c"]])
def test_parse_args_invalid_or_help(args):
    with pytest.raises(BenchError) as info:
        parse_args(args)
    assert info.value.show_usage


def test_parse_args_version_stops_parsing():
    config = parse_args(["-V", "-x"])
    assert config.show_version


def test_bench_result_rates():
    assert BenchResult(speed=20, failed=10).pages_per_minute(30) == 60
    assert BenchResult(bytes_received=300).bytes_per_second(30) == 10


def test_bench_result_addition():
    total = BenchResult(1, 2, 3) + BenchResult(4, 5, 6)
    assert total == BenchResult(5, 7, 9)


def test_connect_to_server(server_port):
    sock = connect("127.0.0.1", server_port)
    try:
        assert sock.getpeername()[1] == server_port
    finally:
        sock.close()


def test_connect_refused(closed_port):
    with pytest.raises(OSError):
        connect("127.0.0.1", closed_port)


def test_bench_core_reads_responses(server_port):
    config = BenchConfig(benchtime=0.3)
    request, host, port = build_request(config, f"http://127.0.0.1:{server_port}/")
    result = bench_core(config, host, port, request)
    assert result.speed > 0
    assert result.bytes_received >= result.speed * len(BODY)


def test_bench_core_force_reads_nothing(server_port):
    config = BenchConfig(benchtime=0.3, force=True)
    request, host, port = build_request(config, f"http://127.0.0.1:{server_port}/")
    result = bench_core(config, host, port, request)
    assert result.speed > 0
    assert result.bytes_received == 0


def test_bench_core_keep_alive(server_port):
    config = BenchConfig(benchtime=0.3, http_version=2, keep_alive=True)
    request, host, port = build_request(config, f"http://127.0.0.1:{server_port}/")
    result = bench_core(config, host, port, request)
    assert result.speed > 0
    assert result.bytes_received > 0


def test_run_benchmark_sums_clients(server_port):
    config = BenchConfig(benchtime=0.3, clients=2)
    request, host, port = build_request(config, f"http://127.0.0.1:{server_port}/")
    result = run_benchmark(config, host, port, request)
    assert result.speed >= 2
    assert result.bytes_received > 0


def test_run_benchmark_unreachable(closed_port):
    config = BenchConfig(benchtime=0.3)
    request, host, port = build_request(config, f"http://127.0.0.1:{closed_port}/")
    with pytest.raises(BenchError) as info:
        run_benchmark(config, host, port, request)
    assert info.value.exit_code == 1


def test_main_version(capsys):
    assert main(["-V"]) == 0
    assert capsys.readouterr().out.strip() == "1.5"


def test_main_no_args_prints_usage(capsys):
    assert main([]) == 2
    assert "--clients" in capsys.readouterr().err


def test_main_unreachable_server(closed_port):
    assert main(["-t", "1", f"http://127.0.0.1:{closed_port}/"]) == 1


def test_main_bad_url():
    assert main(["ftp://example.com/"]) == 2