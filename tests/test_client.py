import math
import socket
import socketserver
import threading
from contextlib import contextmanager

import pytest

from twinab.client import ABClient, ABTestStats, Target, main, send_request
from twinab.original import process_request
from twinab.protocol import BUFFER_SIZE, Request, Response, decode_request, encode_response
from twinab.twin import TwinService


class _Handler(socketserver.BaseRequestHandler):
    def handle(self):
        data = self.request.recv(BUFFER_SIZE)
        if data:
            request = decode_request(data)
            self.request.sendall(encode_response(self.server.process(request)))


class _Server(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True


@contextmanager
def running(process):
    server = _Server(("127.0.0.1", 0), _Handler)
    server.process = process
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server.server_address[1]
    finally:
        server.shutdown()
        server.server_close()


def free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class FakeSender:
    def __init__(self, fail_ports=()):
        self.calls = []
        self.fail_ports = set(fail_ports)

    def __call__(self, host, port, request, timeout):
        self.calls.append((port, request))
        if port in self.fail_ports:
            raise ConnectionError(f"Connection Failed to port {port}")
        return Response(request.request_id, 200, f"{port}:{request.parameters}")


def ticking_timer(step=0.002):
    state = {"now": 0.0}

    def timer():
        state["now"] += step
        return state["now"]

    return timer


def make_client(sender, ratio=0.3):
    return ABClient("127.0.0.1", 1111, 2222, ratio, sender=sender, timer=ticking_timer())


def test_stats_record_attempts_per_target():
    stats = ABTestStats()
    stats.record_attempt(Target.ORIGINAL)
    stats.record_attempt(Target.TWIN)
    stats.record_attempt(Target.TWIN)
    assert (stats.total_requests, stats.original_requests, stats.twin_requests) == (3, 1, 2)


def test_stats_only_status_200_counts_as_success():
    stats = ABTestStats()
    stats.record_result(Target.TWIN, 5.0, 200)
    stats.record_result(Target.TWIN, 7.0, 400)
    stats.record_result(Target.ORIGINAL, 1.5, 404)
    assert stats.successful_twin == 1
    assert stats.successful_original == 0
    assert stats.twin_latency == 12.0
    assert stats.original_latency == 1.5


def test_report_lists_counts_and_shares():
    stats = ABTestStats()
    for target in (Target.ORIGINAL, Target.TWIN):
        stats.record_attempt(target)
        stats.record_result(target, 2.0, 200)
    report = stats.report()
    assert "===== A/B Testing Statistics =====" in report
    assert "Total Requests: 2" in report
    assert "Original System Requests: 1 (50.0%)" in report
    assert "Digital Twin Avg Latency: 2.000 ms" in report


def test_report_without_requests_skips_rates():
    report = ABTestStats().report()
    assert "Success Rate" not in report
    assert "Total Requests: 0" in report
    assert "nan" in report


def test_set_ratio_clamps_to_unit_interval():
    client = make_client(FakeSender())
    assert client.set_ratio(1.5) == 1.0
    assert client.set_ratio(-2) == 0.0
    assert client.set_ratio(0.5) == 0.5
    assert client.ratio == 0.5


def test_set_ratio_rejects_nan():
    client = make_client(FakeSender())
    with pytest.raises(ValueError):
        client.set_ratio(math.nan)


@pytest.mark.parametrize("ratio, target, port", [(0.0, Target.ORIGINAL, 1111), (1.0, Target.TWIN, 2222)])
def test_route_follows_ratio(ratio, target, port):
    sender = FakeSender()
    client = make_client(sender, ratio)
    chosen, response, latency = client.route(Request(0, "ECHO", "x"))
    assert chosen is target
    assert sender.calls[0][0] == port
    assert response.status_code == 200
    assert latency > 0


def test_send_assigns_increasing_ids():
    sender = FakeSender()
    client = make_client(sender)
    first, _ = client.send(Target.TWIN, Request(0, "HEALTH"))
    second, _ = client.send(Target.TWIN, Request(0, "HEALTH"))
    assert second.request_id == first.request_id + 1
    assert client.stats.twin_requests == 2
    assert client.stats.successful_twin == 2


def test_send_failure_counts_attempt_only():
    client = make_client(FakeSender(fail_ports={2222}))
    with pytest.raises(ConnectionError):
        client.send(Target.TWIN, Request(0, "HEALTH"))
    assert client.stats.twin_requests == 1
    assert client.stats.successful_twin == 0
    assert client.stats.twin_latency == 0.0


def test_replay_sends_same_request_to_both():
    sender = FakeSender()
    client = make_client(sender)
    original, twin = client.replay(Request(0, "ECHO", "hi"))
    assert [port for port, _ in sender.calls] == [1111, 2222]
    assert sender.calls[0][1] == sender.calls[1][1]
    assert original[0].request_id == twin[0].request_id
    assert client.stats.total_requests == 2


def test_replay_reports_failed_side_as_none():
    client = make_client(FakeSender(fail_ports={1111}))
    original, twin = client.replay(Request(0, "ECHO", "hi"))
    assert original is None
    assert twin[0].status_code == 200
    assert client.stats.original_requests == 1
    assert client.stats.successful_original == 0


def test_send_request_round_trip_with_original():
    with running(process_request) as port:
        response = send_request("127.0.0.1", port, Request(7, "ECHO", "hello"), timeout=5)
    assert response == Response(7, 200, "hello")


def test_send_request_round_trip_with_twin():
    service = TwinService()
    with running(service.process) as port:
        response = send_request("127.0.0.1", port, Request(3, "ECHO", "hi"), timeout=5)
    assert response.result == "hi (Digital Twin Echo)"
    assert service.request_count == 1


def test_send_request_to_closed_port_raises():
    with pytest.raises(ConnectionError):
        send_request("127.0.0.1", free_port(), Request(1, "ECHO", "x"), timeout=5)


def _feed(monkeypatch, lines):
    items = iter(lines)

    def fake_input(prompt=""):
        try:
            return next(items)
        except StopIteration:
            raise EOFError from None

    monkeypatch.setattr("builtins.input", fake_input)


def test_main_routes_echo_to_original(monkeypatch, capsys):
    service = TwinService()
    with running(process_request) as original_port, running(service.process) as twin_port:
        _feed(monkeypatch, ["2", "hello", "4", "7"])
        code = main(
            ["--original-port", str(original_port), "--twin-port", str(twin_port), "--ratio", "0"]
        )
    out = capsys.readouterr().out
    assert code == 0
    assert "Response from Original System:" in out
    assert "Result: hello" in out
    assert "Total Requests: 1" in out


def test_main_replay_detects_mismatch(monkeypatch, capsys):
    service = TwinService()
    with running(process_request) as original_port, running(service.process) as twin_port:
        _feed(monkeypatch, ["8", "2", "same"])
        code = main(["--original-port", str(original_port), "--twin-port", str(twin_port)])
    out = capsys.readouterr().out
    assert code == 0
    assert "MISMATCH DETECTED!" in out
    assert "Result: same (Digital Twin Echo)" in out


def test_main_replay_of_matching_calculation(monkeypatch, capsys):
    service = TwinService()
    with running(process_request) as original_port, running(service.process) as twin_port:
        _feed(monkeypatch, ["8", "1", "10 + 5", "7"])
        main(["--original-port", str(original_port), "--twin-port", str(twin_port)])
    out = capsys.readouterr().out
    assert "Responses Match" in out
    assert "MISMATCH" not in out


def test_main_handles_invalid_choice_and_ratio(monkeypatch, capsys):
    _feed(monkeypatch, ["99", "6", "2.5", "7"])
    code = main(["--original-port", str(free_port()), "--twin-port", str(free_port())])
    out = capsys.readouterr().out
    assert code == 0
    assert "Invalid choice" in out
    assert "A/B test ratio updated to 1.0" in out


def test_main_reports_connection_failure(monkeypatch, capsys):
    twin_port = free_port()
    _feed(monkeypatch, ["5", "7"])
    main(["--original-port", str(free_port()), "--twin-port", str(twin_port)])
    out = capsys.readouterr().out
    assert f"Connection Failed to port {twin_port}" in out