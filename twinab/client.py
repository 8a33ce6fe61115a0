"""Interactive A/B testing client for the original system and its digital twin."""

from __future__ import annotations

import argparse
import dataclasses
import enum
import math
import random
import socket
import sys
import time
from dataclasses import dataclass
from typing import Callable

from twinab.protocol import RESPONSE_SIZE, Request, Response, decode_response, encode_request

SERVER_IP = "127.0.0.1"
ORIGINAL_PORT = 8080
TWIN_PORT = 8081
DEFAULT_RATIO = 0.3

_MENU = (
    "\nMenu:\n"
    "1. Send Calculate Request\n"
    "2. Send Echo Request\n"
    "3. Send Uppercase Request (Twin only)\n"
    "4. View A/B Test Stats\n"
    "5. Get Digital Twin Health Info\n"
    "6. Change A/B Test Ratio (current: {ratio:.1f})\n"
    "7. Exit\n"
    "8. Replay Request to Both Systems"
)


class Target(enum.Enum):
    """The service a request is sent to."""

    ORIGINAL = "original"
    TWIN = "twin"


def _percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole else math.nan


@dataclass
class ABTestStats:
    """Counts and latencies gathered while testing both services."""

    total_requests: int = 0
    original_requests: int = 0
    twin_requests: int = 0
    successful_original: int = 0
    successful_twin: int = 0
    original_latency: float = 0.0
    twin_latency: float = 0.0

    def record_attempt(self, target: Target) -> None:
        """Count a request about to be sent to ``target``."""
        self.total_requests += 1
        if target is Target.TWIN:
            self.twin_requests += 1
        else:
            self.original_requests += 1

    def record_result(self, target: Target, latency_ms: float, status_code: int) -> None:
        """Add the latency of an answered request; status 200 counts as success."""
        success = status_code == 200
        if target is Target.TWIN:
            self.twin_latency += latency_ms
            self.successful_twin += success
        else:
            self.original_latency += latency_ms
            self.successful_original += success

    def report(self) -> str:
        """Render the statistics as a text block."""
        lines = [
            "",
            "===== A/B Testing Statistics =====",
            f"Total Requests: {self.total_requests}",
            f"Original System Requests: {self.original_requests} "
            f"({_percent(self.original_requests, self.total_requests):.1f}%)",
            f"Digital Twin Requests: {self.twin_requests} "
            f"({_percent(self.twin_requests, self.total_requests):.1f}%)",
        ]
        if self.original_requests > 0:
            lines.append(
                "Original Success Rate: "
                f"{_percent(self.successful_original, self.original_requests):.1f}%"
            )
            lines.append(
                "Original Avg Latency: "
                f"{self.original_latency / self.original_requests:.3f} ms"
            )
        if self.twin_requests > 0:
            lines.append(
                "Digital Twin Success Rate: "
                f"{_percent(self.successful_twin, self.twin_requests):.1f}%"
            )
            lines.append(
                "Digital Twin Avg Latency: "
                f"{self.twin_latency / self.twin_requests:.3f} ms"
            )
        lines.append("==================================")
        return "\n".join(lines) + "\n"


def send_request(
    host: str, port: int, request: Request, timeout: float | None = None
) -> Response:
    """Send one request over a fresh connection and return the answer.

    Raises ConnectionError when the service cannot be reached or says nothing.
    """
    try:
        conn = socket.create_connection((host, port), timeout=timeout)
    except OSError as exc:
        raise ConnectionError(f"Connection Failed to port {port}") from exc
    with conn:
        conn.sendall(encode_request(request))
        chunks: list[bytes] = []
        received = 0
        while received < RESPONSE_SIZE:
            chunk = conn.recv(RESPONSE_SIZE - received)
            if not chunk:
                break
            chunks.append(chunk)
            received += len(chunk)
    data = b"".join(chunks)
    if not data:
        raise ConnectionError(f"No response from port {port}")
    return decode_response(data)


Sender = Callable[[str, int, Request, "float | None"], Response]


class ABClient:
    """Sends requests to either service, splitting traffic by a ratio."""

    def __init__(
        self,
        host: str = SERVER_IP,
        original_port: int = ORIGINAL_PORT,
        twin_port: int = TWIN_PORT,
        ratio: float = DEFAULT_RATIO,
        rng: random.Random | None = None,
        sender: Sender = send_request,
        timer: Callable[[], float] = time.perf_counter,
        timeout: float | None = None,
    ) -> None:
        self.host = host
        self.ports = {Target.ORIGINAL: original_port, Target.TWIN: twin_port}
        self.ratio = DEFAULT_RATIO
        self.set_ratio(ratio)
        self.rng = rng if rng is not None else random.Random()
        self.stats = ABTestStats()
        self.next_request_id = 1
        self._sender = sender
        self._timer = timer
        self._timeout = timeout

    def _stamp(self, request: Request) -> Request:
        stamped = dataclasses.replace(request, request_id=self.next_request_id)
        self.next_request_id += 1
        return stamped

    def _exchange(self, target: Target, request: Request) -> tuple[Response, float]:
        self.stats.record_attempt(target)
        started = self._timer()
        response = self._sender(self.host, self.ports[target], request, self._timeout)
        latency = (self._timer() - started) * 1000.0
        self.stats.record_result(target, latency, response.status_code)
        return response, latency

    def send(self, target: Target, request: Request) -> tuple[Response, float]:
        """Send a request to ``target`` under a new id; return answer and latency in ms."""
        return self._exchange(target, self._stamp(request))

    def route(self, request: Request) -> tuple[Target, Response, float]:
        """Send a request to the twin with probability ``ratio``, else to the original."""
        target = Target.TWIN if self.rng.random() < self.ratio else Target.ORIGINAL
        response, latency = self.send(target, request)
        return target, response, latency

    def replay(
        self, request: Request
    ) -> tuple[tuple[Response, float] | None, tuple[Response, float] | None]:
        """Send the same request to both services; a side that fails is None."""
        stamped = self._stamp(request)
        outcomes: list[tuple[Response, float] | None] = []
        for target in (Target.ORIGINAL, Target.TWIN):
            try:
                outcomes.append(self._exchange(target, stamped))
            except ConnectionError:
                outcomes.append(None)
        return outcomes[0], outcomes[1]

    def set_ratio(self, ratio: float) -> float:
        """Set the share of traffic sent to the twin, clamped to 0.0-1.0."""
        ratio = float(ratio)
        if math.isnan(ratio):
            raise ValueError("ratio must be a number")
        self.ratio = min(max(ratio, 0.0), 1.0)
        return self.ratio


def _print_response(title: str, response: Response, latency: float) -> None:
    print(f"\n{title}")
    print(f"Status: {response.status_code}")
    print(f"Result: {response.result}")
    print(f"Latency: {latency:.3f} ms")


def _read(prompt: str) -> str:
    return input(prompt)


def _read_int(prompt: str) -> int | None:
    try:
        return int(_read(prompt).strip())
    except ValueError:
        return None


def _replay(client: ABClient) -> None:
    print("Choose operation to replay:")
    choice = _read_int("1. CALCULATE\n2. ECHO\nEnter choice: ")
    if choice == 1:
        operation, prompt = "CALCULATE", "Enter calculation (e.g., 10 + 5): "
    elif choice == 2:
        operation, prompt = "ECHO", "Enter text to echo: "
    else:
        print("Invalid replay operation.")
        return
    parameters = _read(prompt)
    original, twin = client.replay(Request(0, operation, parameters))
    for title, outcome, target in (
        ("Original System Response:", original, Target.ORIGINAL),
        ("Digital Twin Response:", twin, Target.TWIN),
    ):
        if outcome is None:
            print(f"Connection Failed to port {client.ports[target]}")
        else:
            _print_response(title, *outcome)
    if (
        original is None
        or twin is None
        or original[0].status_code != twin[0].status_code
        or original[0].result != twin[0].result
    ):
        print("\n⚠️ MISMATCH DETECTED!")
    else:
        print("\n✅ Responses Match")


def _run(client: ABClient) -> None:
    while True:
        print(_MENU.format(ratio=client.ratio))
        choice = _read_int("Enter choice: ")
        try:
            if choice in (1, 2):
                if choice == 1:
                    operation, prompt = "CALCULATE", "Enter calculation (e.g., 10 + 5): "
                else:
                    operation, prompt = "ECHO", "Enter text to echo: "
                request = Request(0, operation, _read(prompt))
                target, response, latency = client.route(request)
                title = (
                    "Response from Digital Twin:"
                    if target is Target.TWIN
                    else "Response from Original System:"
                )
                _print_response(title, response, latency)
            elif choice == 3:
                text = _read("Enter text to convert to uppercase: ")
                response, latency = client.send(Target.TWIN, Request(0, "UPPERCASE", text))
                _print_response("Response from Digital Twin:", response, latency)
            elif choice == 4:
                print(client.stats.report())
            elif choice == 5:
                response, _ = client.send(Target.TWIN, Request(0, "HEALTH", ""))
                print("\nHealth Info from Digital Twin:")
                print(response.result)
            elif choice == 6:
                try:
                    ratio = client.set_ratio(float(_read("Enter new A/B test ratio (0.0-1.0): ")))
                except ValueError:
                    print("Invalid ratio")
                else:
                    print(f"A/B test ratio updated to {ratio:.1f}")
            elif choice == 7:
                return
            elif choice == 8:
                _replay(client)
            else:
                print("Invalid choice")
        except ConnectionError as exc:
            print(exc)


def main(argv: list[str] | None = None) -> int:
    """Run the interactive A/B testing client."""
    parser = argparse.ArgumentParser(description="A/B test the original system and its twin.")
    parser.add_argument("--host", default=SERVER_IP)
    parser.add_argument("--original-port", type=int, default=ORIGINAL_PORT)
    parser.add_argument("--twin-port", type=int, default=TWIN_PORT)
    parser.add_argument("--ratio", type=float, default=DEFAULT_RATIO)
    args = parser.parse_args(argv)
    client = ABClient(args.host, args.original_port, args.twin_port, args.ratio)
    try:
        _run(client)
    except (EOFError, KeyboardInterrupt):
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())