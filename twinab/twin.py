"""The digital twin: an extended copy of the original system with metrics."""

from __future__ import annotations

import argparse
import random
import struct
import sys
import time
from typing import Callable, TextIO

from twinab.protocol import Request, Response, parse_calculation, serve

TWIN_PORT = 8081
LOG_PATH = "twin_request_log.txt"


def _int32(value: int) -> int:
    return (value + 2**31) % 2**32 - 2**31


def _float32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _truncating_mod(a: int, b: int) -> int:
    remainder = abs(a) % abs(b)
    return -remainder if a < 0 else remainder


def _calculate(parameters: str) -> tuple[int, str]:
    try:
        a, operator, b = parse_calculation(parameters)
    except ValueError:
        return 400, "Unknown operation"
    if operator == "+":
        return 200, str(_int32(a + b))
    if operator == "-":
        return 200, str(_int32(a - b))
    if operator == "*":
        return 200, str(_int32(a * b))
    if operator == "/":
        if b == 0:
            return 400, "Division by zero"
        return 200, f"{_float32(_float32(a) / _float32(b)):.2f}"
    if operator == "%":
        if b == 0:
            return 400, "Modulo by zero"
        return 200, str(_int32(_truncating_mod(a, b)))
    return 400, "Unknown operation"


def _ascii_upper(text: str) -> str:
    return "".join(chr(ord(c) - 32) if "a" <= c <= "z" else c for c in text)


class TwinService:
    """Processes requests and keeps uptime, request count and latency."""

    def __init__(
        self,
        log: TextIO | None = None,
        clock: Callable[[], float] = time.time,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.log = log
        self._clock = clock
        self._timer = timer
        self.start_time = clock()
        self.request_count = 0
        self.total_latency = 0.0

    def health(self) -> str:
        """Describe uptime, requests served and their average latency."""
        uptime = int(self._clock()) - int(self.start_time)
        average = self.total_latency / self.request_count if self.request_count else 0.0
        return (
            f"uptime: {uptime}s, requests: {self.request_count}, "
            f"avg_latency: {average:.2f} ms"
        )

    def process(self, request: Request) -> Response:
        """Answer a request, update the metrics and log it."""
        started = self._timer()
        operation = request.operation
        if operation == "CALCULATE":
            status, result = _calculate(request.parameters)
        elif operation == "ECHO":
            status, result = 200, request.parameters + " (Digital Twin Echo)"
        elif operation == "UPPERCASE":
            status, result = 200, _ascii_upper(request.parameters)
        elif operation == "HEALTH":
            status, result = 200, self.health()
        else:
            status, result = 404, "Unknown operation"
        finished = self._timer()

        self.total_latency += (finished - started) * 1000.0
        self.request_count += 1

        if self.log is not None:
            self.log.write(f"{request.request_id}|{operation}|{request.parameters}\n")
            self.log.flush()
        return Response(request.request_id, status, result)


def simulate_network_conditions(
    rng: random.Random | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """With a 20% chance, pause 50-149 ms; return the delay in milliseconds."""
    rng = rng if rng is not None else random.Random()
    if rng.randrange(10) >= 2:
        return 0
    delay = rng.randrange(100) + 50
    sleep(delay / 1000.0)
    return delay


def main(argv: list[str] | None = None) -> int:
    """Run the digital twin's server."""
    parser = argparse.ArgumentParser(description="Run the digital twin.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=TWIN_PORT)
    parser.add_argument("--log", default=LOG_PATH)
    args = parser.parse_args(argv)

    rng = random.Random()
    try:
        log = open(args.log, "a", encoding="utf-8")
    except OSError:
        log = None
    service = TwinService(log)

    def handle(request: Request) -> Response:
        simulate_network_conditions(rng)
        return service.process(request)

    try:
        serve(handle, args.host, args.port, "Digital Twin")
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(f"Server failed: {exc}", file=sys.stderr)
        return 1
    finally:
        if log is not None:
            log.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())