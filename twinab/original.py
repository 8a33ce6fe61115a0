"""The original system: a small calculation and echo service."""

from __future__ import annotations

import argparse
import sys

from twinab.protocol import Request, Response, parse_calculation, serve

ORIGINAL_PORT = 8080


def _int32(value: int) -> int:
    return (value + 2**31) % 2**32 - 2**31


def _truncating_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


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
        return 200, str(_int32(_truncating_div(a, b)))
    return 400, "Unknown operation"


def process_request(request: Request) -> Response:
    """Answer a request the way the original system does."""
    if request.operation == "CALCULATE":
        status, result = _calculate(request.parameters)
    elif request.operation == "ECHO":
        status, result = 200, request.parameters
    else:
        status, result = 404, "Unknown operation"
    return Response(request.request_id, status, result)


def main(argv: list[str] | None = None) -> int:
    """Run the original system's server."""
    parser = argparse.ArgumentParser(description="Run the original system.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=ORIGINAL_PORT)
    args = parser.parse_args(argv)
    try:
        serve(process_request, args.host, args.port, "Original system")
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(f"Server failed: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())