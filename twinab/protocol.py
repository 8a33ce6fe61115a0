"""Wire format shared by the original system, the digital twin and the client.

Requests and responses travel as fixed-size little-endian records whose
text fields are NUL-terminated and padded with zero bytes.
"""

from __future__ import annotations

import re
import socket
import struct
from dataclasses import dataclass
from typing import Callable

BUFFER_SIZE = 1024

OPERATION_SIZE = 64
PARAMETERS_SIZE = 256
RESULT_SIZE = 512

_REQUEST_STRUCT = struct.Struct(f"<i{OPERATION_SIZE}s{PARAMETERS_SIZE}s")
_RESPONSE_STRUCT = struct.Struct(f"<ii{RESULT_SIZE}s")

REQUEST_SIZE = _REQUEST_STRUCT.size
RESPONSE_SIZE = _RESPONSE_STRUCT.size

_INT_RE = re.compile(r"\s*([+-]?\d+)")
_CHAR_RE = re.compile(r"\s*(\S)")


@dataclass
class Request:
    """A request sent to one of the services."""

    request_id: int
    operation: str
    parameters: str = ""


@dataclass
class Response:
    """A service's answer to a request."""

    request_id: int
    status_code: int
    result: str = ""


def _int32(value: int) -> int:
    return (value + 2**31) % 2**32 - 2**31


def _encode_text(text: str, size: int) -> bytes:
    raw = text.encode("utf-8")
    if len(raw) > size - 1:
        raw = raw[: size - 1].decode("utf-8", "ignore").encode("utf-8")
    return raw


def _decode_text(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", "replace")


def _pack(layout: struct.Struct, *values: object) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise ValueError(str(exc)) from exc


def encode_request(request: Request) -> bytes:
    """Serialise a request into its fixed-size record."""
    return _pack(
        _REQUEST_STRUCT,
        request.request_id,
        _encode_text(request.operation, OPERATION_SIZE),
        _encode_text(request.parameters, PARAMETERS_SIZE),
    )


def decode_request(data: bytes) -> Request:
    """Parse a request record; missing trailing bytes count as zeros."""
    if not data:
        raise ValueError("empty request")
    record = bytes(data[:REQUEST_SIZE]).ljust(REQUEST_SIZE, b"\0")
    request_id, operation, parameters = _REQUEST_STRUCT.unpack(record)
    return Request(request_id, _decode_text(operation), _decode_text(parameters))


def encode_response(response: Response) -> bytes:
    """Serialise a response into its fixed-size record."""
    return _pack(
        _RESPONSE_STRUCT,
        response.request_id,
        response.status_code,
        _encode_text(response.result, RESULT_SIZE),
    )


def decode_response(data: bytes) -> Response:
    """Parse a response record; missing trailing bytes count as zeros."""
    if not data:
        raise ValueError("empty response")
    record = bytes(data[:RESPONSE_SIZE]).ljust(RESPONSE_SIZE, b"\0")
    request_id, status_code, result = _RESPONSE_STRUCT.unpack(record)
    return Response(request_id, status_code, _decode_text(result))


def parse_calculation(text: str) -> tuple[int, str, int]:
    """Split ``"<int> <op> <int>"`` into its operands and operator character.

    Raises ValueError when the text does not have that shape.
    """
    first = _INT_RE.match(text)
    if first is None:
        raise ValueError(f"missing left operand in {text!r}")
    operator = _CHAR_RE.match(text, first.end())
    if operator is None:
        raise ValueError(f"missing operator in {text!r}")
    second = _INT_RE.match(text, operator.end())
    if second is None:
        raise ValueError(f"missing right operand in {text!r}")
    return _int32(int(first.group(1))), operator.group(1), _int32(int(second.group(1)))


def serve(
    handler: Callable[[Request], Response],
    host: str = "0.0.0.0",
    port: int = 8080,
    name: str = "Server",
) -> None:
    """Accept connections forever, answering one request per connection."""
    with socket.create_server((host, port), backlog=10) as server:
        print(f"{name} listening on port {port}", flush=True)
        while True:
            conn, _ = server.accept()
            with conn:
                data = conn.recv(BUFFER_SIZE)
                if not data:
                    continue
                request = decode_request(data)
                response = handler(request)
                conn.sendall(encode_response(response))
                print(f"{name}: Processed request {request.request_id}", flush=True)