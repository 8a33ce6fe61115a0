# twinab

Run an original request service and its "digital twin" side by side, and
compare them with A/B routing and request replay from an interactive client.

## Installation

```
pip install .
```

## The three programs

Start each in its own terminal.

```
twinab-original   # original system, listens on port 8080
twinab-twin       # digital twin, listens on port 8081
twinab-client     # interactive menu, talks to both on 127.0.0.1
```

Options:

- `twinab-original --host HOST --port PORT` (defaults `0.0.0.0`, `8080`)
- `twinab-twin --host HOST --port PORT --log PATH` (defaults `0.0.0.0`,
  `8081`, `twin_request_log.txt`)
- `twinab-client --host HOST --original-port PORT --twin-port PORT --ratio R`
  (defaults `127.0.0.1`, `8080`, `8081`, `0.3`)

The servers answer one request per connection and handle connections one at
a time. Requests and responses are fixed-size binary records (see
`twinab.protocol`).

### Original system

Handles two operations:

- `CALCULATE` with parameters like `10 + 5`; supports `+`, `-`, `*` and
  integer `/` (truncating toward zero, 32-bit results). Division by zero
  answers status 400 `Division by zero`; an unknown operator or text not of
  the form `<int> <op> <int>` answers status 400 `Unknown operation`.
- `ECHO` returns the parameters unchanged.

Anything else answers status 404, `Unknown operation`.

### Digital twin

Behaves like the original, with these differences:

- `/` gives a result to two decimal places (`7 / 2` gives `3.50`), and `%`
  (modulo) is supported; modulo by zero answers status 400 `Modulo by zero`.
- `ECHO` appends ` (Digital Twin Echo)` to the text.
- `UPPERCASE` converts ASCII letters to upper case.
- `HEALTH` reports uptime, request count and average processing latency.

About one request in five is delayed by 50–149 ms to mimic a poor network.
Every request is appended to the log file (by default `twin_request_log.txt`
in the working directory) as `id|operation|parameters`; if the file cannot
be opened, the twin runs without logging.

### Client

The menu offers:

1. Send a calculate request
2. Send an echo request
3. Send an uppercase request (twin only)
4. View A/B test statistics
5. Get the twin's health info
6. Change the A/B ratio (clamped to 0.0–1.0)
7. Exit
8. Replay one request to both systems and report whether the responses match

Calculate and echo requests are routed to the twin with probability equal to
the A/B ratio, otherwise to the original. Statistics track request counts,
success rates (status 200) and average round-trip latency per system. In a
replay, a system that cannot be reached counts as a mismatch.

## Using it from Python

```python
from twinab.protocol import Request
from twinab.original import process_request
from twinab.twin import TwinService

request = Request(request_id=1, operation="CALCULATE", parameters="7 / 2")
print(process_request(request).result)        # 3
print(TwinService().process(request).result)  # 3.50
```

`twinab.protocol` provides `Request`, `Response`, `encode_request`,
`decode_request`, `encode_response`, `decode_response`, `parse_calculation`
and `serve`.

`twinab.client.ABClient` offers `send`, `route`, `replay` and `set_ratio`
for scripting the same comparisons the menu performs; `set_ratio` raises
`ValueError` for NaN. `twinab.client.send_request` performs a single
exchange and raises `ConnectionError` when the service cannot be reached.
`twinab.client.ABTestStats.report()` renders the statistics table.

## Running the tests

```
pip install .[test]
pytest
```