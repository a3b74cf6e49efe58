# utilkit

A small collection of building blocks for concurrent and inter-process programs:

- `utilkit.unbounded` is a FIFO `Buffer` that grows without bound. `push` never blocks. `pop` raises `Empty` when nothing is queued. `pull` waits for an item. `next` yields items until `close` is called.
- `utilkit.spin` is a `Sleeper` that first yields the processor and then sleeps for longer and longer periods while a loop waits for work.
- `utilkit.signaling` is a `Signaler` for two-way hand-offs between threads. The receiver iterates `receive()` to get `Acker` objects and answers with `ack`. The sender can block for the answer with `wait=True` or collect it later through a `promise` (anything with a `put` method, such as `queue.Queue`).
- `utilkit.statemachine` is an `Executor` that runs state functions until one returns `None` or raises. It records which states ran in `nodes()`, and logs through an optional logger when `log(True)` is set. `MockExecutor` is a stand-in for tests. `scrub_name` strips qualifiers from a function name.
- `utilkit.memmap` provides `Map` and `MapString`. They give bounds-checked `read`, `read_at`, `write` and `seek` on memory-mapped files or anonymous memory. `MapString` adds `read_line` and `write_string` for UTF-8 text. The constants `READ`, `WRITE`, `EXEC`, `SHARED` and `PRIVATE` select protection and sharing.
- `utilkit.uds` is a Unix domain socket `Server` and `Client`. The server sets the owner and mode of the socket file. For each connection it returns a `Conn` carrying the peer's credentials (`Cred`). Reads and writes block unless a per-call deadline is set. `current()` returns the current process's credentials.

## Installing

```
pip install .
```

Run the tests with:

```
pip install ".[test]"
pytest
```

## Examples

```python
from utilkit.unbounded import Buffer

buf = Buffer()
buf.push(1)
buf.push(2)
assert buf.pull() == 1
assert buf.pop() == 2
```

```python
import threading
from utilkit.signaling import Signaler

sig = Signaler()

def worker():
    acker = next(sig.receive())
    acker.ack(acker.data.upper())

threading.Thread(target=worker).start()
assert sig.signal("hello", wait=True) == "HELLO"
```

```python
from utilkit.statemachine import Executor

def start():
    return end

def end():
    return None

ex = Executor("demo", start)
ex.execute()
assert ex.nodes() == ["start", "end"]
```

```python
from utilkit.memmap import MapString, READ, WRITE, SHARED

with open("notes.txt", "r+b") as f, MapString(f, prot=READ | WRITE, flags=SHARED) as m:
    first = m.read_line()
```

```python
from utilkit.uds import Server, Client, current

cred, _ = current()
server = Server("/tmp/demo.sock", cred.uid, cred.gid, 0o770)
client = Client("/tmp/demo.sock", cred.uid, cred.gid)
conn = next(server.conns())
client.write(b"ping")
assert conn.read(4) == b"ping"
client.close()
server.close()
```

The memory-map and socket modules work on Unix-like systems (Linux and macOS).

## What it does not do

`utilkit.uds` moves raw bytes only. The package has no message framing on top of the sockets, no JSON or protobuf message streams, and no RPC client or server. Any message boundaries and encoding must be added by the caller. The `utilkit.experimental` sub-package is present but holds no modules.