# labkit

Building blocks for experimenting with distributed systems:

- `labkit.labgob`: a value codec for RPC and persistence. Values are written
  as length-prefixed JSON frames. It warns about dataclass fields whose names
  start with an underscore (they are not transmitted) and about decoding into
  an object that already holds non-default values.
- `labkit.linearizability`: a linearizability checker for operation and event
  histories, with a ready-made key/value model (`kv_model`).
- `labkit.mr`: a MapReduce master and worker that talk over a Unix-domain
  socket, together with sample applications and a sequential runner.

Needs Python 3.10 or later and a POSIX system (Unix-domain sockets are used).

## Installation

```
pip install .
```

## Encoding values

```python
import io
from dataclasses import dataclass
from labkit.labgob import LabEncoder, LabDecoder, register, error_count

@dataclass
class Point:
    x: int = 0
    y: int = 0

register(Point)
buf = io.BytesIO()
LabEncoder(buf).encode(Point(1, 2))
buf.seek(0)
point = LabDecoder(buf).decode(Point)   # Point(x=1, y=2)
```

`decode` takes a type the value must have, an existing dataclass instance
whose public fields are overwritten in place, or `None`. `error_count()`
returns how many warnings have been raised so far.

## Checking linearizability

```python
from labkit.linearizability.model import Operation
from labkit.linearizability.models import KvInput, KvOutput, kv_model
from labkit.linearizability.checker import check_operations

history = [
    Operation(KvInput(op=1, key="x", value="a"), 0, KvOutput(""), 10),
    Operation(KvInput(op=0, key="x"), 20, KvOutput("a"), 30),
]
assert check_operations(kv_model(), history, 0)
```

`check_events` does the same for histories of `Event` values. Both take a
timeout in seconds; `None` or `0` means no limit, and a check that runs out
of time returns `True`, which may be a false positive. Custom models are
built with `Model(init=..., step=...)`.

## MapReduce

Sample applications are loaded by name (or by a path whose file stem is the
name) with `labkit.mr.apps.load_app`: `wc`, `indexer`, `crash`, `nocrash`,
`mtiming` and `rtiming`.

Run a job in one process:

```
mrsequential wc pg-*.txt
```

The results go to `mr-out-0` in the current directory, one `key value` line
per key. The same is available from Python as
`labkit.mr.cli.run_sequential(mapf, reducef, filenames, output)`.

Run a job with a master and several workers, all in the same directory:

```
mrmaster pg-*.txt &
mrworker wc &
mrworker wc &
```

The master listens on the socket `mr-socket` and uses 10 reduce tasks. Map
tasks write intermediate files `mr-worker-<m>-<r>.out`; each reduce task
writes its results to `mr-out-<r>`. A worker that does not ping the master
within 10 seconds has its task handed out again. The master exits once every
reduce task has finished, and idle workers are told to shut down.

From Python, `labkit.mr.master.make_master(files, n_reduce, socket_path)`
starts a `Master` that serves RPCs in a background thread (use it as a
context manager, or call `close()`), and `labkit.mr.worker.WorkerClient`
runs a worker against it.

## What is not included

The package has no in-process simulated network for RPCs that drops,
delays or reorders messages; the MapReduce master and workers talk over a
real Unix-domain socket only. There is no replicated key/value service
either: the key/value model is for checking histories, not for storing data.