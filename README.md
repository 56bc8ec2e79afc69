# sparenode

`sparenode` is the worker side of a small serverless platform for edge
computing. A node accepts function invocations over HTTP, runs them when it
has the CPUs and memory to spare, and otherwise forwards them to its nearest
neighbours. When an emergency is declared somewhere on the map, the nodes
inside the emergency radius forward every request that is not marked as an
emergency, and the other nodes stop forwarding to them.

## Modules

- `sparenode.api` – the request and reply bodies: `InvokeFunction` (function
  name, image, vCPUs, memory in MiB, payload, emergency flag, hop count) and
  `Resources` (free CPUs and memory in kB). Both have `to_dict` and
  `from_dict`; `from_dict` raises `ValueError` on missing or mistyped fields.
- `sparenode.addresses` – `Addresses`, an allocator for guest addresses of an
  IPv4 network. `get()` returns the next address (the first one handed out is
  the network address plus two) or `None` when the network is exhausted;
  `release()` returns an address, and released addresses are handed out again
  first, most recently released first. `gateway` and `netmask` give the
  network address and mask.
- `sparenode.global_resources` – `Node`, a node with an `ip:port` address and
  a grid position, with Euclidean `distance` and an async `invoke` that
  forwards an `InvokeFunction` one hop further (raising `InvokeError` on
  failure); `nearest_neighbor` to order nodes by distance; and
  `GlobalResources`, which keeps that order and whose `nth` skips nodes inside
  the emergency area.
- `sparenode.local_resources` – `LocalResources`, CPU accounting that raises
  `InsufficientResourcesError` when more CPUs are asked for than are free, and
  `total_memory` / `available_memory`, read in kB from a `meminfo`-style file
  (`/proc/meminfo` by default).
- `sparenode.orchestrator` – `Orchestrator`, which ties local CPUs, available
  memory and the remote nodes together, tracks whether this node lies in the
  emergency area, and reserves and releases resources for invocations.
- `sparenode.messages` – `Operation` and `Message`, the JSON control messages
  (operations are written by name), and `announce` to build a node's
  registration message.
- `sparenode.db` – an SQLite record of function instances (`Instance`, with
  `insert`, `update`, `delete`, `list` and `get_by_id`), `connect` to open it
  (from `DATABASE_URL` when no URL is given), `get_list`, and `stats`, which
  aggregates terminated instances created between two timestamps into `Stats`.
- `sparenode.endpoints` – `create_app`, the aiohttp application serving
  `GET /`, `GET /list`, `GET /resources`, `GET /emergency` and `POST /invoke`,
  and `offload`, which forwards a request to a remote node.
- `sparenode.controller` – `EmergencyController`, whose `handle` applies a
  control message (start or stop of an emergency with a 50-unit radius,
  statistics for an epoch appended to a `node_x<X>_y<Y>.stats.data` file, end
  of the experiment), plus `parse_cidr` and `extract_identity`.
- `sparenode.benchmark` – the experiment driver: `generate_points` places
  nodes on distinct random grid cells, `choose_emergency` redraws until a
  third of the nodes lie within the emergency radius, `run_scenario` sends
  bursts of invocations and measures latency, and `write_results` writes
  `latency_per_epoch_normal.csv`, `latency_per_epoch_emergency.csv` and
  `latency_summary.csv`.

## Example

Order a few nodes around this node and see who is asked first once an
emergency is declared:

```python
from sparenode.global_resources import GlobalResources, Node

me = Node(address="10.0.0.1:8085", position=(0, 0))
others = [
    Node(address="10.0.0.2:8085", position=(3, 4)),
    Node(address="10.0.0.3:8085", position=(40, 30)),
    Node(address="10.0.0.4:8085", position=(1, 1)),
]

resources = GlobalResources(others, me)
print([resources.nth(i).address for i in range(len(resources))])
# ['10.0.0.4:8085', '10.0.0.2:8085', '10.0.0.3:8085']

resources.compute_emergency_nodes((2, 2), 5.0)
print(resources.nth(0).address)  # '10.0.0.3:8085', the only node outside the area
```

Hand out addresses for new instances:

```python
from ipaddress import IPv4Address
from sparenode.addresses import Addresses

pool = Addresses(IPv4Address("192.168.30.1"), 24)
first = pool.get()     # 192.168.30.2
pool.release(first)
again = pool.get()     # 192.168.30.2 again: released addresses come back first
```

Serve a node, with a caller-supplied runner that executes the function:

```python
from aiohttp import web
from sparenode import db
from sparenode.endpoints import create_app
from sparenode.global_resources import Node
from sparenode.orchestrator import Orchestrator

async def runner(request):
    return b"result of " + request.function.encode()

conn = db.connect(":memory:")
orchestrator = Orchestrator([], Node("127.0.0.1:8085", (0, 0)), cpus=4)
web.run_app(create_app(conn, orchestrator, runner), port=8085)
```

## Behaviour of `/invoke`

- A malformed body, or negative vCPUs or memory, gets a 400 reply.
- A request that has already been forwarded more than ten times gets a 500
  reply, "Too many hops".
- When the CPUs or memory cannot be reserved, or this node is in the emergency
  area and the request is not an emergency one, the request is offloaded:
  the remote nodes are tried in order of distance, skipping the node the
  request came from and nodes that report too few free resources. A node that
  cannot be reached ends the attempt with "Failed to offload request"; when no
  node takes the request the reply is "Insufficient resources".
- Otherwise the runner is called, and called again for as long as it raises
  `InstanceError`; its output is the reply body.

## What the package does not do

- It does not start virtual machines or containers. Running a function is left
  to the runner passed to `create_app`.
- It does not talk to a message broker. `Message` only converts control
  messages to and from JSON, and `EmergencyController.handle` must be fed the
  messages by the caller.
- It has no command-line program; nodes and the benchmark are started from
  Python code.