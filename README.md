# fattreesim

`fattreesim` is a discrete-event simulator for storage traffic in a fat-tree
cluster. Compute nodes (CNs) produce read and write requests. Edge,
aggregation and core switches carry those requests to other compute nodes or
to object storage servers (OSSes). From an OSS the requests go down to its
storage targets, and the replies come back.

The package has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## The kernel

`fattreesim.kernel` is a small event kernel.

- **`Simulation(seed=0)`** holds the modules and runs the event loop.
  - `add_module(module)` registers a module under its full path.
  - `connect(src_gate, dst_gate, channel=None)` links two gates.
  - `find_module(path)` looks a module up by its path.
  - `schedule(time, module, msg)` injects an event.
  - `run(until=None)` does three things. It initialises every module, then processes events up to `until`, then calls `finish` on every module. It returns the final simulation time.
  - `signals(name)` returns the values emitted on a signal, as `SignalRecord(time, source, value)` tuples.
  - Every random-number stream is seeded from `seed`, so runs are reproducible.
- **`Module(name, index=None, parent=None, params=None)`** is the base class of every component.
  - Its full name is `name[index]`, or `name` alone when it has no index.
  - Parameters are read with `par(name)`.
  - Gates are created with `add_gate(name)`. Each call appends a new index.
  - Messages are sent with `send`, `send_delayed` and `schedule_at`.
  - Values are reported with `emit`.
  - Random numbers come from `intuniform(low, high, rng)` and `uniform(low, high, rng)`.
- **`Channel(delay=0.0, datarate=None)`** adds a propagation delay to a link. If you give a data rate in bits per second, it also serialises the messages sent over it.
- **`SimulationError`** is raised for invalid models and invalid states.

## Requests and helpers

- **`fattreesim.request`**
  - `Request` is a dataclass that carries the sizes, addresses, routes and timestamps of one piece of work.
  - `WorkType` is `READ` or `WRITE`.
  - `Request.dup()` returns an independent copy.
- **`fattreesim.general`**
  - Size constants: `KB`, `MB`, `GB` and `TB`, all binary.
  - Transfer constants: `MTU` (65520 bytes), `STRIPE_SIZE` (64 KB) and `STRIPE_COUNT` (3).
  - `pop_path(req, "s" | "b")` removes and returns the first hop of a request's comma-separated send path or back path.
  - `ArrivalQueue` serves requests in the order they were inserted.
  - `check_port_with_trans_cable(gate)` and `trans_timestamp_by_cable(gate, now)` tell you whether a gate's cable is a transmission channel, and when that cable is free.
- **`fattreesim.topology.Topology`**
  - `discover(simulation)` records the top-level modules of a simulation: its compute nodes, its OSSes and the links leaving them through `port$o` and `out` gates.
  - `build_paths()` enumerates every valid CN-to-CN and CN-to-OSS route through the fat tree. For each pair it keeps only the shortest routes, in `paths[source][destination]`.
  - `find_paths`, `generate_short_paths` and `check_path` are the steps `build_paths` is made of.

## Network elements

The name you give a module selects its behaviour. Its parameters are passed as
the `params` dict.

| Class | Names | Parameters |
|---|---|---|
| `generator.WorkGenerator` | any (placed inside a CN) | `sendInitialMessage`, `sendInterval`, `data_size` (MB), `read_probability`, `cn_probability`, `rng` |
| `switch.Switch` | `edge`, `aggr`, `core` | `proc_num`, `edge_latency` / `aggr_latency` / `core_latency` |
| `buffer.Buffer` | `flashBuffer`, `oss_memory`, `cn_memory`, `hcaBuffer`, `hbaBuffer`, `core`, `aggr`, `edge` | size and read/write bandwidth, e.g. `flash_buffer`, `read_storage_flash_bw`, `write_storage_flash_bw`; `DRAM_buffer`…; `SRAM_buffer`…; `switch_buffer`…; optional `rng` |
| `storage.StorageDevice` | `storageDevice` | `read_bw`, `write_bw`, `parallel_level`, `max_queue_len` |
| `payload.Payload` | `payloadOST`, `hca_payload`, `hba_payload`, `oss_in_payload`, `oss_hub_mem_hca`, `oss_hub_mem_hba`, `oss_hub_hba_ost`, `in_flow`, `link_input`, `link_output`, `out_flow`, `cn_memory_hca`, `edge_connect` | optional `rng` |
| `sink.Sink` | `sink` | none |

A few of these modules depend on shared state:

- `Sink`, `WorkGenerator` and `Buffer` each take a `topology=` argument. Give them all the same `Topology` instance.
- The module named `sink[0]` runs the topology discovery and route search during initialisation.
- The generators and buffers then read their routes and gates from that shared `Topology`.

### Payload behaviour

`Payload` splits data into MTU-sized pieces (HCA) or stripe-sized pieces (HBA). It spreads OST traffic over `STRIPE_COUNT` targets, starting at the request's target OST. It also reassembles fragments before passing a whole request on.

### Signals

- `queueLength`: flash and OSS memory buffers, and storage devices.
- `queueLen`, `stayTime` and `waitingTime`: switches.
- `readThroughput` and `writeThroughput`: sinks, in MB per second.

### Units

Bandwidths are in megabits per second. Moving `n` bytes takes `8 / bw * n / MB` seconds.

## Example

This example connects a disk to a sink and injects one 1 MB read:

```python
from fattreesim.general import MB
from fattreesim.kernel import Simulation
from fattreesim.request import Request, WorkType
from fattreesim.sink import Sink
from fattreesim.storage import StorageDevice

sim = Simulation(seed=1)
sink = sim.add_module(Sink("sink", index=1))
disk = sim.add_module(StorageDevice(params={
    "read_bw": 800.0, "write_bw": 400.0,
    "parallel_level": 1, "max_queue_len": 4,
}))
sim.connect(disk.add_gate("port$o"), sink.add_gate("in"))

sim.schedule(0.0, disk, Request(work_type=WorkType.READ, frag_size=MB))
end = sim.run()                       # 0.01 s: 1 MB at 800 Mbit/s
print(sim.signals("readThroughput"))  # one record, about 100 MB/s
```

## What the package does not do

The package gives you the components and the kernel. It does not provide the following:

- **No network description format.** There is no builder for a fat tree. You create every module, gate and connection yourself in Python.
- **No command-line program.**
- **No configuration-file reader.**
- **No result files.** Results are available only through `Simulation.signals`.