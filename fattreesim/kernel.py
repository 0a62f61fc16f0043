"""A small discrete-event simulation kernel: modules, gates, channels, events."""

from __future__ import annotations

import heapq
import itertools
import random
from typing import Any, NamedTuple, Optional


class SimulationError(RuntimeError):
    """Raised when the model or the kernel reaches an invalid state."""


class SignalRecord(NamedTuple):
    """One value emitted on a signal."""

    time: float
    source: str
    value: Any


class Channel:
    """A link between two gates with a propagation delay and optional data rate."""

    def __init__(self, delay: float = 0.0, datarate: Optional[float] = None):
        if delay < 0:
            raise ValueError("channel delay must not be negative")
        if datarate is not None and datarate <= 0:
            raise ValueError("channel datarate must be positive")
        self.delay = delay
        self.datarate = datarate
        self._busy_until = 0.0

    @property
    def is_transmission_channel(self) -> bool:
        return self.datarate is not None

    def transmission_finish_time(self, now: float) -> float:
        """Earliest time, seen from ``now``, at which the channel is free."""
        return max(now, self._busy_until)

    def start_transmission(self, now: float, byte_length: int) -> float:
        """Occupy the channel for ``byte_length`` bytes and return the finish time."""
        if not self.is_transmission_channel:
            return now
        start = max(now, self._busy_until)
        self._busy_until = start + byte_length * 8 / self.datarate
        return self._busy_until


class Gate:
    """An output or input point of a module."""

    def __init__(self, owner: "Module", name: str, index: int):
        self.owner = owner
        self.name = name
        self.index = index
        self.next_gate: Optional[Gate] = None
        self.channel: Optional[Channel] = None

    def next_module(self) -> "Module":
        """The module on the other side of this gate's connection."""
        if self.next_gate is None:
            raise SimulationError(f"gate {self!r} is not connected")
        return self.next_gate.owner

    def __repr__(self) -> str:
        return f"<Gate {self.owner.full_name}.{self.name}[{self.index}]>"


class Module:
    """Base class of every simulated component."""

    def __init__(
        self,
        name: str,
        index: Optional[int] = None,
        parent: Optional["Module"] = None,
        params: Optional[dict[str, Any]] = None,
    ):
        self.name = name
        self.index = index
        self.parent = parent
        self.params: dict[str, Any] = dict(params or {})
        self.simulation: Optional[Simulation] = None
        self.initialized = False
        self.done = False
        self._gates: dict[str, list[Gate]] = {}

    @property
    def full_name(self) -> str:
        return self.name if self.index is None else f"{self.name}[{self.index}]"

    @property
    def full_path(self) -> str:
        if self.parent is None:
            return self.full_name
        return f"{self.parent.full_path}.{self.full_name}"

    @property
    def gate_names(self) -> tuple[str, ...]:
        return tuple(self._gates)

    @property
    def _sim(self) -> "Simulation":
        if self.simulation is None:
            raise SimulationError(f"module {self.full_name} is not part of a simulation")
        return self.simulation

    @property
    def now(self) -> float:
        return self._sim.now

    def initialize(self) -> None:
        """Hook run once before the first event is processed; marks the module ready."""
        self.initialized = True

    def handle_message(self, msg: Any) -> None:
        raise SimulationError(f"module {self.full_name} does not accept messages")

    def finish(self) -> None:
        """Hook run once when the simulation ends; marks the module done."""
        self.done = True

    def add_gate(self, name: str) -> Gate:
        gates = self._gates.setdefault(name, [])
        new_gate = Gate(self, name, len(gates))
        gates.append(new_gate)
        return new_gate

    def gate(self, name: str, index: Optional[int] = None) -> Gate:
        gates = self._gates.get(name)
        if not gates:
            raise SimulationError(f"module {self.full_name} has no gate {name!r}")
        position = 0 if index is None else index
        if not 0 <= position < len(gates):
            raise SimulationError(
                f"gate index {position} out of range for {self.full_name}.{name}"
            )
        return gates[position]

    def gate_size(self, name: str) -> int:
        return len(self._gates.get(name, ()))

    def send(self, msg: Any, gate_name: str, index: Optional[int] = None) -> None:
        self.send_delayed(msg, 0.0, gate_name, index)

    def send_delayed(
        self, msg: Any, delay: float, gate_name: str, index: Optional[int] = None
    ) -> None:
        if delay < 0:
            raise SimulationError("send delay must not be negative")
        out = self.gate(gate_name, index)
        target = out.next_module()
        arrival = self.now + delay
        if out.channel is not None:
            if out.channel.is_transmission_channel:
                arrival = out.channel.start_transmission(
                    arrival, getattr(msg, "byte_length", 0)
                )
            arrival += out.channel.delay
        msg.sender_module = self
        msg.is_self_message = False
        self._sim.schedule(arrival, target, msg)

    def schedule_at(self, time: float, msg: Any) -> None:
        if time < self.now:
            raise SimulationError(
                f"cannot schedule a message in the past ({time} < {self.now})"
            )
        msg.sender_module = self
        msg.is_self_message = True
        self._sim.schedule(time, self, msg)

    def emit(self, signal: str, value: Any) -> None:
        self._sim._record(signal, self.full_name, value)

    def par(self, name: str) -> Any:
        try:
            return self.params[name]
        except KeyError:
            raise SimulationError(
                f"module {self.full_name} has no parameter {name!r}"
            ) from None

    def intuniform(self, low: int, high: int, rng: int = 0) -> int:
        if high < low:
            raise SimulationError(f"intuniform(): empty range [{low}, {high}]")
        return self._sim._rng(rng).randint(low, high)

    def uniform(self, low: float, high: float, rng: int = 0) -> float:
        if high < low:
            raise SimulationError(f"uniform(): empty range [{low}, {high}]")
        return self._sim._rng(rng).uniform(low, high)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.full_path}>"


class Simulation:
    """Holds the modules and runs the event loop."""

    def __init__(self, seed: int = 0):
        self.seed = seed
        self.now = 0.0
        self._modules: dict[str, Module] = {}
        self._queue: list[tuple[float, int, Module, Any]] = []
        self._sequence = itertools.count()
        self._rngs: dict[int, random.Random] = {}
        self._signals: dict[str, list[SignalRecord]] = {}
        self._state = "new"

    @property
    def modules(self) -> tuple[Module, ...]:
        return tuple(self._modules.values())

    def add_module(self, module: Module) -> Module:
        path = module.full_path
        if path in self._modules:
            raise SimulationError(f"module {path} already exists")
        module.simulation = self
        self._modules[path] = module
        return module

    def connect(self, src: Gate, dst: Gate, channel: Optional[Channel] = None) -> None:
        if src.next_gate is not None:
            raise SimulationError(f"gate {src!r} is already connected")
        src.next_gate = dst
        src.channel = channel

    def find_module(self, full_name: str) -> Module:
        try:
            return self._modules[full_name]
        except KeyError:
            raise SimulationError(f"no module named {full_name!r}") from None

    def schedule(self, time: float, module: Module, msg: Any) -> None:
        if time < self.now:
            raise SimulationError(f"cannot schedule an event in the past ({time})")
        heapq.heappush(self._queue, (time, next(self._sequence), module, msg))

    def run(self, until: Optional[float] = None) -> float:
        """Initialise the modules, process events up to ``until`` and finish."""
        if self._state == "done":
            raise SimulationError("the simulation has already finished")
        if self._state == "new":
            self._state = "running"
            for module in self.modules:
                module.initialize()
        while self._queue:
            if until is not None and self._queue[0][0] > until:
                self.now = until
                break
            time, _, module, msg = heapq.heappop(self._queue)
            self.now = time
            module.handle_message(msg)
        for module in self.modules:
            module.finish()
        self._state = "done"
        return self.now

    def signals(self, signal: str) -> list[SignalRecord]:
        return list(self._signals.get(signal, ()))

    def _record(self, signal: str, source: str, value: Any) -> None:
        self._signals.setdefault(signal, []).append(SignalRecord(self.now, source, value))

    def _rng(self, index: int) -> random.Random:
        if index not in self._rngs:
            self._rngs[index] = random.Random(f"{self.seed}:{index}")
        return self._rngs[index]