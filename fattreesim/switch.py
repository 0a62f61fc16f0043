"""Fat-tree switches of the edge, aggregation and core layers."""

from __future__ import annotations

import re
from typing import Any, Optional

from .general import ArrivalQueue, trans_timestamp_by_cable
from .kernel import Module, SimulationError
from .request import Request, WorkType

QUEUE_LENGTH_SIGNAL = "queueLen"
STAY_SIGNAL = "stayTime"
WAITING_SIGNAL = "waitingTime"

_CN_PATTERN = re.compile(r"cn\[[0-9]+\]")


def _is_cn(address: str) -> bool:
    return _CN_PATTERN.fullmatch(address) is not None


def _layer_pattern(layer: str) -> re.Pattern[str]:
    return re.compile(re.escape(layer) + r"\[[0-9]+\]")


def _sender_name(req: Request) -> str:
    sender = req.sender_module
    return sender.name if sender is not None else ""


class Switch(Module):
    """A switch whose name ("edge", "aggr" or "core") selects its routing rules.

    ``conn_map`` maps each neighbour's full name to the output port leading
    to it. Requests are held in an arrival-ordered buffer while the switch
    processes them; at most ``proc_num`` are processed side by side.
    """

    def __init__(
        self,
        name: str,
        index: Optional[int] = None,
        parent: Optional[Module] = None,
        params: Optional[dict[str, Any]] = None,
    ):
        super().__init__(name, index, parent, params)
        self.conn_map: dict[str, int] = {}
        self.queue_data_size: dict[int, int] = {}
        self.switch_buffer = ArrivalQueue(self.full_name)

    def initialize(self) -> None:
        self.conn_map = {
            self.gate("port$o", port).next_module().full_name: port
            for port in range(self.gate_size("port$o"))
        }

    def handle_message(self, msg: Request) -> None:
        if msg.is_self_message:
            self._forward(msg)
            return

        gate_id = self._route(msg)
        sender = _sender_name(msg)
        if self.name != "core" or sender != "aggr" or _is_cn(msg.des_addr):
            self._enqueue(msg, gate_id)
        else:
            # Core switch passes the request straight on towards the MDS.
            proc_time = 0.0
            msg.proc_time = proc_time
            if msg.byte_length:
                proc_time = float(self.par("core_latency"))
                msg.proc_time = proc_time
                self.send_delayed(msg, proc_time, "port$o", gate_id)
            else:
                self.send(msg, "port$o", gate_id)

    def check_port(self, port_name: str) -> bool:
        """True if ``port_name`` is a direct neighbour of this switch."""
        return port_name in self.conn_map

    def rand_choose(self, layer: str) -> int:
        """Pick, uniformly at random, a port leading to a switch of ``layer``."""
        pattern = _layer_pattern(layer)
        ports = [port for name, port in self.conn_map.items() if pattern.fullmatch(name)]
        if not ports:
            raise SimulationError(f"cannot find available hop station at {self.name}")
        return ports[self.intuniform(0, len(ports) - 1, 0)]

    def find_cn(self, src: str, layer: str) -> Optional[int]:
        """Port towards the ``layer`` switch that is attached to node ``src``."""
        pattern = _layer_pattern(layer)
        for name, port in self.conn_map.items():
            if not pattern.fullmatch(name) or layer != "edge":
                continue
            neighbour = self._switch_at(port)
            if neighbour.check_port(src):
                return port
        return None

    def find_aggr(self, src: str) -> int:
        """Pick, at random, a port to an aggregation switch that reaches ``src``."""
        pattern = _layer_pattern("aggr")
        candidates = []
        for name, port in self.conn_map.items():
            if not pattern.fullmatch(name):
                continue
            neighbour = self._switch_at(port)
            if neighbour.find_cn(src, "edge") is not None:
                candidates.append(port)
                self.queue_data_size[port] = neighbour.data_size_in_queue()
        if not candidates:
            raise SimulationError(f"cannot find available aggr. switch at {self.name}")
        return candidates[self.intuniform(0, len(candidates) - 1, 0)]

    def real_queue_length(self) -> int:
        """Number of buffered requests that carry data."""
        return sum(1 for req in self.switch_buffer if req.byte_length)

    def data_size_in_queue(self) -> int:
        """Total number of bytes held in the buffer."""
        return sum(req.byte_length for req in self.switch_buffer)

    def _switch_at(self, port: int) -> "Switch":
        neighbour = self.gate("port$o", port).next_module()
        if not isinstance(neighbour, Switch):
            raise SimulationError(f"{neighbour.full_name} is not a switch")
        return neighbour

    def _port_to(self, name: str) -> int:
        try:
            return self.conn_map[name]
        except KeyError:
            raise SimulationError(f"{self.full_name} is not connected to {name!r}") from None

    def _known_or_random(self, target: str, layer: str) -> int:
        port = self.conn_map.get(target)
        return port if port is not None else self.rand_choose(layer)

    def _towards_edge_or_core(self, target: str) -> int:
        port = self.find_cn(target, "edge")
        return port if port is not None else self.rand_choose("core")

    def _towards_edge(self, target: str) -> int:
        port = self.find_cn(target, "edge")
        if port is None:
            raise SimulationError(f"{self.full_name}: no edge switch reaches {target!r}")
        return port

    def _route(self, req: Request) -> int:
        if self.name == "edge":
            return self._route_edge(req)
        if self.name == "aggr":
            return self._route_aggr(req)
        if self.name == "core":
            return self._route_core(req)
        raise SimulationError(f"unknown switch {self.full_name!r}")

    def _route_edge(self, req: Request) -> int:
        if _is_cn(req.master_id_addr) and (not req.ckp_launched or req.finished):
            target = req.src_addr if req.ckp_launched else req.des_addr
            return self._known_or_random(target, "aggr")
        if _is_cn(req.des_addr):
            target = req.src_addr if req.finished else req.des_addr
            return self._known_or_random(target, "aggr")
        # Destination is a storage server.
        if req.work_type == WorkType.READ:
            return self._port_to(req.src_addr) if req.byte_length else self.rand_choose("aggr")
        return self.rand_choose("aggr") if req.byte_length else self._port_to(req.src_addr)

    def _route_aggr(self, req: Request) -> int:
        if _is_cn(req.master_id_addr) and (not req.ckp_launched or req.finished):
            target = req.src_addr if req.ckp_launched else req.des_addr
            return self._towards_edge_or_core(target)
        sender = _sender_name(req)
        if _is_cn(req.des_addr):
            target = req.src_addr if req.finished else req.des_addr
            if sender == "edge":
                return self._towards_edge_or_core(target)
            if sender == "core":
                return self._towards_edge(target)
        else:
            if sender == "edge":
                return self.rand_choose("core")
            if sender == "core":
                return self._towards_edge(req.src_addr)
        raise SimulationError("aggr layer connected with other unknown switches")

    def _route_core(self, req: Request) -> int:
        if _is_cn(req.master_id_addr) and not req.ckp_launched:
            return self.find_aggr(req.des_addr)
        if _is_cn(req.des_addr):
            return self.find_aggr(req.src_addr if req.finished else req.des_addr)
        sender = _sender_name(req)
        if sender == "aggr":
            if "mds" not in self.conn_map:
                raise SimulationError(f"no MDS exists for {req.next_hop_addr!r}")
            return self.conn_map["mds"]
        if sender == "mds":
            if req.next_hop_addr not in self.conn_map:
                raise SimulationError(
                    f"{self.full_name}: no such OSS {req.next_hop_addr!r} exists"
                )
            return self.conn_map[req.next_hop_addr]
        if sender == "oss":
            return self.find_aggr(req.src_addr)
        raise SimulationError("core layer connected with other unknown switches")

    def _enqueue(self, req: Request, gate_id: int) -> None:
        self.emit(QUEUE_LENGTH_SIGNAL, self.real_queue_length())
        req.arrive_module_time = self.now
        req.port_index = gate_id

        if len(self.switch_buffer) < int(self.par("proc_num")):
            start = self.now
        else:
            start = self.switch_buffer.back().leave_module_time

        proc_time = float(self.par(f"{self.name}_latency")) if req.byte_length else 0.0
        req.leave_module_time = start + proc_time
        req.proc_time = proc_time
        self.schedule_at(req.leave_module_time, req.dup())
        self.switch_buffer.insert(req)

    def _forward(self, req: Request) -> None:
        # The scheduled copy leaves; drop the request waiting for it.
        self.switch_buffer.pop()
        out = self.gate("port$o", req.port_index)
        leave = trans_timestamp_by_cable(out, self.now)
        next_name = out.next_module().name
        self.send_delayed(req, leave - self.now, "port$o", req.port_index)
        if next_name not in ("cn", "mds"):
            self.emit(STAY_SIGNAL, leave - req.arrive_module_time)
        self.emit(WAITING_SIGNAL, leave - req.arrive_module_time - req.proc_time)