"""Memory buffers of nodes, adapters and switches."""

from __future__ import annotations

from typing import Any, Callable, Optional

from .general import MB, MTU, ArrivalQueue, pop_path
from .kernel import Module, SimulationError
from .request import Request, WorkType
from .storage import StorageDevice
from .topology import Topology

QUEUE_LENGTH_SIGNAL = "queueLength"

_SRAM = ("SRAM_buffer", "read_SRAM_buffer_bw", "write_SRAM_buffer_bw")
_DRAM = ("DRAM_buffer", "read_DRAM_buffer_bw", "write_DRAM_buffer_bw")
_SWITCH = ("switch_buffer", "read_switch_bw", "write_switch_bw")

# Buffer name -> (size parameter, read bandwidth parameter, write bandwidth parameter)
_PROFILES: dict[str, tuple[str, str, str]] = {
    "flashBuffer": ("flash_buffer", "read_storage_flash_bw", "write_storage_flash_bw"),
    "oss_memory": _DRAM,
    "cn_memory": _DRAM,
    "hcaBuffer": _SRAM,
    "hbaBuffer": _SRAM,
    "core": _SRAM,
    "aggr": _SWITCH,
    "edge": _SWITCH,
}


def _size_mb(req: Request) -> float:
    return req.byte_length / MB


class Buffer(Module):
    """Holds requests while they are copied in or out at the buffer's bandwidth.

    The module's name selects its kind and thereby its parameters and
    forwarding rules. Requests that do not fit wait in an arrival-ordered
    queue until space is released.
    """

    def __init__(
        self,
        name: str,
        index: Optional[int] = None,
        parent: Optional[Module] = None,
        params: Optional[dict[str, Any]] = None,
        topology: Optional[Topology] = None,
    ):
        super().__init__(name, index, parent, params)
        self.topology = topology if topology is not None else Topology()
        self.avail_buffer_size = 0.0
        self.read_bw = 0.0
        self.write_bw = 0.0
        self.buffer_queue = ArrivalQueue(f"{name}Queue")
        handlers: dict[str, Callable[[Request], None]] = {
            "flashBuffer": self._handle_flash,
            "hcaBuffer": self._handle_adapter,
            "hbaBuffer": self._handle_adapter,
            "oss_memory": self._handle_oss_memory,
            "cn_memory": self._handle_cn_memory,
            "core": self._handle_switch,
            "aggr": self._handle_switch,
            "edge": self._handle_switch,
        }
        self._handler = handlers.get(name)

    def initialize(self) -> None:
        profile = _PROFILES.get(self.name)
        if profile is None:
            raise SimulationError(f"need to define/rename a new buffer: {self.name!r}")
        size_par, read_par, write_par = profile
        self.avail_buffer_size = float(self.par(size_par))
        self.read_bw = float(self.par(read_par))
        self.write_bw = float(self.par(write_par))
        self.buffer_queue = ArrivalQueue(f"{self.name}Queue")

    def handle_message(self, msg: Request) -> None:
        if self._handler is not None:
            self._handler(msg)

    def calc_send_delay(self, req: Request) -> float:
        """Time at which ``req`` has been fully copied through the buffer."""
        bandwidth = self.read_bw if req.work_type == WorkType.READ else self.write_bw
        return self.now + 8.0 / bandwidth * (req.byte_length / MB)

    def check_disk_status(self) -> bool:
        """True if the attached storage device can take another request."""
        for index in range(self.gate_size("port$o")):
            neighbour = self.gate("port$o", index).next_module()
            if neighbour.name == "storageDevice":
                if not isinstance(neighbour, StorageDevice):
                    raise SimulationError(
                        f"{neighbour.full_name} is not a storage device"
                    )
                return neighbour.is_free()
        return False

    def _handle_flash(self, req: Request) -> None:
        if not req.is_self_message:
            self.emit(QUEUE_LENGTH_SIGNAL, len(self.buffer_queue))
            req.arrive_module_time = self.now
            blocked = not req.finished and not self.check_disk_status()
            if blocked or self.avail_buffer_size < _size_mb(req):
                self.buffer_queue.insert(req)
            else:
                self._start(req)
        else:
            # One flash memory is assumed to sit in front of a single disk.
            self._release(req, "payloadOST" if req.finished else "storageDevice")

    def _handle_adapter(self, req: Request) -> None:
        if not req.is_self_message:
            req.arrive_module_time = self.now
            self._admit(req, MTU / MB)
        else:
            dest = "hca_payload" if self.name == "hcaBuffer" else "hba_payload"
            self._release(req, dest)

    def _handle_oss_memory(self, req: Request) -> None:
        self.emit(QUEUE_LENGTH_SIGNAL, len(self.buffer_queue))
        if not req.is_self_message:
            req.arrive_module_time = self.now
            if self.avail_buffer_size < _size_mb(req):
                self.buffer_queue.insert(req)
                return
            sender = req.sender_module
            if sender is not None and sender.parent is not None and sender.parent.name == "pci":
                req.next_hop_addr = "oss_hub_mem_hba"
            elif sender is not None and sender.name == "oss_hub_hba_ost":
                req.next_hop_addr = "pci"
            self._start(req)
        else:
            self._release(req, req.next_hop_addr)

    def _handle_cn_memory(self, req: Request) -> None:
        if not req.is_self_message:
            req.arrive_module_time = self.now
            self._admit(req, _size_mb(req))
            return
        node = self.parent.full_name if self.parent is not None else ""
        if req.finished and req.src_addr == node:
            # A read has come back to its origin; writes went to the sink.
            req.byte_length = 0
        elif not req.finished and req.des_addr == node:
            req.finished = True
            req.byte_length = req.frag_size if req.work_type == WorkType.READ else 0
        self._release(req, "pci")

    def _handle_switch(self, req: Request) -> None:
        if not req.is_self_message:
            req.arrive_module_time = self.now
            direction = "b" if not req.send_path else "s"
            req.next_hop_addr = pop_path(req, direction)
            self._admit(req, MTU / MB)
        else:
            self._release(req, req.next_hop_addr)

    def _admit(self, req: Request, needed: float) -> None:
        if self.avail_buffer_size < needed:
            self.buffer_queue.insert(req)
        else:
            self._start(req)

    def _start(self, req: Request) -> None:
        self.avail_buffer_size -= _size_mb(req)
        self.schedule_at(self.calc_send_delay(req), req)

    def _release(self, req: Request, dest: str) -> None:
        self.avail_buffer_size += _size_mb(req)
        self.send(req, "port$o", self._gate_to("port$o", dest))
        self._send_from_buffer()

    def _send_from_buffer(self) -> None:
        if not len(self.buffer_queue):
            return
        if self.name == "flashBuffer" and not self.check_disk_status():
            return
        self._start(self.buffer_queue.pop())

    def _gate_to(self, gate_type: str, dest: str) -> int:
        known = self.topology.layout.get(self.full_name, {}).get(dest)
        if known is not None:
            return known[1]
        candidates = [
            index
            for index in range(self.gate_size(gate_type))
            if self.gate(gate_type, index).next_module().name == dest
        ]
        if not candidates:
            raise SimulationError(f"{self.full_name} has no gate leading to {dest!r}")
        rng = int(self.params.get("rng", 0))
        return candidates[self.intuniform(0, len(candidates) - 1, rng)]