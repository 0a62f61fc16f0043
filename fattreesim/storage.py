"""Disk drive model: queues requests and serves them at a fixed bandwidth."""

from __future__ import annotations

from typing import Any, Optional

from .general import MB, ArrivalQueue, trans_timestamp_by_cable
from .kernel import Module, SimulationError
from .request import Request, WorkType

QUEUE_LENGTH_SIGNAL = "queueLength"


class StorageDevice(Module):
    """A storage target serving up to ``parallel_level`` requests at once."""

    def __init__(
        self,
        name: str = "storageDevice",
        index: Optional[int] = None,
        parent: Optional[Module] = None,
        params: Optional[dict[str, Any]] = None,
    ):
        super().__init__(name, index, parent, params)
        self.queue_full = False
        self.storage_queue = ArrivalQueue("storageQueue")

    def initialize(self) -> None:
        self.queue_full = False
        self.storage_queue = ArrivalQueue("storageQueue")

    def handle_message(self, msg: Request) -> None:
        if not msg.is_self_message:
            self.emit(QUEUE_LENGTH_SIGNAL, len(self.storage_queue))
            msg.port_index = self.intuniform(0, self.gate_size("port$o") - 1, 0)
            msg.arrive_module_time = self.now
            self._update_proc_time(msg)
            self.schedule_at(msg.leave_module_time, msg.dup())
            self.storage_queue.insert(msg)
        else:
            # The scheduled copy leaves; drop the request waiting for it.
            self.storage_queue.pop()
            out = self.gate("port$o", msg.port_index)
            leave = trans_timestamp_by_cable(out, self.now)
            self.send_delayed(msg, leave - self.now, "port$o", msg.port_index)

        limit = int(self.par("max_queue_len"))
        length = len(self.storage_queue)
        if length == limit:
            self.queue_full = True
        elif length < limit:
            self.queue_full = False

    def is_free(self) -> bool:
        """True while the device's queue has room for another request."""
        return not self.queue_full

    def _update_proc_time(self, req: Request) -> None:
        if req.work_type == WorkType.READ:
            req.byte_length = req.frag_size
            bandwidth = float(self.par("read_bw"))
        elif req.work_type == WorkType.WRITE:
            req.byte_length = 0
            bandwidth = float(self.par("write_bw"))
        else:
            raise SimulationError(
                f"need to define new rules for work type {req.work_type!r}"
            )

        proc_time = 8.0 / bandwidth * (req.frag_size / MB)
        if len(self.storage_queue) < int(self.par("parallel_level")):
            req.leave_module_time = req.arrive_module_time + proc_time
        else:
            req.leave_module_time = self.storage_queue.back().leave_module_time + proc_time

        req.finished = True
        req.proc_time = proc_time