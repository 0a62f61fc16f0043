"""Terminal module that absorbs finished requests and reports throughput."""

from __future__ import annotations

import math
from typing import Any, Optional

from .general import MB
from .kernel import Module
from .request import Request, WorkType
from .topology import Topology

THROUGHPUT_SIGNAL = "throughput"
READ_THROUGHPUT_SIGNAL = "readThroughput"
WRITE_THROUGHPUT_SIGNAL = "writeThroughput"


def _rate(total: int, now: float) -> float:
    """Throughput in MB per second; infinite (or NaN) at time zero."""
    if now == 0:
        return math.nan if total == 0 else math.inf
    return total / (MB * now)


class Sink(Module):
    """Collects finished requests; ``sink[0]`` also maps the network's routes."""

    def __init__(
        self,
        name: str = "sink",
        index: Optional[int] = None,
        parent: Optional[Module] = None,
        params: Optional[dict[str, Any]] = None,
        topology: Optional[Topology] = None,
    ):
        super().__init__(name, index, parent, params)
        self.topology = topology if topology is not None else Topology()
        self.total_data_size = 0
        self.total_read_size = 0
        self.total_write_size = 0

    def initialize(self) -> None:
        self.total_data_size = 0
        self.total_read_size = 0
        self.total_write_size = 0
        if self.full_name == "sink[0]":
            self.topology.discover(self._sim)
            self.topology.build_paths()

    def handle_message(self, msg: Request) -> None:
        if msg.work_type == WorkType.READ:
            self.total_read_size += msg.frag_size
            self.emit(READ_THROUGHPUT_SIGNAL, _rate(self.total_read_size, self.now))
        else:
            self.total_write_size += msg.frag_size
            self.emit(WRITE_THROUGHPUT_SIGNAL, _rate(self.total_write_size, self.now))