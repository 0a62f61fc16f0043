"""Workload generator that periodically issues read and write requests."""

from __future__ import annotations

from typing import Any, Optional, Sequence, TypeVar

from .general import MB
from .kernel import Module, SimulationError
from .request import Request, WorkType
from .topology import Topology

_T = TypeVar("_T")


class WorkGenerator(Module):
    """Sits inside a compute node and emits one request per send interval."""

    def __init__(
        self,
        name: str = "work_gen",
        index: Optional[int] = None,
        parent: Optional[Module] = None,
        params: Optional[dict[str, Any]] = None,
        topology: Optional[Topology] = None,
    ):
        super().__init__(name, index, parent, params)
        self.topology = topology if topology is not None else Topology()
        self.id = 1

    def initialize(self) -> None:
        if self.par("sendInitialMessage"):
            self.schedule_at(self.now, Request())
        self.id = 1

    def handle_message(self, msg: Request) -> None:
        if not msg.is_self_message:
            raise SimulationError("messages must not be sent to a workload generator")
        self.init_msg(msg)
        delay = float(self.par("sendInterval"))
        self.id += 1
        self.schedule_at(self.now + delay, Request())

    def init_msg(self, req: Request) -> None:
        """Fill in a new request, choose its destination and routes, and send it."""
        rng = int(self.par("rng"))
        size = int(float(self.par("data_size")) * MB)
        req.master_id = self.id
        req.id = self.id
        req.data_size = size
        req.frag_size = size

        if self.uniform(0, 1.0, rng) < float(self.par("read_probability")):
            req.work_type = WorkType.READ
        else:
            req.work_type = WorkType.WRITE
            req.byte_length = req.data_size

        req.generate_time = self.now
        node = self._node()
        req.src_addr = node.full_name

        if self.uniform(0, 1.0, rng) < float(self.par("cn_probability")):
            destination = self._pick_peer(node.full_name, rng)
        else:
            destination = self._pick(self.topology.osses, rng, "storage server")
            req.target_ost = self.intuniform(0, self._ost_count(destination) - 1, rng)
        req.des_addr = destination

        send_route = self._pick(self._routes(req.src_addr, destination), rng, "route")
        back_route = self._pick(self._routes(destination, req.src_addr), rng, "route")
        req.send_path += "".join(f"{hop}," for hop in send_route)
        req.back_path += "".join(f"{hop}," for hop in back_route)

        self.send(req, "port$o")

    def _node(self) -> Module:
        if self.parent is None:
            raise SimulationError(f"{self.full_name} must sit inside a compute node")
        return self.parent

    def _pick(self, choices: Sequence[_T], rng: int, what: str) -> _T:
        if not choices:
            raise SimulationError(f"{self.full_name}: no {what} to choose from")
        return choices[self.intuniform(0, len(choices) - 1, rng)]

    def _pick_peer(self, own: str, rng: int) -> str:
        if all(cn == own for cn in self.topology.cns):
            raise SimulationError(f"{own}: no other compute node to send to")
        destination = self._pick(self.topology.cns, rng, "compute node")
        while destination == own:
            destination = self._pick(self.topology.cns, rng, "compute node")
        return destination

    def _routes(self, source: str, destination: str) -> list[list[str]]:
        routes = self.topology.paths.get(source, {}).get(destination)
        if not routes:
            raise SimulationError(f"no route from {source} to {destination}")
        return routes

    def _ost_count(self, oss_name: str) -> int:
        network = self._node().parent
        path = oss_name if network is None else f"{network.full_path}.{oss_name}"
        oss = self._sim.find_module(path)
        return sum(
            1 for module in self._sim.modules
            if module.parent is oss and module.name == "ost"
        )