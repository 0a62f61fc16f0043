"""Routing points inside nodes and links that split and reassemble requests."""

from __future__ import annotations

import re
from typing import Any, Optional

from .general import MTU, STRIPE_COUNT, STRIPE_SIZE, pop_path, trans_timestamp_by_cable
from .kernel import Module, SimulationError
from .request import Request, WorkType

_NEIGHBOUR_GATES = ("port$o", "out")


def _sender_name(req: Request) -> str:
    sender = req.sender_module
    return sender.name if sender is not None else ""


def _sender_parent_name(req: Request) -> str:
    sender = req.sender_module
    if sender is None or sender.parent is None:
        return ""
    return sender.parent.name


class Payload(Module):
    """Forwards requests between the parts of a node or link.

    The module's name selects its forwarding rules. Some payloads cut
    requests into fragments (``seg_and_send``) and others wait until every
    fragment has arrived before passing the whole request on
    (``collect_from_osts``).

    ``gate_to_neighbor`` maps each neighbour's full name to the gate
    (name, index) leading to it; ``work_arrive_status`` counts, per source
    node, master id and request id, the bytes that have arrived so far.
    """

    def __init__(
        self,
        name: str,
        index: Optional[int] = None,
        parent: Optional[Module] = None,
        params: Optional[dict[str, Any]] = None,
    ):
        super().__init__(name, index, parent, params)
        self.gate_to_neighbor: dict[str, tuple[str, int]] = {}
        self.work_arrive_status: dict[str, dict[int, dict[int, int]]] = {}
        self._handlers = {
            "payloadOST": self._handle_payload_ost,
            "hca_payload": self._handle_adapter,
            "hba_payload": self._handle_adapter,
            "oss_in_payload": self._handle_oss_in,
            "oss_hub_mem_hca": self._handle_hub_mem_hca,
            "oss_hub_mem_hba": self._handle_hub_mem_hba,
            "oss_hub_hba_ost": self._handle_hub_hba_ost,
            "in_flow": self._handle_in_flow,
            "link_input": self._handle_link_input,
            "link_output": self._handle_link_output,
            "out_flow": self._handle_out_flow,
            "cn_memory_hca": self._handle_cn_memory_hca,
            "edge_connect": self._handle_edge_connect,
        }

    @property
    def _rng_index(self) -> int:
        return int(self.params.get("rng", 0))

    @property
    def _parent_name(self) -> str:
        return self.parent.name if self.parent is not None else ""

    @property
    def _parent_full_name(self) -> str:
        return self.parent.full_name if self.parent is not None else ""

    def initialize(self) -> None:
        self.gate_to_neighbor = {}
        for gate_name in _NEIGHBOUR_GATES:
            for index in range(self.gate_size(gate_name)):
                neighbour = self.gate(gate_name, index).next_module().full_name
                self.gate_to_neighbor[neighbour] = (gate_name, index)

    def handle_message(self, msg: Request) -> None:
        handler = self._handlers.get(self.name)
        if handler is not None:
            handler(msg)

    def to_module_name(self, req: Request, name: str) -> None:
        """Send ``req`` to the neighbour ``name``, or to a random ``name[i]``."""
        target = self.gate_to_neighbor.get(name)
        if target is None:
            pattern = re.compile(re.escape(name) + r"\[[0-9]+\]")
            candidates = [n for n in self.gate_to_neighbor if pattern.fullmatch(n)]
            if not candidates:
                raise SimulationError(f"{self.full_name} has no neighbour {name!r}")
            chosen = candidates[self.intuniform(0, len(candidates) - 1, self._rng_index)]
            target = self.gate_to_neighbor[chosen]
        gate_name, index = target
        out = self.gate(gate_name, index)
        delay = trans_timestamp_by_cable(out, self.now) - self.now
        self.send_delayed(req, delay, gate_name, index)

    def collect_from_osts(self, req: Request) -> None:
        """Count an arrived fragment and pass the request on once it is whole."""
        if req.work_type not in (WorkType.READ, WorkType.WRITE):
            return
        if self._record_arrival(req) != req.data_size:
            return  # still waiting for other fragments; this one is absorbed

        req.frag_size = req.data_size
        parent = self._parent_name
        if req.work_type == WorkType.READ:
            if parent == "oss":
                req.byte_length = req.data_size
                self.to_module_name(req, "oss_memory")
                self._forget_request(req)
            elif parent == "cn":
                self._deliver_whole(req, "cn")
            else:
                raise SimulationError(
                    f"{self.full_name}: cannot assemble a read outside an OSS or CN"
                )
        elif parent == "oss":
            if self.name == "oss_hub_mem_hca":
                req.byte_length = req.data_size
                self.to_module_name(req, "pci")
            elif self.name == "oss_hub_hba_ost":
                self.to_module_name(req, "oss_memory")
            self._forget_request(req)
        elif self.name == "edge_connect":
            self._deliver_whole(req, "sink[1]")
        elif parent == "cn":
            self._deliver_whole(req, "cn")

    def check_all_id_arrival(self, req: Request) -> bool:
        """True once every request of ``req``'s master has fully arrived."""
        if self.name not in ("cn_memory_hca", "edge_connect"):
            return True
        by_id = self.work_arrive_status.get(req.src_addr, {}).get(req.master_id, {})
        return all(size == req.data_size for size in by_id.values())

    def send_ost_by_stripe(self, req: Request) -> None:
        """Send ``req`` to one of the stripe's OSTs, starting at its target OST."""
        ost_count = self._ost_count()
        if ost_count == 0:
            raise SimulationError(f"{self._parent_full_name} has no OSTs")
        offset = self.intuniform(0, STRIPE_COUNT - 1, self._rng_index)
        ost_index = (req.target_ost + offset) % ost_count
        self.to_module_name(req, f"sas[{ost_index}]")

    def seg_and_send(self, req: Request, total_size: int, seg_size: int, dest: str) -> None:
        """Send ``req`` to ``dest`` in fragments of at most ``seg_size`` bytes."""
        if total_size <= seg_size:
            self.to_module_name(req, dest)
            return
        remaining = total_size
        while remaining > 0:
            fragment = req.dup()
            size = min(remaining, seg_size)
            fragment.frag_size = size
            fragment.byte_length = size
            self.to_module_name(fragment, dest)
            remaining -= seg_size

    def _record_arrival(self, req: Request) -> int:
        by_id = self.work_arrive_status.setdefault(req.src_addr, {}).setdefault(
            req.master_id, {}
        )
        by_id[req.id] = by_id.get(req.id, 0) + req.frag_size
        return by_id[req.id]

    def _forget_request(self, req: Request) -> None:
        self.work_arrive_status.get(req.src_addr, {}).get(req.master_id, {}).pop(req.id, None)

    def _deliver_whole(self, req: Request, dest: str) -> None:
        if not self.check_all_id_arrival(req):
            return
        total = sum(self.work_arrive_status[req.src_addr][req.master_id].values())
        req.data_size = total
        req.frag_size = total
        self.to_module_name(req, dest)
        self.work_arrive_status[req.src_addr].pop(req.master_id, None)

    def _ost_count(self) -> int:
        return sum(
            1 for module in self._sim.modules
            if module.parent is self.parent and module.name == "ost"
        )

    def _handle_payload_ost(self, req: Request) -> None:
        self.to_module_name(req, self._parent_name if req.finished else "flashBuffer")

    def _handle_adapter(self, req: Request) -> None:
        if _sender_name(req) in ("hcaBuffer", "hbaBuffer"):
            self.to_module_name(req, self._parent_name)
        elif self.name == "hca_payload":
            self.seg_and_send(req, req.byte_length, MTU, "hcaBuffer")
        else:
            self.seg_and_send(req, req.byte_length, STRIPE_SIZE, "hbaBuffer")

    def _handle_oss_in(self, req: Request) -> None:
        if not req.finished:
            self.to_module_name(req, "oss_hub_mem_hca")
        else:
            pop_path(req, "b")
            self.to_module_name(req, self._parent_name)

    def _handle_hub_mem_hca(self, req: Request) -> None:
        sender = _sender_name(req)
        if sender == "oss_in_payload" or _sender_parent_name(req) == "pci":
            self.to_module_name(req, "hca")
        elif sender == "hca_payload":
            if req.finished:
                self.to_module_name(req, "oss_in_payload")
            elif req.work_type == WorkType.READ:
                self.to_module_name(req, "pci")
            elif req.work_type == WorkType.WRITE:
                self.collect_from_osts(req)
            else:
                raise SimulationError(f"wrong work type {req.work_type!r}")

    def _handle_hub_mem_hba(self, req: Request) -> None:
        self.to_module_name(req, "hba")

    def _handle_hub_hba_ost(self, req: Request) -> None:
        if _sender_name(req) == "hba_payload":
            if req.finished:
                self.collect_from_osts(req)
            else:
                self.send_ost_by_stripe(req)
        elif _sender_parent_name(req) == "sas":
            self.to_module_name(req, "oss_hub_mem_hba")

    def _handle_in_flow(self, req: Request) -> None:
        # Cables between fat-tree hops consume one hop of the route.
        if self._parent_name not in ("pci", "sas"):
            if len(req.send_path) > 1:
                pop_path(req, "s")
            elif req.finished:
                pop_path(req, "b")
        if _sender_name(req) == "link_input":
            self.to_module_name(req, self._parent_name)
        else:
            self.to_module_name(req, "link_input")

    def _handle_link_input(self, req: Request) -> None:
        sender = _sender_name(req)
        if sender == "in_flow":
            self.to_module_name(req, "link_output")
        elif sender == "link_output":
            self.to_module_name(req, "in_flow")

    def _handle_link_output(self, req: Request) -> None:
        sender = _sender_name(req)
        if sender == "link_input":
            self.to_module_name(req, "out_flow")
        elif sender == "out_flow":
            self.to_module_name(req, "link_input")

    def _handle_out_flow(self, req: Request) -> None:
        if _sender_name(req) == "link_output":
            self.to_module_name(req, self._parent_name)
        else:
            self.to_module_name(req, "link_output")

    def _handle_cn_memory_hca(self, req: Request) -> None:
        came_from = _sender_parent_name(req)
        if req.des_addr != self._parent_full_name:
            # This node issued the request.
            if not req.finished:
                if came_from == "pci":
                    self.to_module_name(req, "hca")
                elif came_from == "hca":
                    pop_path(req, "s")
                    self.to_module_name(req, "cn")
            elif came_from == "inif_edge_cn":
                self.to_module_name(req, "hca")
            elif came_from == "hca":
                self.to_module_name(req, "pci")
            elif came_from == "pci":
                self.collect_from_osts(req)
            return

        # This node is the request's target.
        if came_from == "inif_edge_cn":
            self.to_module_name(req, "hca")
        elif came_from == "hca":
            if not req.finished:
                self.to_module_name(req, "pci")
            else:
                pop_path(req, "b")
                if req.work_type == WorkType.READ:
                    self.to_module_name(req, "cn")
                else:
                    self.collect_from_osts(req)
        elif came_from == "pci":
            self.to_module_name(req, "hca")

    def _handle_edge_connect(self, req: Request) -> None:
        if len(req.send_path) > 1:
            if _sender_name(req) == "edge" and req.work_type == WorkType.WRITE:
                # Written data returns to the sink without going back to the CN.
                by_id = self.work_arrive_status.setdefault(req.src_addr, {}).setdefault(
                    req.master_id, {}
                )
                by_id[req.id] = 0
            self.to_module_name(req, pop_path(req, "s"))
        elif len(req.back_path) > 1:
            if req.work_type == WorkType.READ:
                self.to_module_name(req, pop_path(req, "b"))
            elif req.work_type == WorkType.WRITE:
                self.collect_from_osts(req)
        else:
            self.to_module_name(req, "sink[0]")