"""Request packets exchanged between simulated modules."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class WorkType(str, Enum):
    """Kind of I/O work a request carries."""

    READ = "r"
    WRITE = "w"


@dataclass(eq=False)
class Request:
    """A read or write request travelling through the network.

    ``byte_length`` is the amount of data the packet currently carries on
    the wire; ``frag_size`` and ``data_size`` describe the fragment and the
    whole piece of work it belongs to.
    """

    name: str = ""
    kind: int = 0
    byte_length: int = 0
    work_type: Optional[WorkType] = None
    finished: bool = False
    ckp_launched: bool = False
    port_index: int = 0
    target_ost: int = 0
    id: int = 0
    master_id: int = 0
    num_proc: int = 0
    frag_size: int = 0
    data_size: int = 0
    proc_time: float = 0.0
    src_addr: str = ""
    des_addr: str = ""
    master_id_addr: str = ""
    next_hop_addr: str = ""
    send_path: str = ""
    back_path: str = ""
    generate_time: float = 0.0
    arrive_module_time: float = 0.0
    leave_module_time: float = 0.0
    way: list[list[str]] = field(default_factory=list)
    sender_module: Any = field(default=None, repr=False)
    is_self_message: bool = False

    def dup(self) -> "Request":
        """Return an independent copy of this request."""
        return replace(self, way=[list(hop) for hop in self.way])