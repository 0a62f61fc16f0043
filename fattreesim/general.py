"""Shared sizes, path helpers and the FIFO queue used by buffering modules."""

from __future__ import annotations

from collections import deque
from typing import Iterator, Sequence

from .kernel import Gate, SimulationError
from .request import Request

KB = 1024
MB = 1024 * KB
GB = 1024 * MB
TB = 1024 * GB

MTU = 65520
STRIPE_SIZE = 64 * KB
STRIPE_COUNT = 3


def pop_path(req: Request, direction: str) -> str:
    """Remove and return the first hop of the send ('s') or back ('b') path."""
    if direction == "s":
        current = req.send_path
    elif direction == "b":
        current = req.back_path
    else:
        raise ValueError(f"unknown sent/back direction {direction!r}")

    head, comma, rest = current.partition(",")
    remaining = rest if comma else ""
    if direction == "s":
        req.send_path = remaining
    else:
        req.back_path = remaining
    return head


def compare_str_vec(a: Sequence[str], b: Sequence[str]) -> bool:
    """Order paths by length, then by first or last hop."""
    if len(a) < len(b):
        return True
    if len(a) == len(b):
        return a[0] < b[0] or a[-1] < b[-1]
    return False


def check_port_with_trans_cable(gate: Gate) -> bool:
    """True if the gate's connection is a transmission channel."""
    return gate.channel is not None and gate.channel.is_transmission_channel


def trans_timestamp_by_cable(gate: Gate, now: float) -> float:
    """Earliest time a message can leave through ``gate``."""
    if check_port_with_trans_cable(gate):
        return max(now, gate.channel.transmission_finish_time(now))
    return now


class ArrivalQueue:
    """Requests waiting in a module, served in the order they arrived."""

    def __init__(self, name: str = ""):
        self.name = name
        self._items: deque[Request] = deque()

    def insert(self, req: Request) -> None:
        self._items.append(req)

    def pop(self) -> Request:
        if not self._items:
            raise SimulationError(f"queue {self.name!r} is empty")
        return self._items.popleft()

    def back(self) -> Request:
        if not self._items:
            raise SimulationError(f"queue {self.name!r} is empty")
        return self._items[-1]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Request]:
        return iter(self._items)