"""Discovery of the network layout and of the shortest routes between nodes."""

from __future__ import annotations

from typing import Iterable, Sequence

from .kernel import Module, Simulation

MIN_PATH_LENGTH = 7
MAX_PATH_LENGTH = 15

# Positions (1-based, counted from the path's start) at which each kind of
# component may appear on a route through the fat tree.
_ALLOWED_POSITIONS: dict[str, frozenset[int]] = {
    "cn": frozenset({1}),
    "inif_edge_cn": frozenset({2, 6, 10, 14}),
    "edge_connect": frozenset({3, 5, 9, 13}),
    "edge": frozenset({4, 8, 12}),
    "inif_aggr_edge": frozenset({5, 7, 11}),
    "aggr": frozenset({6, 10}),
    "inif_core_aggr": frozenset({7, 9}),
    "core": frozenset({8}),
}
_DEAD_ENDS = frozenset({"sink", "oss"})
_LAYOUT_GATES = ("port$o", "out")


def check_path(path: Sequence[str]) -> bool:
    """True if a complete route has an acceptable length."""
    return MIN_PATH_LENGTH <= len(path) <= MAX_PATH_LENGTH and len(path) % 2 == 1


def _component(node: str) -> str:
    return node.split("[", 1)[0]


def _network_nodes(simulation: Simulation) -> list[Module]:
    """Modules that sit directly in the network, not inside another module."""
    registered = set(simulation.modules)
    return [
        module
        for module in simulation.modules
        if module.parent is None or module.parent not in registered
    ]


class Topology:
    """Who is connected to whom, and which routes link the nodes.

    ``layout`` maps a node to its neighbours and the gate (name, index)
    leading to each; ``paths`` maps a source and a destination to the
    intermediate hops of every shortest route between them.
    """

    def __init__(self) -> None:
        self.layout: dict[str, dict[str, tuple[str, int]]] = {}
        self.cns: list[str] = []
        self.osses: list[str] = []
        self.cn_cn_paths: list[list[str]] = []
        self.cn_oss_paths: list[list[str]] = []
        self.paths: dict[str, dict[str, list[list[str]]]] = {}

    def discover(self, simulation: Simulation) -> None:
        """Record the compute nodes, storage servers and links of the network."""
        self.layout = {}
        self.cns = []
        self.osses = []
        for module in _network_nodes(simulation):
            name = module.full_name
            if module.name == "cn":
                self.cns.append(name)
            elif module.name == "oss":
                self.osses.append(name)
            for gate_name in _LAYOUT_GATES:
                for index in range(module.gate_size(gate_name)):
                    neighbour = module.gate(gate_name, index).next_module().full_name
                    self.layout.setdefault(name, {})[neighbour] = (gate_name, index)

    def find_paths(self, source: str, target: str) -> list[list[str]]:
        """All valid routes from ``source`` to ``target``, each followed by its reverse."""
        found: list[list[str]] = []
        path: list[str] = []

        def visit(node: str) -> None:
            path.append(node)
            try:
                size = len(path)
                if node == target:
                    if check_path(path):
                        found.append(list(path))
                        found.append(path[::-1])
                    return
                component = _component(node)
                if size > MAX_PATH_LENGTH or component in _DEAD_ENDS:
                    return
                allowed = _ALLOWED_POSITIONS.get(component)
                if allowed is not None and size not in allowed:
                    return
                for neighbour in self.layout.get(node, {}):
                    visit(neighbour)
            finally:
                path.pop()

        visit(source)
        return found

    def generate_short_paths(self, paths: Iterable[Sequence[str]]) -> None:
        """Keep, for every source and destination, only the shortest routes."""
        for path in paths:
            source, destination = path[0], path[-1]
            middle = list(path[1:-1])
            routes = self.paths.setdefault(source, {}).setdefault(destination, [])
            if routes:
                if len(routes[0]) > len(middle):
                    routes.clear()
                elif len(routes[0]) < len(middle):
                    continue
            routes.append(middle)

    def build_paths(self) -> None:
        """Search the routes between every pair of CNs and every CN and OSS."""
        self.cn_cn_paths = []
        self.cn_oss_paths = []
        self.paths = {}
        for position, cn in enumerate(self.cns):
            for other in self.cns[position + 1:]:
                self.cn_cn_paths.extend(self.find_paths(cn, other))
            for oss in self.osses:
                self.cn_oss_paths.extend(self.find_paths(cn, oss))
        self.generate_short_paths(self.cn_cn_paths)
        self.generate_short_paths(self.cn_oss_paths)