"""Discrete-event simulation of storage traffic over a fat-tree network.

Modules: kernel, request, general, topology, generator, switch, buffer,
storage, payload and sink.
"""

__version__ = "0.1.0"