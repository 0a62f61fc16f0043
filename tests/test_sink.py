from fattreesim.general import MB
from fattreesim.kernel import Module, Simulation
from fattreesim.request import Request, WorkType
from fattreesim.sink import Sink
from fattreesim.topology import Topology


def _link(sim, a, b):
    out_a = a.add_gate("port$o")
    out_b = b.add_gate("port$o")
    sim.connect(out_a, out_b)
    sim.connect(out_b, out_a)


def build_network(sim):
    net = Module("Fattreenew")

    def node(name, index):
        return sim.add_module(Module(name, index, parent=net))

    chain = [node("cn", 0), node("inif_edge_cn", 0), node("edge_connect", 0),
             node("edge", 0), node("edge_connect", 1), node("inif_edge_cn", 1),
             node("cn", 1)]
    for a, b in zip(chain, chain[1:]):
        _link(sim, a, b)
    return net


def test_first_sink_discovers_routes_into_shared_topology():
    sim = Simulation()
    net = build_network(sim)
    topology = Topology()
    sink = sim.add_module(Sink("sink", 0, parent=net, topology=topology))
    sim.run()
    assert sink.topology is topology
    assert topology.cns == ["cn[0]", "cn[1]"]
    assert topology.paths["cn[0]"]["cn[1]"] == [
        ["inif_edge_cn[0]", "edge_connect[0]", "edge[0]", "edge_connect[1]", "inif_edge_cn[1]"]
    ]


def test_other_sinks_do_not_discover():
    sim = Simulation()
    net = build_network(sim)
    sink = sim.add_module(Sink("sink", 1, parent=net))
    sim.run()
    assert sink.topology.paths == {}
    assert sink.topology.cns == []


def test_read_throughput_is_emitted():
    sim = Simulation()
    sink = sim.add_module(Sink("sink", 1))
    sim.schedule(2.0, sink, Request(work_type=WorkType.READ, frag_size=MB))
    sim.run()
    records = sim.signals("readThroughput")
    assert [(r.time, r.source) for r in records] == [(2.0, "sink[1]")]
    assert records[0].value == 0.5
    assert sink.total_read_size == MB
    assert sim.signals("writeThroughput") == []


def test_write_throughput_accumulates():
    sim = Simulation()
    sink = sim.add_module(Sink("sink", 1))
    sim.schedule(1.0, sink, Request(work_type=WorkType.WRITE, frag_size=MB))
    sim.schedule(2.0, sink, Request(work_type=WorkType.WRITE, frag_size=MB))
    sim.run()
    values = [r.value for r in sim.signals("writeThroughput")]
    assert values == [1.0, 1.0]
    assert sink.total_write_size == 2 * MB
    assert sink.total_read_size == 0


def test_untyped_requests_count_as_writes():
    sim = Simulation()
    sink = sim.add_module(Sink("sink", 1))
    sim.schedule(1.0, sink, Request(frag_size=100))
    sim.run()
    assert sink.total_write_size == 100
    assert len(sim.signals("writeThroughput")) == 1


def test_throughput_at_time_zero_is_infinite():
    sim = Simulation()
    sink = sim.add_module(Sink("sink", 1))
    sim.schedule(0.0, sink, Request(work_type=WorkType.READ, frag_size=10))
    sim.run()
    records = sim.signals("readThroughput")
    assert [(r.time, r.source, r.value) for r in records] == [
        (0.0, "sink[1]", float("inf"))
    ]
    assert sink.total_read_size == 10