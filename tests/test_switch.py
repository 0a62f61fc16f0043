import pytest

from fattreesim.kernel import Module, Simulation, SimulationError
from fattreesim.request import Request, WorkType
from fattreesim.switch import Switch

EDGE = 1.0
AGGR = 2.0
CORE = 4.0
PARAMS = {"proc_num": 1, "edge_latency": EDGE, "aggr_latency": AGGR, "core_latency": CORE}


class Recorder(Module):
    def __init__(self, name, index=None):
        super().__init__(name, index)
        self.received = []

    def handle_message(self, msg):
        self.received.append((self.now, msg))


def link(sim, a, b):
    sim.connect(a.add_gate("port$o"), b.add_gate("port$i"))
    sim.connect(b.add_gate("port$o"), a.add_gate("port$i"))


def build(**overrides):
    sim = Simulation(seed=1)
    params = dict(PARAMS, **overrides)
    m = {
        "cn0": Recorder("cn", 0),
        "cn1": Recorder("cn", 1),
        "mds": Recorder("mds"),
        "oss0": Recorder("oss", 0),
        "edge0": Switch("edge", 0, params=params),
        "edge1": Switch("edge", 1, params=params),
        "aggr0": Switch("aggr", 0, params=params),
        "core0": Switch("core", 0, params=params),
    }
    for module in m.values():
        sim.add_module(module)
    link(sim, m["edge0"], m["cn0"])
    link(sim, m["edge1"], m["cn1"])
    link(sim, m["edge0"], m["aggr0"])
    link(sim, m["edge1"], m["aggr0"])
    link(sim, m["aggr0"], m["core0"])
    link(sim, m["core0"], m["mds"])
    link(sim, m["core0"], m["oss0"])
    return sim, m


def initialized():
    sim, m = build()
    for module in sim.modules:
        module.initialize()
    return sim, m


def inject(sim, target, req, sender, time=0.0):
    req.sender_module = sender
    req.is_self_message = False
    sim.schedule(time, target, req)


def test_initialize_maps_neighbours():
    _, m = initialized()
    assert m["edge0"].check_port("cn[0]")
    assert m["edge0"].check_port("aggr[0]")
    assert not m["edge0"].check_port("cn[1]")


def test_cn_to_cn_delivery():
    sim, m = build()
    req = Request(byte_length=10, src_addr="cn[0]", des_addr="cn[1]", work_type=WorkType.WRITE)
    inject(sim, m["edge0"], req, m["cn0"])
    sim.run()
    assert len(m["cn1"].received) == 1
    time, msg = m["cn1"].received[0]
    assert time == pytest.approx(EDGE + AGGR + EDGE)
    assert msg.des_addr == "cn[1]"
    assert m["cn0"].received == []
    assert [r.source for r in sim.signals("stayTime")] == ["edge[0]", "aggr[0]"]


def test_finished_request_returns_to_source():
    sim, m = build()
    req = Request(byte_length=10, finished=True, src_addr="cn[0]", des_addr="cn[1]",
                  work_type=WorkType.READ)
    inject(sim, m["edge1"], req, m["cn1"])
    sim.run()
    assert len(m["cn0"].received) == 1
    assert m["cn1"].received == []


def test_empty_request_passes_without_latency():
    sim, m = build()
    req = Request(byte_length=0, src_addr="cn[0]", des_addr="cn[1]", work_type=WorkType.READ)
    inject(sim, m["edge0"], req, m["cn0"])
    sim.run()
    time, msg = m["cn1"].received[0]
    assert time == 0.0
    assert msg.proc_time == 0.0


def test_find_cn_points_to_edge_of_node():
    _, m = initialized()
    port = m["aggr0"].find_cn("cn[1]", "edge")
    assert m["aggr0"].gate("port$o", port).next_module() is m["edge1"]
    assert m["aggr0"].find_cn("cn[9]", "edge") is None


def test_find_aggr_records_queue_size():
    _, m = initialized()
    port = m["core0"].find_aggr("cn[1]")
    assert m["core0"].gate("port$o", port).next_module() is m["aggr0"]
    assert m["core0"].queue_data_size[port] == m["aggr0"].data_size_in_queue()


def test_find_aggr_without_route_raises():
    _, m = initialized()
    with pytest.raises(SimulationError):
        m["core0"].find_aggr("cn[9]")


def test_rand_choose():
    _, m = initialized()
    port = m["edge0"].rand_choose("aggr")
    assert m["edge0"].gate("port$o", port).next_module() is m["aggr0"]
    with pytest.raises(SimulationError):
        m["edge0"].rand_choose("core")


def test_core_from_aggr_goes_straight_to_mds():
    sim, m = build()
    req = Request(byte_length=10, src_addr="cn[0]", des_addr="oss[0]", work_type=WorkType.WRITE)
    inject(sim, m["core0"], req, m["aggr0"])
    sim.run()
    time, msg = m["mds"].received[0]
    assert time == pytest.approx(CORE)
    assert msg.proc_time == pytest.approx(CORE)
    assert sim.signals("queueLen") == []


def test_core_from_mds_goes_to_next_hop():
    sim, m = build()
    req = Request(byte_length=10, src_addr="cn[0]", des_addr="oss[0]",
                  next_hop_addr="oss[0]", work_type=WorkType.WRITE)
    inject(sim, m["core0"], req, m["mds"])
    sim.run()
    time, _ = m["oss0"].received[0]
    assert time == pytest.approx(CORE)
    assert m["mds"].received == []


def test_core_from_mds_unknown_oss_raises():
    sim, m = build()
    req = Request(byte_length=10, des_addr="oss[0]", next_hop_addr="oss[5]",
                  work_type=WorkType.WRITE)
    inject(sim, m["core0"], req, m["mds"])
    with pytest.raises(SimulationError):
        sim.run()


def test_edge_read_data_returns_to_source():
    sim, m = build()
    req = Request(byte_length=10, src_addr="cn[0]", des_addr="oss[0]", work_type=WorkType.READ)
    inject(sim, m["edge0"], req, m["aggr0"])
    sim.run()
    assert len(m["cn0"].received) == 1


def test_edge_write_ack_to_unknown_node_raises():
    sim, m = build()
    req = Request(byte_length=0, src_addr="cn[7]", des_addr="oss[0]", work_type=WorkType.WRITE)
    inject(sim, m["edge0"], req, m["aggr0"])
    with pytest.raises(SimulationError):
        sim.run()


def test_aggr_from_unknown_sender_raises():
    _, m = initialized()
    req = Request(byte_length=10, src_addr="cn[0]", des_addr="cn[1]",
                  sender_module=m["cn0"], work_type=WorkType.WRITE)
    with pytest.raises(SimulationError):
        m["aggr0"].handle_message(req)


def test_unknown_switch_raises():
    sim = Simulation()
    spine = sim.add_module(Switch("spine", 0, params=PARAMS))
    spine.initialize()
    with pytest.raises(SimulationError):
        spine.handle_message(Request(des_addr="cn[1]"))


def test_queue_statistics():
    sw = Switch("edge", 0, params=PARAMS)
    sizes = [100, 0, 50]
    for size in sizes:
        sw.switch_buffer.insert(Request(byte_length=size))
    assert sw.real_queue_length() == len([s for s in sizes if s])
    assert sw.data_size_in_queue() == sum(sizes)


def test_requests_wait_for_processing_slot():
    sim = Simulation(seed=3)
    edge = sim.add_module(Switch("edge", 0, params=PARAMS))
    cn = sim.add_module(Recorder("cn", 0))
    aggr = sim.add_module(Recorder("aggr", 0))
    link(sim, edge, cn)
    link(sim, edge, aggr)
    for _ in range(2):
        req = Request(byte_length=10, src_addr="cn[0]", des_addr="oss[0]",
                      work_type=WorkType.WRITE)
        inject(sim, edge, req, cn)
    sim.run()
    times = [time for time, _ in aggr.received]
    assert times[0] == pytest.approx(EDGE)
    assert times[1] - times[0] == pytest.approx(EDGE)
    waits = [r.value for r in sim.signals("waitingTime")]
    assert waits[0] == pytest.approx(0.0)
    assert waits[1] == pytest.approx(EDGE)
    assert [r.value for r in sim.signals("queueLen")] == [0, 1]