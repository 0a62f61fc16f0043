import pytest

from fattreesim.kernel import Channel, Module, Simulation, SimulationError
from fattreesim.request import Request


class Recorder(Module):
    def __init__(self, name, **kwargs):
        super().__init__(name, **kwargs)
        self.received = []

    def handle_message(self, msg):
        self.received.append((self.now, msg))


class Ticker(Module):
    def initialize(self):
        self.schedule_at(2.0, Request(name="tick"))

    def handle_message(self, msg):
        self.emit("ticks", msg.is_self_message)


def _pair(channel=None, seed=0):
    sim = Simulation(seed=seed)
    src = sim.add_module(Module("a"))
    dst = sim.add_module(Recorder("b"))
    sim.connect(src.add_gate("port$o"), dst.add_gate("port$i"), channel)
    return sim, src, dst


def test_send_without_channel_arrives_immediately():
    sim, src, dst = _pair()
    req = Request(byte_length=10)
    src.send(req, "port$o")
    sim.run()
    assert dst.received == [(0.0, req)]
    assert req.sender_module is src
    assert req.is_self_message is False


def test_send_delayed_adds_channel_delay():
    sim, src, dst = _pair(Channel(delay=0.5))
    src.send_delayed(Request(), 1.0, "port$o")
    sim.run()
    assert dst.received[0][0] == pytest.approx(1.5)


def test_transmission_channel_delays_by_finish_time():
    channel = Channel(delay=0.25, datarate=8.0)
    sim, src, dst = _pair(channel)
    src.send(Request(byte_length=3), "port$o")
    finish = channel.transmission_finish_time(0.0)
    sim.run()
    assert finish > 0.0
    assert dst.received[0][0] == pytest.approx(finish + 0.25)


def test_channel_transmissions_queue_up():
    channel = Channel(datarate=8.0)
    first = channel.start_transmission(0.0, 4)
    second = channel.start_transmission(0.0, 4)
    assert second == pytest.approx(2 * first)
    assert channel.transmission_finish_time(0.0) == second
    assert channel.transmission_finish_time(second + 1) == second + 1


def test_non_transmission_channel_finishes_now():
    channel = Channel(delay=1.0)
    assert channel.is_transmission_channel is False
    assert channel.start_transmission(3.0, 100) == 3.0


def test_invalid_channel_parameters():
    with pytest.raises(ValueError):
        Channel(delay=-1)
    with pytest.raises(ValueError):
        Channel(datarate=0)


def test_self_message_and_signals():
    sim = Simulation()
    ticker = sim.add_module(Ticker("t", index=0))
    end = sim.run()
    records = sim.signals("ticks")
    assert end == 2.0
    assert [(r.time, r.source, r.value) for r in records] == [(2.0, "t[0]", True)]
    assert ticker.full_name == "t[0]"


def test_run_stops_at_until():
    sim = Simulation()
    sim.add_module(Ticker("t"))
    assert sim.run(until=1.0) == 1.0
    assert sim.signals("ticks") == []


def test_run_twice_is_an_error():
    sim = Simulation()
    sim.run()
    with pytest.raises(SimulationError):
        sim.run()


def test_schedule_in_past_is_rejected():
    sim, src, _ = _pair()
    sim.now = 5.0
    with pytest.raises(SimulationError):
        src.schedule_at(1.0, Request())


def test_base_module_rejects_messages():
    sim = Simulation()
    mod = sim.add_module(Module("plain"))
    mod.schedule_at(0.0, Request())
    with pytest.raises(SimulationError):
        sim.run()


def test_gates_and_lookup():
    sim, src, dst = _pair()
    assert src.gate_size("port$o") == 1
    assert src.gate_size("missing") == 0
    assert src.gate("port$o").next_module() is dst
    assert sim.find_module("b") is dst
    with pytest.raises(SimulationError):
        src.gate("port$o", 3)
    with pytest.raises(SimulationError):
        src.gate("missing")
    with pytest.raises(SimulationError):
        sim.find_module("nowhere")


def test_unconnected_gate_and_double_connect():
    sim = Simulation()
    mod = sim.add_module(Module("m"))
    other = sim.add_module(Module("n"))
    out = mod.add_gate("out")
    with pytest.raises(SimulationError):
        out.next_module()
    sim.connect(out, other.add_gate("in"))
    with pytest.raises(SimulationError):
        sim.connect(out, other.add_gate("in"))


def test_nested_module_path_and_duplicates():
    sim = Simulation()
    parent = sim.add_module(Module("cn", index=2))
    child = sim.add_module(Module("work_gen", parent=parent))
    assert child.full_path == "cn[2].work_gen"
    assert sim.find_module("cn[2].work_gen") is child
    with pytest.raises(SimulationError):
        sim.add_module(Module("cn", index=2))


def test_par_lookup():
    mod = Module("m", params={"rng": 1})
    assert mod.par("rng") == 1
    with pytest.raises(SimulationError):
        mod.par("absent")


def test_random_draws_are_in_range_and_reproducible():
    def draws(seed):
        sim = Simulation(seed=seed)
        mod = sim.add_module(Module("m"))
        return [mod.intuniform(0, 4, 1) for _ in range(50)], [
            mod.uniform(0.0, 1.0) for _ in range(50)
        ]

    ints, floats = draws(7)
    assert all(0 <= v <= 4 for v in ints)
    assert all(0.0 <= v <= 1.0 for v in floats)
    assert draws(7) == (ints, floats)


def test_empty_random_range_is_an_error():
    sim = Simulation()
    mod = sim.add_module(Module("m"))
    with pytest.raises(SimulationError):
        mod.intuniform(0, -1)
    with pytest.raises(SimulationError):
        mod.uniform(1.0, 0.0)


def test_unregistered_module_has_no_clock():
    with pytest.raises(SimulationError):
        Module("lonely").now