"""
Tests for the simulated controller and the state machine running against it.
"""

import time

import pytest

from smc100cc_ctrl.api.bridge import PropertyBridge
from smc100cc_ctrl.config.models import SerialConfig, StageConfig
from smc100cc_ctrl.protocol.codec import TERMINATOR
from smc100cc_ctrl.simulator.mock_transport import MockDiscovery, MockTransport, SimulatedController
from smc100cc_ctrl.stage.controller import StageController
from smc100cc_ctrl.stage.state import ConnectionState, FaultCategory
from smc100cc_ctrl.utils.exceptions import DiscoveryError, TransportErrorKind, TransportFault


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sim(sim_config, clock):
    return SimulatedController(sim_config, clock=clock)


def query(sim, text):
    return sim.handle_frame(text.encode("ascii") + TERMINATOR)


class TestSimulatedController:
    """Protocol behavior of the virtual controller."""

    def test_starts_not_referenced(self, sim):
        assert query(sim, "1TS") == b"1TS00000A"
        assert query(sim, "1TP") == b"1TP0.000000"
        assert query(sim, "1TE") == b"1TE@"

    def test_homing_takes_configured_time(self, sim_config, clock):
        sim_config.homing_time_sec = 2.0
        sim = SimulatedController(sim_config, clock=clock)

        assert query(sim, "1OR") is None
        assert query(sim, "1TS") == b"1TS00001E"

        clock.advance(2.0)
        assert query(sim, "1TS") == b"1TS000032"

    def test_home_twice(self, sim_config, clock):
        sim_config.homing_time_sec = 2.0
        sim = SimulatedController(sim_config, clock=clock)
        query(sim, "1OR")
        query(sim, "1OR")
        assert query(sim, "1TE") == b"1TEE"

    def test_move_before_homing_is_refused(self, sim):
        query(sim, "1PA5.000000")
        assert query(sim, "1TE") == b"1TEH"
        assert query(sim, "1TE") == b"1TE@"

    def test_move(self, sim, clock):
        query(sim, "1OR")
        query(sim, "1PA5.000000")
        assert query(sim, "1TS") == b"1TS000028"

        clock.advance(1.0)
        assert query(sim, "1TS") == b"1TS000033"
        assert query(sim, "1TP") == b"1TP5.000000"

    def test_move_progress(self, sim_config, clock):
        sim_config.speed_units_per_sec = 2.0
        sim = SimulatedController(sim_config, clock=clock)
        query(sim, "1OR")
        query(sim, "1PA-10.000000")

        clock.advance(1.0)
        assert query(sim, "1TP") == b"1TP-2.000000"

    def test_move_while_moving_is_refused(self, sim):
        query(sim, "1OR")
        query(sim, "1PA5.000000")
        query(sim, "1PA6.000000")
        assert query(sim, "1TE") == b"1TEM"

    def test_bad_move_value(self, sim):
        query(sim, "1OR")
        query(sim, "1PAabc")
        assert query(sim, "1TE") == b"1TEC"

    def test_position_offset(self, sim, clock):
        sim.set_position_offset(0.5)
        query(sim, "1OR")
        query(sim, "1PA5.000000")
        clock.advance(1.0)
        assert query(sim, "1TP") == b"1TP5.500000"

    def test_unknown_command(self, sim):
        assert query(sim, "1ZZ") is None
        assert query(sim, "1TE") == b"1TEA"

    def test_other_address_is_ignored(self, sim):
        assert query(sim, "2TS") is None

    def test_identity(self, sim):
        assert query(sim, "1ID?") == b"1IDCC_SIM"

    def test_injected_error_reported_once(self, sim):
        sim.inject_error("Z")
        assert query(sim, "1TE") == b"1TEZ"
        assert query(sim, "1TE") == b"1TE@"

    def test_reset(self, sim):
        query(sim, "1OR")
        sim.reset()
        assert query(sim, "1TS") == b"1TS00000A"


class TestMockTransport:
    """Plug/unplug semantics of the simulated link."""

    def test_open_and_exchange(self, sim):
        handle = MockTransport(sim).open(sim.device_name)
        assert handle.write_read(b"1TS\r\n", TERMINATOR, 100, 100) == b"1TS00000A"

    def test_no_reply_is_timeout(self, sim):
        handle = MockTransport(sim).open(sim.device_name)
        with pytest.raises(TransportFault):
            handle.write_read(b"1OR\r\n", TERMINATOR, 100, 100)

    def test_unplugged(self, sim):
        transport = MockTransport(sim)
        handle = transport.open(sim.device_name)
        sim.unplug()

        with pytest.raises(TransportFault):
            handle.write_read(b"1TS\r\n", TERMINATOR, 100, 100)
        with pytest.raises(TransportFault) as exc_info:
            transport.open(sim.device_name)
        assert exc_info.value.kind is TransportErrorKind.DEVICE_ABSENT
        with pytest.raises(DiscoveryError) as exc_info:
            MockDiscovery(sim).resolve_identity()
        assert exc_info.value.is_absence

    def test_wrong_device_name(self, sim):
        with pytest.raises(TransportFault) as exc_info:
            MockTransport(sim).open("/dev/ttyUSB9")
        assert exc_info.value.is_absence


class TestControllerAgainstSimulator:
    """Full state machine flows with the simulated controller."""

    @pytest.fixture
    def controller(self, sim):
        controller = StageController(
            MockTransport(sim),
            MockDiscovery(sim),
            SerialConfig(),
            StageConfig(poll_interval_ms=50),
        )
        controller.set_publisher(PropertyBridge(controller.dispatcher))
        yield controller
        controller.shutdown()

    def bring_up(self, controller):
        controller.tick()
        assert controller.state is ConnectionState.CONNECTED
        controller.tick()
        assert controller.state is ConnectionState.READY

    def test_homes_then_ready(self, controller, sim):
        self.bring_up(controller)
        assert sim.status()["state"] == "32"

    def test_move_to_target(self, controller, clock):
        self.bring_up(controller)

        controller.dispatcher.submit(10.0)
        assert controller.state is ConnectionState.OPERATING

        clock.advance(1.0)
        controller.tick()

        assert controller.state is ConnectionState.READY
        assert controller.sample.current == pytest.approx(10.0)
        assert controller.sample.target == 10.0

    def test_move_ends_off_target(self, controller, sim, clock):
        self.bring_up(controller)
        sim.set_position_offset(1.0)

        controller.dispatcher.submit(10.0)
        clock.advance(1.0)
        controller.tick()

        assert controller.state is ConnectionState.ERROR
        assert controller._publisher.last_fault.category is FaultCategory.MOTION

    def test_unplug_and_replug(self, controller, sim):
        self.bring_up(controller)

        sim.unplug()
        controller.tick()
        assert controller.state is ConnectionState.NOT_CONNECTED
        controller.tick()
        assert controller.state is ConnectionState.NO_DEVICE

        sim.plug()
        controller.tick()
        assert controller.state is ConnectionState.READY

    def test_power_cycle_rehomes(self, controller, sim):
        self.bring_up(controller)

        sim.reset()
        controller.tick()
        assert controller.state is ConnectionState.CONNECTED
        controller.tick()
        assert controller.state is ConnectionState.READY

    def test_polling_thread(self, controller):
        controller.start()
        controller.tracker.wait_while(ConnectionState.NO_DEVICE, timeout=2.0)

        deadline = time.monotonic() + 2.0
        while controller.state is not ConnectionState.READY and time.monotonic() < deadline:
            time.sleep(0.01)

        assert controller.state is ConnectionState.READY
        controller.stop()
