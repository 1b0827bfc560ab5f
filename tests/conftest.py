import pytest

from smc100cc_ctrl.config.models import SerialConfig, SimulatorConfig, StageConfig
from smc100cc_ctrl.protocol.interface import DeviceHandle, DiscoveryInterface, TransportInterface
from smc100cc_ctrl.protocol.logger import get_protocol_logger
from smc100cc_ctrl.stage.controller import StageController
from smc100cc_ctrl.api.bridge import PropertyBridge
from smc100cc_ctrl.utils.exceptions import TransportFault


FAKE_DEVICE = "/dev/ttyFAKE"

READY_REPLIES = {
    "1TS": b"1TS000033",
    "1TP": b"1TP0.000000",
    "1TE": b"1TE@",
}


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "slow: marks test as slow running test")


class FakeHandle(DeviceHandle):
    """
    Scripted device handle.

    `replies` maps a command (frame without terminator, e.g. "1TS") to a reply.
    A reply may be bytes, an exception instance to raise, or a list consumed
    one entry per query (the last entry repeats). Queries with no scripted
    reply time out.
    """

    def __init__(self, replies=None, device_name=FAKE_DEVICE):
        self.replies = dict(replies or {})
        self.writes = []
        self._device_name = device_name
        self._open = True
        self.close_count = 0

    @property
    def device_name(self):
        return self._device_name

    @property
    def is_open(self):
        return self._open

    def sent(self, prefix):
        """Frames written so far that start with prefix."""
        return [w for w in self.writes if w.startswith(prefix.encode("ascii"))]

    def _next_reply(self, key):
        reply = self.replies.get(key)
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        return reply

    def write(self, data, timeout_ms):
        if not self._open:
            raise TransportFault(f"{self._device_name} is not open")
        self.writes.append(data)
        reply = self._next_reply(data.strip().decode("ascii"))
        if isinstance(reply, Exception):
            raise reply

    def write_read(self, data, terminator, write_timeout_ms, read_timeout_ms):
        if not self._open:
            raise TransportFault(f"{self._device_name} is not open")
        self.writes.append(data)
        reply = self._next_reply(data.strip().decode("ascii"))
        if reply is None:
            raise TransportFault(f"No complete reply to {data.strip()!r} within {read_timeout_ms} ms")
        if isinstance(reply, Exception):
            raise reply
        return reply

    def close(self):
        self._open = False
        self.close_count += 1


class FakeTransport(TransportInterface):
    """Hands out the same FakeHandle on every open, or raises open_error."""

    def __init__(self, handle):
        self.handle = handle
        self.open_error = None
        self.opened = []

    def open(self, device_name):
        self.opened.append(device_name)
        if self.open_error is not None:
            raise self.open_error
        self.handle._open = True
        return self.handle


class FakeDiscovery(DiscoveryInterface):
    """Returns `result` as the device name, or raises it if it is an exception."""

    def __init__(self, result=FAKE_DEVICE):
        self.result = result
        self.calls = 0

    def resolve_identity(self):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class Rig:
    """A controller wired to fakes, plus the bridge it publishes to."""

    def __init__(self, replies=None, stage_config=None):
        self.handle = FakeHandle(replies if replies is not None else READY_REPLIES)
        self.transport = FakeTransport(self.handle)
        self.discovery = FakeDiscovery()
        self.controller = StageController(
            self.transport,
            self.discovery,
            SerialConfig(),
            stage_config or StageConfig(),
        )
        self.bridge = PropertyBridge(self.controller.dispatcher)
        self.controller.set_publisher(self.bridge)

    @property
    def state(self):
        return self.controller.state

    def script(self, **replies):
        """Replace replies, e.g. script(TS=b"1TS000028")."""
        for command, reply in replies.items():
            self.handle.replies[f"1{command}"] = reply


@pytest.fixture
def rig():
    return Rig()


@pytest.fixture
def ready_rig(rig):
    """Rig already driven to Ready."""
    rig.controller.tick()
    assert rig.state.value == "Ready"
    return rig


@pytest.fixture
def sim_config():
    return SimulatorConfig(enabled=True, homing_time_sec=0.0, speed_units_per_sec=1000.0)


@pytest.fixture(autouse=True)
def clear_protocol_log():
    get_protocol_logger().clear()
    yield
    get_protocol_logger().clear()
