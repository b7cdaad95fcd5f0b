import pytest
from algosdk import account

from afterlife.config import ProtocolConfig
from afterlife.protocol import ProtocolHost

T0 = 1_700_000_000
THRESHOLD = 100
ONE_ALGO = 1_000_000


class FakeClock:
    """Controllable ledger clock (unix seconds)."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now

    def set(self, now: int) -> int:
        self.now = now
        return self.now


def _address() -> str:
    _, address = account.generate_account()
    return address


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def owner():
    return _address()


@pytest.fixture
def guardian():
    return _address()


@pytest.fixture
def beneficiary():
    return _address()


@pytest.fixture
def stranger():
    return _address()


@pytest.fixture
def make_address():
    return _address


@pytest.fixture
def config():
    return ProtocolConfig()


@pytest.fixture
def host(config, clock):
    return ProtocolHost(config=config, clock=clock)


@pytest.fixture
def registered(host, owner):
    """Host with ``owner`` registered at T0 with a 100s threshold."""
    host.register(owner, THRESHOLD)
    return host
