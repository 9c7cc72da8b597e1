"""Shared fixtures: in-memory Junos backends and sessions."""
import pytest

from mcp_junos_config.devices.base import DeviceConfig
from mcp_junos_config.devices.mock import MockJunosBackend, MockJunosDevice


def mock_config(**overrides) -> DeviceConfig:
    params = dict(
        type="mock",
        name="lab",
        host="localhost",
        timeout=5,
        lock_timeout=1,
        lock_retries=1,
        lock_retry_delay=0,
        retry_delay=0,
    )
    params.update(overrides)
    return DeviceConfig(**params)


@pytest.fixture(autouse=True)
def clean_registry():
    """Each test starts with no simulated devices."""
    MockJunosBackend.reset_registry()
    yield
    MockJunosBackend.reset_registry()


@pytest.fixture
def backend():
    return MockJunosBackend(hostname="lab")


@pytest.fixture
def make_session(backend):
    """Factory for connected sessions sharing one backend."""
    async def _make(**overrides) -> MockJunosDevice:
        session = MockJunosDevice("lab", mock_config(**overrides), backend=backend)
        await session.connect()
        return session
    return _make
