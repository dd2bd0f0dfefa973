import pytest

from fakes import FakeClock, FakeRpcClient, FakeSigner, RecordingSink, RecordingSleep
from zol_client.application.context import ZolContext
from zol_client.cache.store import DataCache
from zol_client.infrastructure.config.app_config import ZolConfig
from zol_client.rpc.manager import RpcManager


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_rpc(clock, sink, sleep):
    """Build an RpcManager over N fake endpoints. Returns (manager, clients)."""

    def _make(n: int = 1, **kwargs):
        clients = {f"https://rpc{i}.test": FakeRpcClient(f"https://rpc{i}.test") for i in range(n)}
        kwargs.setdefault("cache", DataCache(clock=clock))
        manager = RpcManager(
            list(clients),
            client_factory=lambda url: clients[url],
            sink=sink,
            sleep=sleep,
            **kwargs,
        )
        return manager, list(clients.values())

    return _make


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def zol(make_rpc, signer, sink):
    """A ZolContext on one fake endpoint. Returns (ctx, client)."""
    rpc, clients = make_rpc(1)
    ctx = ZolContext.create(ZolConfig(), signer=signer, sink=sink, rpc=rpc)
    return ctx, clients[0]
