import pytest

from fakes import FakeLedgerNode


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def node() -> FakeLedgerNode:
    return FakeLedgerNode()
