import threading

import pytest
import stamina
from loguru import logger

from nsecwalker.lib.dnshelper import QueryError


@pytest.fixture(autouse=True)
def no_retry_waits():
    stamina.set_active(False)
    yield
    stamina.set_active(True)
    # cli.main() adds sinks bound to the captured streams of the test
    logger.remove()


class FakeHelper:
    """
    Stands in for DnsHelper. chain maps a canonical name to the next names
    its NSEC answer holds; endpoints in failing always raise QueryError.
    """

    def __init__(self, chain=None, failing=()):
        self.chain = chain or {}
        self.failing = set(failing)
        self.calls = []
        self._lock = threading.Lock()

    def get_nsec(self, host, endpoint):
        with self._lock:
            self.calls.append((host, endpoint))
        if endpoint in self.failing:
            raise QueryError(f'{endpoint} timed out')
        return list(self.chain.get(host, []))

    @property
    def hosts(self):
        return [host for host, _ in self.calls]


@pytest.fixture
def fake_helper():
    return FakeHelper
