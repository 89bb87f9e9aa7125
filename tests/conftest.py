import asyncio
import os as _os
import sys

import pytest

# Ensure project root is importable (so `import cli` works without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from lbdemo.app import create_app  # noqa: E402
from lbdemo.counters import REGISTRY_KEY, CounterStoreError  # noqa: E402
from lbdemo.settings import Settings  # noqa: E402


class MemoryCounterStore:
    """In-memory stand-in for the shared Redis store.

    Each primitive mutates in one step and then yields to the event loop,
    so concurrent callers interleave between (never inside) increments.
    """

    def __init__(self):
        self.data = {}
        self.sets = {}
        self.down = False
        self.closed = False
        self.calls = []

    def _check(self, op):
        self.calls.append(op)
        if self.down:
            raise CounterStoreError(f"{op} failed: ConnectionError: store is down")

    async def incr(self, key):
        self._check("INCR")
        self.data[key] = self.data.get(key, 0) + 1
        value = self.data[key]
        await asyncio.sleep(0)
        return value

    async def get(self, key):
        self._check("GET")
        await asyncio.sleep(0)
        return self.data.get(key, 0)

    async def delete(self, *keys):
        self._check("DEL")
        removed = 0
        for k in keys:
            if k in self.data:
                del self.data[k]
                removed += 1
            if k in self.sets:
                del self.sets[k]
                removed += 1
        return removed

    async def register_instance(self, instance_id):
        self._check("SADD")
        self.sets.setdefault(REGISTRY_KEY, set()).add(instance_id)

    async def registered_instances(self):
        self._check("SMEMBERS")
        return set(self.sets.get(REGISTRY_KEY, set()))

    async def ping(self):
        self._check("PING")
        return True

    async def close(self):
        self.closed = True


@pytest.fixture()
def store():
    return MemoryCounterStore()


@pytest.fixture()
def make_app(store):
    """Build an instance app wired to the shared in-memory store."""

    def _make(instance_id="1", shared_store=store, **overrides):
        cfg = Settings(instance_id=instance_id, load_test_iterations=overrides.pop("load_test_iterations", 1000), **overrides)

        async def factory(_cfg):
            return shared_store

        return create_app(cfg, store_factory=factory)

    return _make
