"""Shared fixtures for the logic tests.

`ScriptedGateway` stands in for the RPC side of a session: every operation
succeeds unless a failure was queued for it, and an operation can be held open
to observe the session while it is in flight.
"""

import asyncio
from collections import defaultdict

import pytest

from ivcell.types import CONSTS, RPCError


class ScriptedGateway:
    def __init__(self):
        self.calls: list[str] = []
        self.failures: dict[str, list[BaseException]] = defaultdict(list)
        self.gates: dict[str, asyncio.Event] = {}
        self.potentials: list[float] = []
        self.potential = 0.0
        self.outstanding = 0
        self.max_outstanding = 0
        self.active: dict[str, int] = defaultdict(int)
        self.max_active: dict[str, int] = defaultdict(int)

    def fail_next(self, operation: str, tag: str = CONSTS.ERR.OTHER, exc=None):
        if exc is None:
            exc = RPCError(operation, tag, "scripted failure")
        self.failures[operation].append(exc)

    def hold(self, operation: str) -> asyncio.Event:
        """Block calls to `operation` until the returned event is set."""
        gate = asyncio.Event()
        self.gates[operation] = gate
        return gate

    def count(self, operation: str) -> int:
        return self.calls.count(operation)

    async def _call(self, operation: str, result):
        self.calls.append(operation)
        self.outstanding += 1
        self.max_outstanding = max(self.max_outstanding, self.outstanding)
        self.active[operation] += 1
        self.max_active[operation] = max(
            self.max_active[operation], self.active[operation]
        )
        try:
            gate = self.gates.get(operation)
            if gate is not None:
                await gate.wait()
            if self.failures[operation]:
                raise self.failures[operation].pop(0)
            return result
        finally:
            self.outstanding -= 1
            self.active[operation] -= 1

    async def open_driver(self):
        return await self._call("open_driver", "Driver opened.")

    async def close_driver(self):
        return await self._call("close_driver", "Driver closed.")

    async def connect_device(self):
        return await self._call("connect_device", "Device connected.")

    async def disconnect_device(self):
        return await self._call("disconnect_device", "Device disconnected.")

    async def set_cell_on(self):
        return await self._call("set_cell_on", "Cell on.")

    async def set_cell_off(self):
        return await self._call("set_cell_off", "Cell off.")

    async def get_potential(self):
        value = self.potentials.pop(0) if self.potentials else self.potential
        return await self._call("get_potential", value)


@pytest.fixture
def gateway():
    return ScriptedGateway()


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    """Wait for `predicate()` to hold, failing the test after `timeout` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met before timeout.")
        await asyncio.sleep(interval)


@pytest.fixture
def until():
    return wait_until
