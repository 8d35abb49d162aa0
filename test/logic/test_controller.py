"""Tests for session transitions against a scripted gateway"""

import asyncio
import random

import pytest

from ivcell.device import MockIviumDriver
from ivcell.session import DEVICE_STATUS, DRIVER_STATUS, SessionController
from ivcell.types import CONSTS, CommsError


class DriverGateway:
    """Await a driver backend in-process, as the server would call it."""

    def __init__(self, driver):
        self.driver = driver

    def __getattr__(self, name):
        method = getattr(self.driver, name)

        async def call():
            return method()

        return call


def assert_invariant(state):
    assert not state.cell_on or state.device_connected
    assert not state.device_connected or state.driver_status == DRIVER_STATUS.RUNNING


@pytest.fixture
def controller(gateway):
    return SessionController(gateway)


async def connected(controller):
    assert await controller.open_driver()
    assert await controller.connect_device(True)
    return controller


class TestDriver:
    @pytest.mark.asyncio
    async def test_open_driver_ok(self, controller, gateway):
        assert await controller.open_driver()
        state = controller.state
        assert state.driver_status == DRIVER_STATUS.RUNNING
        assert not state.device_connected
        assert not state.cell_on
        assert not state.mutation_in_flight
        assert gateway.calls == ["open_driver"]

    @pytest.mark.asyncio
    async def test_open_driver_fails(self, controller, gateway):
        gateway.fail_next("open_driver", CONSTS.ERR.DRIVER_ABSENT)
        assert not await controller.open_driver()
        assert controller.state.driver_status == DRIVER_STATUS.NOT_RUNNING

    @pytest.mark.asyncio
    async def test_open_driver_fails_untagged(self, controller, gateway):
        gateway.fail_next("open_driver", exc=CommsError("no server"))
        assert not await controller.open_driver()
        assert controller.state.driver_status == DRIVER_STATUS.NOT_RUNNING

    @pytest.mark.asyncio
    async def test_driver_failure_clears_device_and_cell(self, controller, gateway):
        await connected(controller)
        assert await controller.set_cell_status(True)
        gateway.fail_next("open_driver", CONSTS.ERR.DRIVER_ABSENT)
        assert not await controller.open_driver()
        state = controller.state
        assert state.driver_status == DRIVER_STATUS.NOT_RUNNING
        assert not state.device_connected
        assert not state.cell_on

    @pytest.mark.asyncio
    async def test_close_driver_when_not_running(self, controller, gateway):
        gateway.fail_next("open_driver", CONSTS.ERR.DRIVER_ABSENT)
        await controller.open_driver()
        before = controller.state
        gateway.fail_next("close_driver", CONSTS.ERR.DRIVER_ABSENT)
        assert not await controller.close_driver()
        assert controller.state == before

    @pytest.mark.asyncio
    async def test_close_driver_ok(self, controller, gateway):
        await controller.open_driver()
        assert await controller.close_driver()
        assert controller.state.driver_status == DRIVER_STATUS.RUNNING
        assert gateway.count("close_driver") == 1

    @pytest.mark.asyncio
    async def test_close_driver_without_software_stays_not_running(self):
        # a closed driver stays not-running only because the backend refuses close
        driver = MockIviumDriver(software_running=False)
        controller = SessionController(DriverGateway(driver))
        assert not await controller.open_driver()
        assert not await controller.close_driver()
        state = controller.state
        assert state.driver_status == DRIVER_STATUS.NOT_RUNNING
        assert not state.device_connected
        assert not state.cell_on

        driver.start_software()
        assert await controller.close_driver()
        assert controller.state.driver_status == DRIVER_STATUS.RUNNING


class TestScenarios:
    @pytest.mark.asyncio
    async def test_open_then_connect(self, controller):
        assert await controller.open_driver()
        state = controller.state
        assert state.driver_status == DRIVER_STATUS.RUNNING
        assert not state.device_connected

        assert await controller.connect_device(True)
        state = controller.state
        assert state.device_connected
        assert state.device_status == DEVICE_STATUS.AVAILABLE
        assert state.poll_ready

    @pytest.mark.asyncio
    async def test_cell_on_fails_device_absent(self, controller, gateway):
        await connected(controller)
        gateway.fail_next("set_cell_on", CONSTS.ERR.DEVICE_ABSENT)
        assert not await controller.set_cell_status(True)
        state = controller.state
        assert not state.device_connected
        assert not state.cell_on
        assert state.device_status == DEVICE_STATUS.NOT_AVAILABLE
        assert state.driver_status == DRIVER_STATUS.RUNNING
        assert not state.poll_ready

    @pytest.mark.asyncio
    async def test_fresh_open_fails(self, controller, gateway):
        gateway.fail_next("open_driver", CONSTS.ERR.DRIVER_ABSENT)
        await controller.open_driver()
        assert controller.state.driver_status == DRIVER_STATUS.NOT_RUNNING
        # device and cell actions are refused without calling out
        assert not await controller.connect_device(True)
        assert not await controller.set_cell_status(True)
        assert gateway.calls == ["open_driver"]

    @pytest.mark.asyncio
    async def test_disconnect_clears_cell(self, controller, gateway):
        await connected(controller)
        assert await controller.set_cell_status(True)
        assert controller.state.cell_on
        assert await controller.connect_device(False)
        state = controller.state
        assert not state.device_connected
        assert not state.cell_on
        assert state.device_status == DEVICE_STATUS.AVAILABLE
        assert gateway.calls[-1] == "disconnect_device"


class TestDeviceAndCell:
    @pytest.mark.asyncio
    async def test_connect_failure_goes_through_classifier(self, controller, gateway):
        await controller.open_driver()
        gateway.fail_next("connect_device", CONSTS.ERR.DEVICE_ABSENT)
        assert not await controller.connect_device(True)
        state = controller.state
        assert state.device_status == DEVICE_STATUS.NOT_AVAILABLE
        assert state.driver_status == DRIVER_STATUS.RUNNING

    @pytest.mark.asyncio
    async def test_unclassified_failure(self, controller, gateway):
        await connected(controller)
        gateway.fail_next("set_cell_on", CONSTS.ERR.OTHER)
        await controller.set_cell_status(True)
        state = controller.state
        assert state.driver_status == DRIVER_STATUS.UNKNOWN
        assert state.device_status == DEVICE_STATUS.UNKNOWN
        assert not state.device_connected
        assert not state.cell_on

    @pytest.mark.asyncio
    async def test_non_rpc_exception_is_unclassified(self, controller, gateway):
        await connected(controller)
        gateway.fail_next("set_cell_off", exc=RuntimeError("Not connected to server"))
        assert not await controller.set_cell_status(False)
        assert controller.state.driver_status == DRIVER_STATUS.UNKNOWN

    @pytest.mark.asyncio
    async def test_cell_off(self, controller, gateway):
        await connected(controller)
        await controller.set_cell_status(True)
        assert await controller.set_cell_status(False)
        assert not controller.state.cell_on
        assert controller.state.device_connected

    @pytest.mark.asyncio
    async def test_cell_refused_without_device(self, controller, gateway):
        await controller.open_driver()
        assert not await controller.set_cell_status(True)
        assert "set_cell_on" not in gateway.calls


class TestInFlight:
    @pytest.mark.asyncio
    async def test_in_flight_during_call(self, controller, gateway, until):
        await connected(controller)
        gate = gateway.hold("set_cell_on")
        task = asyncio.create_task(controller.set_cell_status(True))
        await until(lambda: gateway.count("set_cell_on") == 1)
        assert controller.state.mutation_in_flight
        assert not controller.state.poll_ready
        gate.set()
        assert await task
        assert not controller.state.mutation_in_flight
        assert controller.state.cell_on

    @pytest.mark.asyncio
    async def test_cleared_after_failure(self, controller, gateway):
        await connected(controller)
        gateway.fail_next("set_cell_on", CONSTS.ERR.DEVICE_ABSENT)
        await controller.set_cell_status(True)
        assert not controller.state.mutation_in_flight

    @pytest.mark.asyncio
    async def test_overlapping_mutations(self, controller, gateway, until):
        await connected(controller)
        cell_gate = gateway.hold("set_cell_on")
        driver_gate = gateway.hold("open_driver")
        cell = asyncio.create_task(controller.set_cell_status(True))
        driver = asyncio.create_task(controller.open_driver())
        await until(lambda: gateway.outstanding == 2)

        cell_gate.set()
        await cell
        # the driver call is still out
        assert controller.state.mutation_in_flight
        driver_gate.set()
        await driver
        assert not controller.state.mutation_in_flight
        assert controller.state.cell_on

    @pytest.mark.asyncio
    async def test_connect_success_after_driver_lost(self, controller, gateway, until):
        await controller.open_driver()
        connect_gate = gateway.hold("connect_device")
        connect = asyncio.create_task(controller.connect_device(True))
        await until(lambda: gateway.count("connect_device") == 1)

        gateway.fail_next("close_driver", CONSTS.ERR.DRIVER_ABSENT)
        await controller.close_driver()
        connect_gate.set()
        assert not await connect

        state = controller.state
        assert state.driver_status == DRIVER_STATUS.NOT_RUNNING
        assert not state.device_connected
        assert state.device_status == DEVICE_STATUS.UNKNOWN

    @pytest.mark.asyncio
    async def test_listeners_see_every_change(self, controller, gateway):
        seen = []
        controller.add_listener(seen.append)
        await controller.open_driver()
        assert [s.mutation_in_flight for s in seen] == [True, False]
        assert seen[-1].driver_status == DRIVER_STATUS.RUNNING

        controller.remove_listener(seen.append)
        await controller.connect_device(True)
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_transition(self, controller):
        def bad_listener(state):
            raise ValueError("listener bug")

        controller.add_listener(bad_listener)
        assert await controller.open_driver()
        assert controller.state.driver_running


@pytest.mark.asyncio
async def test_random_walk_keeps_invariant(gateway):
    controller = SessionController(gateway)
    rng = random.Random(1234)
    tags = [CONSTS.ERR.DEVICE_ABSENT, CONSTS.ERR.DRIVER_ABSENT, CONSTS.ERR.OTHER]
    actions = [
        ("open_driver", lambda: controller.open_driver()),
        ("close_driver", lambda: controller.close_driver()),
        ("connect_device", lambda: controller.connect_device(True)),
        ("disconnect_device", lambda: controller.connect_device(False)),
        ("set_cell_on", lambda: controller.set_cell_status(True)),
        ("set_cell_off", lambda: controller.set_cell_status(False)),
    ]
    for _ in range(500):
        operation, action = rng.choice(actions)
        if rng.random() < 0.3:
            gateway.fail_next(operation, rng.choice(tags))
        await action()
        gateway.failures[operation].clear()
        assert_invariant(controller.state)
        assert not controller.state.mutation_in_flight
