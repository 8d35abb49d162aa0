"""Tests for the measurement poller"""

import asyncio

import pytest

from ivcell.session import (
    DEVICE_STATUS,
    DRIVER_STATUS,
    MeasurementPoller,
    Reading,
    SessionController,
    session_view,
)
from ivcell.types import CONSTS

PERIOD = 0.02


@pytest.fixture
def controller(gateway):
    return SessionController(gateway)


@pytest.fixture
def poller(controller):
    return MeasurementPoller(controller, period=PERIOD)


async def make_ready(controller):
    await controller.open_driver()
    await controller.connect_device(True)


def test_period_must_be_positive(controller):
    with pytest.raises(ValueError):
        MeasurementPoller(controller, period=0)


def test_initial_reading(poller):
    assert poller.reading == Reading(value=None, fresh=False)
    assert not poller.active


@pytest.mark.asyncio
async def test_not_polling_before_ready(controller, poller, gateway):
    await controller.open_driver()
    await asyncio.sleep(PERIOD * 5)
    assert not poller.active
    assert gateway.count("get_potential") == 0


@pytest.mark.asyncio
async def test_polls_once_ready(controller, poller, gateway, until):
    gateway.potentials = [0.1, 0.2, 0.3]
    await make_ready(controller)
    assert poller.active
    await until(lambda: gateway.count("get_potential") >= 3)
    await until(lambda: poller.reading.value == pytest.approx(0.3))
    assert poller.reading.fresh
    await poller.close()


@pytest.mark.asyncio
async def test_reading_formatted_to_eight_decimals(controller, poller, gateway, until):
    gateway.potential = 0.00042315
    await make_ready(controller)
    await until(lambda: poller.reading.fresh)
    view = session_view(controller.state, poller.reading)
    assert view.potential_text == "0.00042315"
    await poller.close()


@pytest.mark.asyncio
async def test_stops_during_mutation_and_resumes(controller, poller, gateway, until):
    await make_ready(controller)
    await until(lambda: poller.reading.fresh)

    gate = gateway.hold("set_cell_on")
    cell = asyncio.create_task(controller.set_cell_status(True))
    await until(lambda: gateway.count("set_cell_on") == 1)
    assert not poller.active
    assert poller.reading.value is not None
    assert not poller.reading.fresh

    polls = gateway.count("get_potential")
    await asyncio.sleep(PERIOD * 5)
    assert gateway.count("get_potential") == polls

    gate.set()
    await cell
    assert poller.active
    await until(lambda: gateway.count("get_potential") > polls)
    await until(lambda: poller.reading.fresh)
    await poller.close()


@pytest.mark.asyncio
async def test_restart_waits_a_full_period(controller, gateway, until):
    poller = MeasurementPoller(controller, period=0.3)
    await make_ready(controller)
    await asyncio.sleep(0.1)
    assert gateway.count("get_potential") == 0
    await until(lambda: gateway.count("get_potential") == 1, timeout=1.0)
    await poller.close()


@pytest.mark.asyncio
async def test_stale_result_is_discarded(controller, poller, gateway, until):
    potential_gate = gateway.hold("get_potential")
    gateway.potential = 1.5
    await make_ready(controller)
    await until(lambda: gateway.count("get_potential") == 1)

    # precondition lapses while the read is out
    cell_gate = gateway.hold("set_cell_on")
    cell = asyncio.create_task(controller.set_cell_status(True))
    await until(lambda: gateway.count("set_cell_on") == 1)
    assert not poller.active

    potential_gate.set()
    await until(lambda: gateway.outstanding == 1)  # only the cell call is left
    await asyncio.sleep(PERIOD)
    assert poller.reading == Reading(value=None, fresh=False)

    cell_gate.set()
    await cell
    await poller.close()


@pytest.mark.asyncio
async def test_polls_are_sequential_across_restart(controller, poller, gateway, until):
    potential_gate = gateway.hold("get_potential")
    await make_ready(controller)
    await until(lambda: gateway.count("get_potential") == 1)

    # stop and restart while the first read is still out
    await controller.set_cell_status(True)
    assert poller.active
    await asyncio.sleep(PERIOD * 5)
    assert gateway.count("get_potential") == 1

    potential_gate.set()
    await until(lambda: gateway.count("get_potential") >= 3)
    assert gateway.max_active["get_potential"] == 1
    await poller.close()


@pytest.mark.asyncio
async def test_failed_poll_is_classified(controller, poller, gateway, until):
    await make_ready(controller)
    gateway.fail_next("get_potential", CONSTS.ERR.DEVICE_ABSENT)
    await until(lambda: not controller.state.device_connected)
    state = controller.state
    assert state.device_status == DEVICE_STATUS.NOT_AVAILABLE
    assert state.driver_status == DRIVER_STATUS.RUNNING
    assert not poller.active

    polls = gateway.count("get_potential")
    await asyncio.sleep(PERIOD * 5)
    assert gateway.count("get_potential") == polls


@pytest.mark.asyncio
async def test_failed_poll_driver_absent(controller, poller, gateway, until):
    await make_ready(controller)
    gateway.fail_next("get_potential", CONSTS.ERR.DRIVER_ABSENT)
    await until(lambda: controller.state.driver_status == DRIVER_STATUS.NOT_RUNNING)
    assert not poller.active


@pytest.mark.asyncio
async def test_reading_listener(controller, poller, gateway, until):
    readings = []
    poller.add_listener(readings.append)
    gateway.potentials = [0.25]
    await make_ready(controller)
    await until(lambda: len(readings) >= 1)
    assert readings[0] == Reading(value=0.25, fresh=True)
    await poller.close()
    assert readings[-1].fresh is False


@pytest.mark.asyncio
async def test_close_stops_for_good(controller, poller, gateway, until):
    await make_ready(controller)
    await until(lambda: gateway.count("get_potential") >= 1)
    await poller.close()
    assert not poller.active

    await controller.set_cell_status(True)
    polls = gateway.count("get_potential")
    await asyncio.sleep(PERIOD * 5)
    assert gateway.count("get_potential") == polls
    assert not poller.active


@pytest.mark.asyncio
async def test_attached_to_ready_session(controller, gateway, until):
    await make_ready(controller)
    poller = MeasurementPoller(controller, period=PERIOD)
    assert poller.active
    await until(lambda: gateway.count("get_potential") >= 2)
    assert poller.reading.fresh
    await poller.close()
