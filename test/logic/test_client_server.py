"""End-to-end tests: client functions and sessions against a loopback server"""

import asyncio

import pytest
import pytest_asyncio
from loguru import logger

import ivcell
import ivcell.server.client as client
from ivcell.device import MockIviumDriver
from ivcell.server import ConnectionManager
from ivcell.server.server import open_server_connection, serve
from ivcell.session import DEVICE_STATUS, DRIVER_STATUS, Session
from ivcell.types import CONSTS, CommsError, Request, RPCError

HOST = "127.0.0.1"


@pytest_asyncio.fixture
async def server():
    """Mock-backed server on a random port. Yields (driver, port)."""
    driver = MockIviumDriver(seed=0)
    context, server_connection = open_server_connection(HOST, 0)
    task = asyncio.create_task(serve(context, server_connection, driver))
    yield driver, server_connection.msg_port
    server_connection.shutdown_requested = True
    await asyncio.wait_for(task, timeout=5)


@pytest_asyncio.fixture
async def manager(server):
    _, port = server
    manager = ConnectionManager()
    await manager.connect(HOST, port, timeout=2, request_retries=1)
    yield manager
    manager.disconnect()


@pytest.fixture(autouse=True)
def log(request):
    logger.warning("STARTED Test '{}'".format(request.node.originalname))
    yield
    logger.warning("COMPLETED Test '{}' \n".format(request.node.originalname))


class TestComms:
    @pytest.mark.asyncio
    async def test_connect(self, manager):
        assert manager.is_connected()
        sync = manager.client_sync
        assert sync.driver_type == "MockIviumDriver"
        assert sync.version == ivcell.__version__

    @pytest.mark.asyncio
    async def test_ping_and_echo(self, manager):
        assert await manager.ping() == CONSTS.COMMS.PONG
        assert await manager.echo("hello") == "hello"

    @pytest.mark.asyncio
    async def test_server_log_path(self, manager):
        assert isinstance(await manager.get_server_log_path(), str)

    @pytest.mark.asyncio
    async def test_unknown_command(self, manager):
        with pytest.raises(RPCError) as exc_info:
            await client._send_request(manager.connection, Request("no_such_command"))
        assert exc_info.value.tag == CONSTS.ERR.OTHER

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_socket(self, manager):
        results = await asyncio.gather(*(manager.echo(f"msg-{i}") for i in range(10)))
        assert results == [f"msg-{i}" for i in range(10)]

    @pytest.mark.asyncio
    async def test_no_server(self):
        with pytest.raises(CommsError):
            await client.open_connection(HOST, 1, timeout=0.2, request_retries=0)

    @pytest.mark.asyncio
    async def test_stop_server(self):
        driver = MockIviumDriver()
        context, server_connection = open_server_connection(HOST, 0)
        task = asyncio.create_task(serve(context, server_connection, driver))
        manager = ConnectionManager()
        await manager.connect(HOST, server_connection.msg_port, 2, 1)
        await manager.open_driver()
        assert driver.is_connected()
        await manager.stop_server()
        assert not manager.is_connected()
        await asyncio.wait_for(task, timeout=5)
        assert server_connection.shutdown_requested
        assert not driver.is_connected()


class TestDriverCommands:
    @pytest.mark.asyncio
    async def test_happy_path(self, manager, server):
        driver, _ = server
        assert await manager.open_driver() == "Driver opened."
        await manager.connect_device()
        await manager.set_cell_on()
        assert driver.cell_is_on
        assert isinstance(await manager.get_potential(), float)
        await manager.set_cell_off()
        await manager.disconnect_device()
        await manager.close_driver()
        assert not driver.device_is_connected

    @pytest.mark.asyncio
    async def test_driver_absent(self, manager, server):
        driver, _ = server
        driver.stop_software()
        with pytest.raises(RPCError) as exc_info:
            await manager.open_driver()
        assert exc_info.value.tag == CONSTS.ERR.DRIVER_ABSENT
        assert exc_info.value.command == CONSTS.DRIVER.OPEN
        assert "NoIviumsoftRunningError" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_device_absent(self, manager, server):
        driver, _ = server
        driver.unplug()
        await manager.open_driver()
        with pytest.raises(RPCError) as exc_info:
            await manager.connect_device()
        assert exc_info.value.tag == CONSTS.ERR.DEVICE_ABSENT

    @pytest.mark.asyncio
    async def test_potential_without_device(self, manager):
        await manager.open_driver()
        with pytest.raises(RPCError) as exc_info:
            await manager.get_potential()
        assert exc_info.value.tag == CONSTS.ERR.DEVICE_ABSENT


class TestSessionOverServer:
    @pytest.mark.asyncio
    async def test_full_session(self, manager, server):
        driver, _ = server
        async with Session(manager, period=0.05) as session:
            assert await session.controller.open_driver()
            assert await session.controller.connect_device(True)
            assert await session.controller.set_cell_status(True)
            assert driver.cell_is_on
            for _ in range(100):
                if session.reading.fresh:
                    break
                await asyncio.sleep(0.02)
            assert session.reading.fresh
            assert session.view().potential_text is not None
        assert not driver.is_connected()

    @pytest.mark.asyncio
    async def test_unplug_mid_session(self, manager, server):
        driver, _ = server
        async with Session(manager, period=0.05) as session:
            await session.controller.open_driver()
            await session.controller.connect_device(True)
            driver.unplug()
            for _ in range(100):
                if not session.state.device_connected:
                    break
                await asyncio.sleep(0.02)
            state = session.state
            assert state.device_status == DEVICE_STATUS.NOT_AVAILABLE
            assert state.driver_status == DRIVER_STATUS.RUNNING
            assert not session.poller.active

            driver.plug()
            assert await session.controller.connect_device(True)
            assert session.poller.active

    @pytest.mark.asyncio
    async def test_software_closed_mid_session(self, manager, server):
        driver, _ = server
        async with Session(manager, period=0.05) as session:
            await session.controller.open_driver()
            await session.controller.connect_device(True)
            await session.controller.set_cell_status(True)
            driver.stop_software()
            assert not await session.controller.set_cell_status(False)
            state = session.state
            assert state.driver_status == DRIVER_STATUS.NOT_RUNNING
            assert not state.device_connected
            assert not state.cell_on
            assert session.view().show_start_screen
