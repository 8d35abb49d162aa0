# -*- coding: utf-8 -*-
"""
Server implementation of the client-server interface.

The server uses a decorator-based framework to maintain correspondence with client functions:

1. Each handler is decorated with @handler to specify which client functions it handles
2. The handler decorator adds the mapping to the central registry
3. Handlers receive the server connection, the driver backend and the client request
4. Handlers use the _send_response helper to reply to clients
5. The request_router maps incoming requests to the appropriate handler

Driver exceptions never escape a handler: they are answered with an ErrorResponse
whose `tag` is the failure category (see ivcell.device.errors).

The protocol correspondence can be validated using:
assert_valid_handler_client_correspondence()
"""
# ============================================================================

import asyncio
from datetime import datetime
from functools import wraps
from typing import Awaitable, Callable

import zmq
import zmq.asyncio
from loguru import logger
from setproctitle import setproctitle

# ============================================================================
import ivcell
import ivcell.util
from ivcell.device import Device, error_tag, get_driver
from ivcell.types import (
    CONSTS,
    HANDLER_REGISTRY,
    ClientSyncResponse,
    ErrorResponse,
    FloatResponse,
    HandlerInfo,
    MsgResponse,
    Request,
    Response,
    ServerConnection,
    ValueResponse,
)
from ivcell.util import (
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_PORT,
    format_error_response,
)

SHUTDOWN_GRACE = 0.2  # seconds for the client to read the shutdown reply

Handler = Callable[[ServerConnection, bytes, Device, Request], Awaitable[None]]

# ============================================================================


async def _send_response(
    server_connection: ServerConnection, req_identity: bytes, response: Response
):
    logger.debug("*RESPONSE* (server->): {}", response)
    await server_connection.msg_socket.send_multipart(
        [req_identity, b"", response.to_msgpack()]
    )


def _driver_error_response(exc: BaseException) -> ErrorResponse:
    tag = error_tag(exc)
    if tag == CONSTS.ERR.OTHER:
        logger.exception("Unexpected driver error.")
    else:
        logger.warning("Driver error [{}]: {}", tag, exc)
    return ErrorResponse(value=format_error_response(), tag=tag)


# ============================================================================


async def client_handler(server_connection: ServerConnection, driver: Device):
    while not server_connection.shutdown_requested:
        # poll so the shutdown flag is checked regularly
        if not await server_connection.msg_socket.poll(100, zmq.POLLIN):
            continue
        (
            req_identity,
            empty,
            req,
        ) = await server_connection.msg_socket.recv_multipart()
        try:
            request = Request.from_msgpack(req)
        except Exception:
            logger.exception("Request unpacking error:")
            await _send_response(
                server_connection,
                req_identity,
                ErrorResponse(value=format_error_response()),
            )
            continue

        try:
            await request_router(server_connection, req_identity, driver, request)
        except Exception:
            logger.exception("Uncaught error in request_router.")
            await _send_response(
                server_connection,
                req_identity,
                ErrorResponse(value=format_error_response()),
            )

    logger.info("Client handler exiting due to shutdown request")


# ============================================================================


def open_server_connection(
    host: str = DEFAULT_HOST_ADDR, msg_port: int = DEFAULT_PORT
) -> tuple[zmq.asyncio.Context, ServerConnection]:
    """Bind the ROUTER socket. `msg_port=0` binds a random free port."""
    try:
        context = zmq.asyncio.Context()
        msg_socket = context.socket(zmq.ROUTER)
        if msg_port == 0:
            msg_port = msg_socket.bind_to_random_port(f"tcp://{host}")
        else:
            msg_socket.bind(f"tcp://{host}:{msg_port}")
        server_connection = ServerConnection(
            msg_socket=msg_socket, host=host, msg_port=msg_port
        )
    except Exception as e:
        logger.exception("Error opening server-side connection.")
        raise e
    logger.info("Msg server bound on {}:{}", host, msg_port)
    return context, server_connection


async def serve(
    context: zmq.asyncio.Context,
    server_connection: ServerConnection,
    driver: Device,
):
    """Answer requests until shutdown, then release the driver and sockets."""
    try:
        await client_handler(server_connection, driver)
    finally:
        try:
            if driver.is_connected():
                logger.info("Driver handle still open, releasing it.")
            driver.close()
        except Exception:
            logger.exception("Error closing driver, continuing.")
        server_connection.msg_socket.setsockopt(zmq.LINGER, 0)
        server_connection.msg_socket.close()
        context.term()
        logger.info("Server stopped.")


async def start_server(
    system_name: str,
    host: str = DEFAULT_HOST_ADDR,
    msg_port: int = DEFAULT_PORT,
    log_to_file: bool = True,
    log_to_stdout: bool = False,
    log_path: str = "",
    clear_prev_log: bool = True,
    log_level: str = DEFAULT_LOGLEVEL,
):
    # Format: "ivcell-server_2024-01-20_15:30:45"
    timestamp = datetime.now().strftime("%Y-%m-%d_%H:%M:%S")
    setproctitle(f"ivcell-server_{timestamp}")

    ivcell.util.start_server_log(
        log_to_file=log_to_file,
        log_to_stdout=log_to_stdout,
        log_path=log_path,
        clear_prev=clear_prev_log,
        log_level=log_level,
    )

    logger.info("Opening driver backend for system {}", system_name)
    driver = get_driver(system_name)
    ok, msg = driver.open()
    logger.info("Driver backend open: {} ({})", ok, msg)
    driver.system_name = str(system_name).lower()

    context, server_connection = open_server_connection(host, msg_port)
    await serve(context, server_connection, driver)


# ============================================================================


def get_router_map() -> dict[str, Handler]:
    return {
        CONSTS.COMMS.PING: handle_ping,
        CONSTS.COMMS.SHUTDOWN: handle_shutdown,
        CONSTS.COMMS.ECHO: handle_echo,
        CONSTS.COMMS.GET_SERVER_LOG_PATH: handle_get_server_log_path,
        CONSTS.COMMS.CLIENT_SYNC: handle_client_sync,
        # DRIVER
        CONSTS.DRIVER.OPEN: handle_open_driver,
        CONSTS.DRIVER.CLOSE: handle_close_driver,
        # DEVICE
        CONSTS.DEVICE.CONNECT: handle_connect_device,
        CONSTS.DEVICE.DISCONNECT: handle_disconnect_device,
        # CELL
        CONSTS.CELL.ON: handle_set_cell_on,
        CONSTS.CELL.OFF: handle_set_cell_off,
        # DIRECT
        CONSTS.DIRECT.GET_POTENTIAL: handle_get_potential,
    }


# this function is essentially the 'server'
async def request_router(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    logger.debug("*REQUEST* (server<-): {}", request)
    try:
        handler_func = get_router_map()[request.command]
    except KeyError:
        logger.error("Unknown request: {}", request.command)
        await _send_response(
            server_connection,
            req_identity,
            ErrorResponse(value=f"Unknown request: {request.command}"),
        )
        return
    await handler_func(server_connection, req_identity, driver, request)


# ============================================================================
# ============== Handlers
# ============================================================================


def handler(command: str, *client_methods: str) -> Callable[[Handler], Handler]:
    """Decorator that registers a server handler and its client functions.

    Args:
        command: The command string that identifies this handler
        *client_methods: Names of client functions that use this handler

    Example:
        @handler(CONSTS.CELL.ON, "set_cell_on")
        async def handle_set_cell_on(...):
            ...
    """

    def decorator(func: Handler) -> Handler:
        HANDLER_REGISTRY[command] = HandlerInfo(
            handler_func=func,
            client_methods=list(client_methods),
            command=command,
        )

        @wraps(func)
        async def wrapper(
            server_connection: ServerConnection,
            req_identity: bytes,
            driver: Device,
            request: Request,
        ) -> None:
            await func(server_connection, req_identity, driver, request)

        return wrapper

    return decorator


async def _driver_action(
    server_connection: ServerConnection,
    req_identity: bytes,
    action: Callable[[], None],
    done_msg: str,
):
    """Run a driver call answering MsgResponse(done_msg) or a tagged ErrorResponse."""
    try:
        action()
    except Exception as e:
        await _send_response(server_connection, req_identity, _driver_error_response(e))
        return
    logger.info(done_msg)
    await _send_response(server_connection, req_identity, MsgResponse(value=done_msg))


# ============================================================================


@handler(CONSTS.COMMS.PING, "ping")
async def handle_ping(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    """Handle ping request from client."""
    handles: ivcell.server.client.ping
    await _send_response(
        server_connection, req_identity, MsgResponse(value=CONSTS.COMMS.PONG)
    )


# ============================================================================


@handler(CONSTS.COMMS.SHUTDOWN, "shutdown_server")
async def handle_shutdown(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.shutdown_server
    logger.info("Shutting down server.")
    server_connection.shutdown_requested = True
    await _send_response(
        server_connection, req_identity, MsgResponse(value="Shutting down")
    )
    # give client time to read the response before sockets close
    await asyncio.sleep(SHUTDOWN_GRACE)


# ============================================================================


@handler(CONSTS.COMMS.ECHO, "echo")
async def handle_echo(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.echo
    await _send_response(
        server_connection,
        req_identity,
        ValueResponse(value=request.params.get("msg", "")),
    )


# ============================================================================


@handler(CONSTS.COMMS.GET_SERVER_LOG_PATH, "get_server_log_path")
async def handle_get_server_log_path(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.get_server_log_path
    await _send_response(
        server_connection,
        req_identity,
        ValueResponse(value=ivcell.util.get_log_filename()),
    )


# ============================================================================


@handler(CONSTS.COMMS.CLIENT_SYNC, "client_sync")
async def handle_client_sync(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.client_sync
    await _send_response(
        server_connection,
        req_identity,
        ClientSyncResponse(
            system_name=getattr(driver, "system_name", ""),
            driver_type=driver.__class__.__name__,
            version=ivcell.__version__,
        ),
    )


# ============================================================================


@handler(CONSTS.DRIVER.OPEN, "open_driver")
async def handle_open_driver(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.open_driver
    await _driver_action(
        server_connection, req_identity, driver.open_driver, "Driver opened."
    )


@handler(CONSTS.DRIVER.CLOSE, "close_driver")
async def handle_close_driver(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.close_driver
    await _driver_action(
        server_connection, req_identity, driver.close_driver, "Driver closed."
    )


# ============================================================================


@handler(CONSTS.DEVICE.CONNECT, "connect_device")
async def handle_connect_device(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.connect_device
    await _driver_action(
        server_connection, req_identity, driver.connect_device, "Device connected."
    )


@handler(CONSTS.DEVICE.DISCONNECT, "disconnect_device")
async def handle_disconnect_device(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.disconnect_device
    await _driver_action(
        server_connection,
        req_identity,
        driver.disconnect_device,
        "Device disconnected.",
    )


# ============================================================================


@handler(CONSTS.CELL.ON, "set_cell_on")
async def handle_set_cell_on(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.set_cell_on
    await _driver_action(
        server_connection, req_identity, driver.set_cell_on, "Cell on."
    )


@handler(CONSTS.CELL.OFF, "set_cell_off")
async def handle_set_cell_off(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.set_cell_off
    await _driver_action(
        server_connection, req_identity, driver.set_cell_off, "Cell off."
    )


# ============================================================================


@handler(CONSTS.DIRECT.GET_POTENTIAL, "get_potential")
async def handle_get_potential(
    server_connection: ServerConnection,
    req_identity: bytes,
    driver: Device,
    request: Request,
):
    handles: ivcell.server.client.get_potential
    try:
        potential = driver.get_potential()
    except Exception as e:
        await _send_response(server_connection, req_identity, _driver_error_response(e))
        return
    await _send_response(
        server_connection, req_identity, FloatResponse(value=float(potential))
    )
