# -*- coding: utf-8 -*-
"""
Client implementation of the client-server interface.

The client uses a decorator-based framework to maintain correspondence with server handlers:

1. Each client function is decorated with @command to specify which handler it calls
2. The command decorator records the mapping for later validation
3. Client functions use _send_request to communicate with the server
4. Failures come back as ErrorResponse and are raised as RPCError, carrying the
   failure category tag the session core classifies on

The protocol correspondence can be validated using:
assert_valid_handler_client_correspondence()

See types/ for the message definitions and server.py for the server side.
"""

# ============================================================================

from __future__ import annotations

from functools import wraps
from typing import Any, Awaitable, Callable, Type, TypeVar, Union, cast

import zmq
import zmq.asyncio
from loguru import logger

import ivcell
from ivcell.types import (
    CONSTS,
    PENDING_COMMAND_VALIDATIONS,
    ClientConnection,
    ClientSyncResponse,
    CommsError,
    ErrorResponse,
    FloatResponse,
    MsgResponse,
    Request,
    Response,
    RPCError,
    ValueResponse,
)
from ivcell.util import DEFAULT_HOST_ADDR, DEFAULT_PORT, DEFAULT_RETRIES, DEFAULT_TIMEOUT

# ====================================================================================
# ----------------------------------
# Connection & Message Handling
# ----------------------------------
# ====================================================================================


async def _get_response(
    client_connection: ClientConnection,
    request: Request,
    request_retries: int = DEFAULT_RETRIES,
    timeout: float = DEFAULT_TIMEOUT,
) -> Response:
    """Read a single response from the server.

    Implements a reliable request-reply pattern (ZMQ lazy pirate). It will:
    - Poll the REQ socket and receive only when a reply has arrived
    - Resend the request on a fresh socket if no reply arrives within timeout
    - Abandon the transaction after several failed retries
    - Handle shutdown commands specially, expecting disconnection

    Requests sharing one connection are serialised on its lock, as a REQ socket
    must strictly alternate send and receive.

    Parameters
    ----------
    client_connection : ClientConnection
        The connection object containing the ZMQ socket and connection info
    request : Request
        The request object to send to the server
    request_retries : int, optional
        Number of times to retry before giving up, by default DEFAULT_RETRIES
    timeout : float, optional
        Seconds to wait for each reply, by default DEFAULT_TIMEOUT

    Returns
    -------
    Response
        The response from the server. An ErrorResponse (tag "other") if the server
        appears offline.
    """
    retries_left = request_retries + 1  # (+1 to account for the first attempt)
    is_shutdown_request = request.command == CONSTS.COMMS.SHUTDOWN

    async with client_connection.lock:
        logger.debug("*REQUEST* (client->): {}", request)
        await client_connection.msg_socket.send(request.to_msgpack())
        while True:
            try:
                if await client_connection.msg_socket.poll(
                    1000 * timeout, zmq.POLLIN
                ):
                    resp = await client_connection.msg_socket.recv()
                    resp = Response.from_msgpack(resp)
                    logger.debug("*RESPONSE* (client<-): {}", resp)
                    return resp
            except zmq.ZMQError as e:
                # For shutdown requests, ZMQ errors are expected after response
                if is_shutdown_request:
                    logger.info("Expected ZMQ error after shutdown command")
                    return MsgResponse(value="Server shutting down")
                logger.warning("ZMQ error: {}", e)

            retries_left -= 1
            logger.warning("No response from server...")
            # Socket is confused. Close and remove it.
            client_connection.msg_socket.setsockopt(zmq.LINGER, 0)
            client_connection.msg_socket.close()
            if retries_left == 0:
                logger.error("Server seems to be offline, abandoning.")
                # leave a usable socket behind for the next request
                _reopen_connection(client_connection)
                return ErrorResponse(
                    value="Server seems to be offline.", tag=CONSTS.ERR.OTHER
                )
            logger.info("Reconnecting to server...")
            _reopen_connection(client_connection)
            logger.debug("*REQUEST* (client->): {}", request)
            await client_connection.msg_socket.send(request.to_msgpack())


# ====================================================================================


def _reopen_connection(client_connection: ClientConnection) -> None:
    """Replace the (closed) REQ socket of `client_connection` in-place.

    Raises
    ------
    CommsError
        If the socket cannot be recreated
    """
    logger.info(
        "Reopening connection to server on {}:{}.",
        client_connection.host,
        client_connection.msg_port,
    )
    try:
        client_connection.msg_socket = client_connection.context.socket(zmq.REQ)
        client_connection.msg_socket.connect(
            f"tcp://{client_connection.host}:{client_connection.msg_port}"
        )
    except Exception as e:
        logger.exception("Error during connection reopening.")
        raise CommsError(f"Error during connection reopening: {e}")


# ============================================================================


async def open_connection(
    host: str = DEFAULT_HOST_ADDR,
    msg_port: int = DEFAULT_PORT,
    timeout: float = DEFAULT_TIMEOUT,
    request_retries: int = DEFAULT_RETRIES,
) -> tuple[ClientConnection, ClientSyncResponse]:
    """Establish a connection to the server.

    Connects a REQ socket, confirms the server answers a ping and performs the
    initial client synchronisation.

    Parameters
    ----------
    host : str, optional
        The host address to connect to, by default DEFAULT_HOST_ADDR
    msg_port : int, optional
        Port number for the message socket, by default DEFAULT_PORT
    timeout : float, optional
        Seconds to wait for each reply, by default DEFAULT_TIMEOUT
    request_retries : int, optional
        Number of retry attempts for requests, by default DEFAULT_RETRIES

    Returns
    -------
    tuple[ClientConnection, ClientSyncResponse]
        The established connection and the server's synchronisation response

    Raises
    ------
    CommsError
        If the server does not answer or synchronisation fails
    """
    logger.info("Attempting connection to server on {}:{}.", host, msg_port)
    try:
        context = zmq.asyncio.Context()
        msg_socket = context.socket(zmq.REQ)
        msg_socket.connect(f"tcp://{host}:{msg_port}")
    except Exception as e:
        logger.exception("Error during connection.")
        raise CommsError(f"Error during connection: {e}")
    client_connection = ClientConnection(context, msg_socket, host, msg_port)

    resp = await _get_response(
        client_connection, Request(CONSTS.COMMS.PING), request_retries, timeout
    )
    if isinstance(resp, ErrorResponse) or resp.value != CONSTS.COMMS.PONG:
        logger.error("Bad connection - no response from server.")
        close_connection(client_connection)
        raise CommsError("Bad connection - no response from server.")
    logger.info("Connection confirmed, synchronising.")

    try:
        sync_response = await client_sync(client_connection, request_retries)
    except Exception as e:
        logger.exception("Error during client sync.")
        close_connection(client_connection)
        raise e
    if sync_response.version != ivcell.__version__:
        logger.critical(
            "Client-server version mismatch: {} vs {}",
            ivcell.__version__,
            sync_response.version,
        )
    logger.info("Connection established on {}", host)
    return client_connection, sync_response


# ============================================================================


def close_connection(client_connection: ClientConnection):
    """Close the connection to the server.

    Arguments
    ---------
    client_connection : ClientConnection
        The connection object to close.
    """
    logger.info("Closing connection.")
    try:
        client_connection.msg_socket.setsockopt(zmq.LINGER, 0)
        client_connection.msg_socket.close()
    except zmq.ZMQError as e:
        logger.debug(f"Error closing socket: {e}")

    try:
        client_connection.context.term()
    except Exception as e:
        logger.debug(f"Error terminating ZMQ context: {e}")


# ============================================================================


T = TypeVar("T", bound=Response)


async def _send_request(
    client_connection: ClientConnection,
    request: Request,
    request_retries: int = DEFAULT_RETRIES,
) -> T:
    """Send a request to the server and get a response.

    Raises
    ------
    RPCError
        If the server returns an error (or appears offline)
    """
    resp = await _get_response(client_connection, request, request_retries)
    if isinstance(resp, ErrorResponse):
        logger.warning(
            "Error during {} [{}]: '{}'", request.command, resp.tag, resp.value
        )
        raise RPCError(request.command, resp.tag, resp.value)
    return cast(T, resp)


# ====================================================================================


def command(
    command_str: str, response_type: Type[T] | type[Union[Any, ...]] = "Response"
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[T]]]:
    """Decorator that marks a client function and records its handler mapping.

    Args:
        command_str: The command string that identifies this client function
        response_type: The expected response type from the server or Union of types

    Returns:
        Decorated client function with proper type information
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[T]]:
        # Store for later validation instead of immediate check
        PENDING_COMMAND_VALIDATIONS.append((command_str, func.__name__))

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            result = await func(*args, **kwargs)
            return cast(T, result)

        wrapper._command = command_str
        wrapper._response_type = response_type
        wrapper._is_client_method = True
        return wrapper

    return decorator


# ====================================================================================
# -----------------
# INTERFACE FUNCTIONS
# -----------------
# ====================================================================================

# each of these has a corresponding handler in server.py.

# -------------------------------------------------------------------------------------
# General server comms
# -------------------------------------------------------------------------------------


@command(CONSTS.COMMS.CLIENT_SYNC, response_type=ClientSyncResponse | ErrorResponse)
async def client_sync(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> ClientSyncResponse:
    """Synchronize the client with the server.

    Returns
    -------
    ClientSyncResponse
        The server's synchronization response (system name, driver type, version)
    """
    calls: ivcell.server.server.handle_client_sync
    resp = await _send_request(
        client_connection, Request(CONSTS.COMMS.CLIENT_SYNC), request_retries
    )
    return resp


# ============================================================================


@command(CONSTS.COMMS.PING, response_type=MsgResponse | ErrorResponse)
async def ping(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    """Send ping request to server.

    Returns
    -------
    str
        "pong" if successful, "-1.0" otherwise
    """
    calls: ivcell.server.server.handle_ping
    try:
        await _send_request(
            client_connection, Request(CONSTS.COMMS.PING), request_retries
        )
        return CONSTS.COMMS.PONG
    except Exception:
        logger.exception("Ping failed.")
        return "-1.0"


# ============================================================================


@command(CONSTS.COMMS.ECHO, response_type=ValueResponse | ErrorResponse)
async def echo(
    client_connection: ClientConnection,
    msg: str,
    request_retries: int = DEFAULT_RETRIES,
) -> str:
    """Ask the server to send `msg` back."""
    calls: ivcell.server.server.handle_echo
    resp = await _send_request(
        client_connection, Request(CONSTS.COMMS.ECHO, {"msg": msg}), request_retries
    )
    return resp.value


# ============================================================================


@command(CONSTS.COMMS.GET_SERVER_LOG_PATH, response_type=ValueResponse | ErrorResponse)
async def get_server_log_path(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    """Get the server's log file path ("" if the server logs to stdout only)."""
    calls: ivcell.server.server.handle_get_server_log_path
    resp = await _send_request(
        client_connection, Request(CONSTS.COMMS.GET_SERVER_LOG_PATH), request_retries
    )
    logger.info("Server log path: {}", resp.value)
    return resp.value


# ============================================================================


@command(CONSTS.COMMS.SHUTDOWN, response_type=MsgResponse | ErrorResponse)
async def shutdown_server(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> None:
    """Send shutdown request to server.

    The server closes its socket after answering; the caller should close the
    connection afterwards.
    """
    calls: ivcell.server.server.handle_shutdown
    try:
        # fewer retries since we expect disconnection
        await _send_request(client_connection, Request(CONSTS.COMMS.SHUTDOWN), 1)
        logger.info("Server shutdown initiated successfully")
    except CommsError as e:
        logger.warning("Error during shutdown: {}", e)


# -------------------------------------------------------------------------------------
# Driver, device and cell
# -------------------------------------------------------------------------------------


@command(CONSTS.DRIVER.OPEN, response_type=MsgResponse | ErrorResponse)
async def open_driver(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    """Open the IviumSoft driver handle.

    Raises
    ------
    RPCError
        tag "driver_absent" if IviumSoft is not running.
    """
    calls: ivcell.server.server.handle_open_driver
    resp = await _send_request(
        client_connection, Request(CONSTS.DRIVER.OPEN), request_retries
    )
    return resp.value


@command(CONSTS.DRIVER.CLOSE, response_type=MsgResponse | ErrorResponse)
async def close_driver(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    """Release the IviumSoft driver handle."""
    calls: ivcell.server.server.handle_close_driver
    resp = await _send_request(
        client_connection, Request(CONSTS.DRIVER.CLOSE), request_retries
    )
    return resp.value


# ============================================================================


@command(CONSTS.DEVICE.CONNECT, response_type=MsgResponse | ErrorResponse)
async def connect_device(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    """Link IviumSoft to the instrument.

    Raises
    ------
    RPCError
        tag "device_absent" if no instrument is detected,
        tag "driver_absent" if IviumSoft is not reachable.
    """
    calls: ivcell.server.server.handle_connect_device
    resp = await _send_request(
        client_connection, Request(CONSTS.DEVICE.CONNECT), request_retries
    )
    return resp.value


@command(CONSTS.DEVICE.DISCONNECT, response_type=MsgResponse | ErrorResponse)
async def disconnect_device(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    """Unlink the instrument from IviumSoft."""
    calls: ivcell.server.server.handle_disconnect_device
    resp = await _send_request(
        client_connection, Request(CONSTS.DEVICE.DISCONNECT), request_retries
    )
    return resp.value


# ============================================================================


@command(CONSTS.CELL.ON, response_type=MsgResponse | ErrorResponse)
async def set_cell_on(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    calls: ivcell.server.server.handle_set_cell_on
    resp = await _send_request(
        client_connection, Request(CONSTS.CELL.ON), request_retries
    )
    return resp.value


@command(CONSTS.CELL.OFF, response_type=MsgResponse | ErrorResponse)
async def set_cell_off(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    calls: ivcell.server.server.handle_set_cell_off
    resp = await _send_request(
        client_connection, Request(CONSTS.CELL.OFF), request_retries
    )
    return resp.value


# ============================================================================


@command(CONSTS.DIRECT.GET_POTENTIAL, response_type=FloatResponse | ErrorResponse)
async def get_potential(
    client_connection: ClientConnection, request_retries: int = DEFAULT_RETRIES
) -> float:
    """Read the present cell potential.

    Returns
    -------
    float
        Potential in volts
    """
    calls: ivcell.server.server.handle_get_potential
    resp = await _send_request(
        client_connection, Request(CONSTS.DIRECT.GET_POTENTIAL), request_retries
    )
    return float(resp.value)
