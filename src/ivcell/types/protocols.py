"""Protocols at the two seams of the system.

`DriverProtocol` is what the server needs from a vendor driver backend (the real
IviumSoft bindings or `ivcell.device.MockIviumDriver`). Every method either
succeeds or raises; the server turns exceptions into tagged error responses.

`SessionGateway` is what the session controller and poller need from the RPC
side. `ivcell.server.ConnectionManager` implements it over ZeroMQ; tests use
in-memory fakes. Every coroutine either returns or raises `ivcell.types.RPCError`
(or any other exception, which is then treated as unclassified).
"""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, runtime_checkable


@runtime_checkable
class DriverProtocol(Protocol):
    """Methods required of a driver backend."""

    open_driver: Callable[[], None]
    """Acquire the (exclusive) driver handle."""

    close_driver: Callable[[], None]
    """Release the driver handle."""

    connect_device: Callable[[], None]
    """Link the driver to the physical instrument."""

    disconnect_device: Callable[[], None]
    """Unlink the instrument from the driver."""

    set_cell_on: Callable[[], None]
    """Energise the cell."""

    set_cell_off: Callable[[], None]
    """De-energise the cell."""

    get_potential: Callable[[], float]
    """Read the present potential in volts."""


@runtime_checkable
class SessionGateway(Protocol):
    """Remote operations used by the session core."""

    open_driver: Callable[[], Awaitable[str]]
    close_driver: Callable[[], Awaitable[str]]
    connect_device: Callable[[], Awaitable[str]]
    disconnect_device: Callable[[], Awaitable[str]]
    set_cell_on: Callable[[], Awaitable[str]]
    set_cell_off: Callable[[], Awaitable[str]]
    get_potential: Callable[[], Awaitable[float]]
