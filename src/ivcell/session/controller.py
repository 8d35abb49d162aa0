"""
Transition controller for one instrument session.

The controller exposes the user-invocable transitions (open/close driver,
connect/disconnect device, cell on/off), awaits each remote call through a
`SessionGateway` and updates the `SessionState` it owns. Failures go through
`ivcell.session.classifier` and are never re-raised.

Transitions may overlap: each one counts itself in `SessionState.in_flight` for
its duration, so `mutation_in_flight` covers all of them.

Examples
--------
```python
controller = SessionController(manager)  # manager: ConnectionManager
await controller.open_driver()
await controller.connect_device(True)
await controller.set_cell_status(True)
controller.state.cell_on
```
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Callable, Union

from loguru import logger

from ivcell.session import classifier
from ivcell.session.state import (
    DEVICE_STATUS,
    DRIVER_STATUS,
    SessionSnapshot,
    SessionState,
)
from ivcell.types import SessionGateway

StateListener = Callable[[SessionSnapshot], None]


class SessionController:
    def __init__(self, gateway: SessionGateway):
        self._gateway = gateway
        self._state = SessionState()
        self._listeners: list[StateListener] = []

    @property
    def gateway(self) -> SessionGateway:
        return self._gateway

    @property
    def state(self) -> SessionSnapshot:
        """Snapshot of the current session state."""
        return self._state.snapshot()

    # ========================================================================
    # listeners
    # ========================================================================

    def add_listener(self, listener: StateListener) -> None:
        """Call `listener(snapshot)` after every state change."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        snapshot = self._state.snapshot()
        logger.trace("Session state: {}", snapshot)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session state listener {} failed.", listener)

    @asynccontextmanager
    async def _in_flight(self, operation: str):
        self._state.in_flight[operation] = self._state.in_flight.get(operation, 0) + 1
        self._notify()
        try:
            yield
        finally:
            self._state.in_flight[operation] -= 1
            self._notify()

    # ========================================================================
    # failures
    # ========================================================================

    def apply_failure(self, failure: Union[str, BaseException]) -> classifier.Recovery:
        """Classify a failed remote call and apply the recovery to the state."""
        recovery = classifier.apply_failure(self._state, failure)
        logger.warning(
            "Remote call failed [{}]: {}",
            classifier.failure_tag(failure),
            failure,
        )
        self._notify()
        return recovery

    # ========================================================================
    # transitions
    # ========================================================================

    async def open_driver(self) -> bool:
        """Open the driver. Returns True on success."""
        return await self._driver_call("open_driver", self._gateway.open_driver)

    async def close_driver(self) -> bool:
        """Close the driver. Same outcome mapping as `open_driver`.

        A driver that is not running stays `not-running` only because the
        backend rejects the close (`MockIviumDriver.close_driver` raises
        `NoIviumsoftRunningError`); a close that succeeds reports `running`.
        """
        return await self._driver_call("close_driver", self._gateway.close_driver)

    async def _driver_call(self, operation: str, call) -> bool:
        async with self._in_flight(operation):
            try:
                await call()
            except Exception as e:
                logger.warning("{} failed: {}", operation, e)
                # a driver that is not running has no device or cell behind it
                self._state.driver_status = DRIVER_STATUS.NOT_RUNNING
                self._state.device_connected = False
                self._state.cell_on = False
                return False
            logger.info("{} ok, driver running.", operation)
            self._state.driver_status = DRIVER_STATUS.RUNNING
            return True

    async def connect_device(self, checked: bool) -> bool:
        """Connect (`checked`) or disconnect the instrument. Returns True on success.

        Refused without a remote call while the driver is not running.
        """
        if not self._state.driver_running:
            logger.warning(
                "Refusing device {}: driver is {}.",
                "connect" if checked else "disconnect",
                self._state.driver_status,
            )
            return False
        operation = "connect_device" if checked else "disconnect_device"
        call = self._gateway.connect_device if checked else self._gateway.disconnect_device
        async with self._in_flight(operation):
            try:
                await call()
            except Exception as e:
                self.apply_failure(e)
                return False
            logger.info("{} ok.", operation)
            if checked and not self._state.driver_running:
                logger.warning("Driver lost while connecting, device left disconnected.")
                return False
            self._state.device_status = DEVICE_STATUS.AVAILABLE
            self._state.device_connected = checked
            if not checked:
                # the instrument releases the cell with the link
                self._state.cell_on = False
            return True

    async def set_cell_status(self, checked: bool) -> bool:
        """Switch the cell on (`checked`) or off. Returns True on success.

        Refused without a remote call while no device is connected.
        """
        if not self._state.device_connected:
            logger.warning(
                "Refusing cell {}: no device connected.", "on" if checked else "off"
            )
            return False
        operation = "set_cell_on" if checked else "set_cell_off"
        call = self._gateway.set_cell_on if checked else self._gateway.set_cell_off
        async with self._in_flight(operation):
            try:
                await call()
            except Exception as e:
                self.apply_failure(e)
                return False
            logger.info("{} ok.", operation)
            if checked and not self._state.device_connected:
                logger.warning("Device lost while switching the cell on.")
                return False
            self._state.cell_on = checked
            return True
