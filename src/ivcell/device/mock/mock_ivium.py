from __future__ import annotations

import numpy.random
from loguru import logger

from ivcell.device.device import Device
from ivcell.device.errors import (
    DeviceNotConnectedToIviumsoftError,
    NoDeviceDetectedError,
    NoIviumsoftRunningError,
)


class MockIviumDriver(Device):  # DriverProtocol compliance checked by get_driver
    """Simulated IviumSoft driver with one instrument.

    `software_running` and `device_plugged` model the real world; the simulation
    helpers (`stop_software`, `unplug` etc.) flip them mid-session.
    """

    required_config = {"software_running": bool, "device_plugged": bool}

    def __init__(self, **config):
        config.setdefault("software_running", True)
        config.setdefault("device_plugged", True)
        config.setdefault("cell_setpoint", 0.0)  # volts, applied while cell is on
        config.setdefault("noise", 5e-5)  # volts, std dev
        config.setdefault("seed", None)
        super().__init__(**config)
        self._rng = numpy.random.default_rng(self.seed)
        self._handle_open = False
        self._device_connected = False
        self._cell_on = False

    # Device lifecycle

    def open(self):
        return True, "MockIviumDriver ready"

    def close(self):
        self._handle_open = False

    def is_connected(self) -> bool:
        return self._handle_open

    # DriverProtocol

    def open_driver(self) -> None:
        if not self.software_running:
            raise NoIviumsoftRunningError("IviumSoft is not running.")
        self._handle_open = True

    def close_driver(self) -> None:
        if not self.software_running:
            raise NoIviumsoftRunningError("IviumSoft is not running.")
        self._handle_open = False

    def connect_device(self) -> None:
        self._require_driver()
        if not self.device_plugged:
            raise NoDeviceDetectedError("No Ivium device detected.")
        self._device_connected = True

    def disconnect_device(self) -> None:
        self._require_driver()
        # the instrument switches the cell off when it is released
        self._device_connected = False
        self._cell_on = False

    def set_cell_on(self) -> None:
        self._require_device()
        self._cell_on = True

    def set_cell_off(self) -> None:
        self._require_device()
        self._cell_on = False

    def get_potential(self) -> float:
        self._require_device()
        base = self.cell_setpoint if self._cell_on else 0.0
        return base + float(self._rng.normal(0.0, self.noise))

    # simulation helpers

    def stop_software(self) -> None:
        logger.info("MockIviumDriver: IviumSoft stopped.")
        self.software_running = False
        self._handle_open = False
        self._device_connected = False
        self._cell_on = False

    def start_software(self) -> None:
        logger.info("MockIviumDriver: IviumSoft started.")
        self.software_running = True

    def unplug(self) -> None:
        logger.info("MockIviumDriver: device unplugged.")
        self.device_plugged = False

    def plug(self) -> None:
        logger.info("MockIviumDriver: device plugged in.")
        self.device_plugged = True

    @property
    def cell_is_on(self) -> bool:
        return self._cell_on

    @property
    def device_is_connected(self) -> bool:
        return self._device_connected

    def _require_driver(self) -> None:
        if not self.software_running or not self._handle_open:
            raise NoIviumsoftRunningError("IviumSoft is not running.")

    def _require_device(self) -> None:
        self._require_driver()
        if not self.device_plugged:
            # the link drops with the cable
            self._device_connected = False
            self._cell_on = False
        if not self._device_connected:
            raise DeviceNotConnectedToIviumsoftError(
                "Device is not connected to IviumSoft."
            )
