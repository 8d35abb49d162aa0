# -*- coding: utf-8 -*-
"""
Driver backends for ivcell.

The server talks to IviumSoft through a backend implementing
`ivcell.types.DriverProtocol`. Backends are looked up by system name.

Examples
--------
```python
from ivcell.device import get_driver
driver = get_driver("mock")
driver.open_driver()
driver.connect_device()
```

See Also
--------
ivcell.server.server : Request handlers calling the backend
ivcell.device.errors : Driver exceptions and their failure categories
"""

from loguru import logger

from ivcell.types import DriverProtocol

from .device import Device
from .errors import (
    DeviceNotConnectedToIviumsoftError,
    IviumDriverError,
    NoDeviceDetectedError,
    NoIviumsoftRunningError,
    error_tag,
)
from .mock import MockIviumDriver

DRIVER_TYPES: dict[str, type[Device]] = {
    "mock": MockIviumDriver,
}


def get_driver(system_name: str, **config) -> Device:
    """Build the driver backend registered under `system_name`.

    Raises
    ------
    ValueError
        If no backend is registered under that name, or it does not implement
        `DriverProtocol`.
    """
    name = str(system_name).lower()
    if name not in DRIVER_TYPES:
        logger.error("System {} not found.", name)
        raise ValueError(f"System {name} not found.")
    driver = DRIVER_TYPES[name](**config)
    if not isinstance(driver, DriverProtocol):
        raise ValueError(
            f"{driver.__class__.__name__} does not implement DriverProtocol."
        )
    return driver


__all__ = [
    "DRIVER_TYPES",
    "Device",
    "DeviceNotConnectedToIviumsoftError",
    "IviumDriverError",
    "MockIviumDriver",
    "NoDeviceDetectedError",
    "NoIviumsoftRunningError",
    "error_tag",
    "get_driver",
]
