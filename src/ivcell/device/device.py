"""Device base class for driver backends.

A backend subclasses `Device` and implements the methods of
`ivcell.types.DriverProtocol`. Configuration is passed as keyword arguments
and checked against `required_config`.
"""

from __future__ import annotations

from typing import Type

from loguru import logger


class Device:
    """Base class for driver backends.

    Attributes
    ----------
    required_config : dict[str, Type]
        Required configuration parameters and their types
    """

    required_config: dict[str, Type] = {}

    def __init__(self, **config_kwargs):
        for key, value in config_kwargs.items():
            setattr(self, key, value)
        for key, value in self.required_config.items():
            if not hasattr(self, key):
                logger.error(
                    f"Device {self.__class__.__name__} missing required config key: "
                    + f"{key}"
                )
                raise ValueError(
                    f"Device {self.__class__.__name__} missing required config "
                    + f"key: {key}"
                )
            if not isinstance(getattr(self, key), value):
                logger.error(
                    f"Device {self.__class__.__name__} config key {key} "
                    + f"has wrong type: {type(getattr(self, key))} (expected {value})"
                )
                raise ValueError(
                    f"Device {self.__class__.__name__} config key {key} has "
                    + f"wrong type: {type(getattr(self, key))} (expected {value})"
                )

    def open(self) -> tuple[bool, str]:
        raise NotImplementedError()

    def close(self):
        raise NotImplementedError()

    def is_connected(self) -> bool:
        raise NotImplementedError()
