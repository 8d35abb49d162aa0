"""Exceptions raised by driver backends.

Each carries the failure category (`tag`) the server reports to clients. Any other
exception escaping a driver is reported as `CONSTS.ERR.OTHER`.
"""

from __future__ import annotations

from ivcell.types import CONSTS


class IviumDriverError(Exception):
    """Base class for expected driver failures."""

    tag: str = CONSTS.ERR.OTHER


class NoIviumsoftRunningError(IviumDriverError):
    """IviumSoft is not running, or the driver handle is not open."""

    tag = CONSTS.ERR.DRIVER_ABSENT


class NoDeviceDetectedError(IviumDriverError):
    """No instrument detected when trying to connect (e.g. USB unplugged)."""

    tag = CONSTS.ERR.DEVICE_ABSENT


class DeviceNotConnectedToIviumsoftError(IviumDriverError):
    """The instrument is not linked to IviumSoft, so it cannot take commands."""

    tag = CONSTS.ERR.DEVICE_ABSENT


def error_tag(exc: BaseException) -> str:
    """Failure category for any exception raised by a driver."""
    if isinstance(exc, IviumDriverError):
        return exc.tag
    return CONSTS.ERR.OTHER
