"""Presentation shape derived from the session state and latest reading."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ivcell.session.poller import Reading
from ivcell.session.state import DEVICE_STATUS, DRIVER_STATUS, SessionSnapshot
from ivcell.util import POTENTIAL_DECIMALS

CONNECT_APP_LABEL = "Connect App to IviumSoft"
DRIVER_NOT_RUNNING_MSG = (
    "Iviumsoft is not running. Please launch the software and try connecting again."
)
DEVICE_NOT_FOUND_MSG = (
    "Device not found. Please, check your device is connected via usb and try again."
)


@dataclass(frozen=True)
class SessionView:
    show_start_screen: bool
    driver_message: Optional[str]
    device_switch_enabled: bool
    cell_switch_enabled: bool
    device_error_text: Optional[str]
    busy: bool
    device_connected: bool
    cell_on: bool
    potential_text: Optional[str]
    potential_fresh: bool


def format_potential(value: float, decimals: int = POTENTIAL_DECIMALS) -> str:
    """Fixed-point text of a potential, e.g. 0.00042315 -> "0.00042315"."""
    return f"{value:.{decimals}f}"


def session_view(
    state: SessionSnapshot, reading: Optional[Reading] = None
) -> SessionView:
    if reading is None:
        reading = Reading()
    running = state.driver_status == DRIVER_STATUS.RUNNING
    busy = state.mutation_in_flight
    return SessionView(
        show_start_screen=not running,
        driver_message=(
            DRIVER_NOT_RUNNING_MSG
            if state.driver_status == DRIVER_STATUS.NOT_RUNNING
            else None
        ),
        device_switch_enabled=running and not busy,
        cell_switch_enabled=running and state.device_connected and not busy,
        device_error_text=(
            DEVICE_NOT_FOUND_MSG
            if state.device_status == DEVICE_STATUS.NOT_AVAILABLE
            else None
        ),
        busy=busy,
        device_connected=state.device_connected,
        cell_on=state.cell_on,
        potential_text=(
            format_potential(reading.value) if reading.value is not None else None
        ),
        potential_fresh=reading.fresh,
    )
