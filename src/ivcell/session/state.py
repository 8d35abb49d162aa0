"""The three-layer readiness model of one instrument session.

driver running -> device connected -> cell on, plus a derived
`mutation_in_flight` flag. The record is owned by
`ivcell.session.controller.SessionController`; everything else reads snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import SimpleNamespace

DRIVER_STATUS = SimpleNamespace(
    RUNNING="running",
    NOT_RUNNING="not-running",
    UNKNOWN="unknown",
)

DEVICE_STATUS = SimpleNamespace(
    AVAILABLE="available",
    NOT_AVAILABLE="not-available",
    UNKNOWN="unknown",
)


@dataclass
class SessionState:
    """Mutable session record.

    Attributes
    ----------
    driver_status : str
        One of `DRIVER_STATUS`. Unknown at start and after an unclassified failure.
    device_status : str
        One of `DEVICE_STATUS`. Last known reachability of the instrument,
        independent of whether the session chose to connect.
    device_connected : bool
        True between a successful connect and the next disconnect (or a failure
        implying one).
    cell_on : bool
        True between a successful cell-on and the next cell-off (or a failure
        implying one).
    in_flight : dict[str, int]
        Number of outstanding calls per mutating operation.
    """

    driver_status: str = DRIVER_STATUS.UNKNOWN
    device_status: str = DEVICE_STATUS.UNKNOWN
    device_connected: bool = False
    cell_on: bool = False
    in_flight: dict[str, int] = field(default_factory=dict)

    @property
    def mutation_in_flight(self) -> bool:
        return any(count > 0 for count in self.in_flight.values())

    @property
    def driver_running(self) -> bool:
        return self.driver_status == DRIVER_STATUS.RUNNING

    @property
    def poll_ready(self) -> bool:
        """Whether the measurement poller may run."""
        return self.driver_running and self.device_connected and not self.mutation_in_flight

    def invariant_holds(self) -> bool:
        """cell on => device connected => driver running."""
        if self.cell_on and not self.device_connected:
            return False
        if self.device_connected and not self.driver_running:
            return False
        return True

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            driver_status=self.driver_status,
            device_status=self.device_status,
            device_connected=self.device_connected,
            cell_on=self.cell_on,
            mutation_in_flight=self.mutation_in_flight,
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only copy of `SessionState` handed to listeners and views."""

    driver_status: str = DRIVER_STATUS.UNKNOWN
    device_status: str = DEVICE_STATUS.UNKNOWN
    device_connected: bool = False
    cell_on: bool = False
    mutation_in_flight: bool = False

    @property
    def driver_running(self) -> bool:
        return self.driver_status == DRIVER_STATUS.RUNNING

    @property
    def poll_ready(self) -> bool:
        return self.driver_running and self.device_connected and not self.mutation_in_flight
