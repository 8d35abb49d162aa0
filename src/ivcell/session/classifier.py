"""Failure classification for remote operations.

Every failed call (mutation or poll) is reduced to its category tag and mapped to
exactly one `Recovery`, which is then applied to the session state:

=================  ===============  ===============  =========  =======
tag                device_status    driver_status    connected  cell_on
=================  ===============  ===============  =========  =======
device_absent      not-available    (untouched)      False      False
driver_absent      unknown          not-running      False      False
anything else      unknown          unknown          False      False
=================  ===============  ===============  =========  =======
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ivcell.session.state import DEVICE_STATUS, DRIVER_STATUS, SessionState
from ivcell.types import CONSTS, RPCError


@dataclass(frozen=True)
class Recovery:
    """State updates for one failure category. `driver_status=None` leaves it as is."""

    device_status: str
    driver_status: Optional[str]
    device_connected: bool = False
    cell_on: bool = False


DEVICE_ABSENT = Recovery(
    device_status=DEVICE_STATUS.NOT_AVAILABLE,
    driver_status=None,
)
DRIVER_ABSENT = Recovery(
    device_status=DEVICE_STATUS.UNKNOWN,
    driver_status=DRIVER_STATUS.NOT_RUNNING,
)
UNCLASSIFIED = Recovery(
    device_status=DEVICE_STATUS.UNKNOWN,
    driver_status=DRIVER_STATUS.UNKNOWN,
)


def failure_tag(failure: Union[str, BaseException]) -> str:
    """Category tag of a failure. Only `RPCError` carries one; other errors are `other`."""
    if isinstance(failure, str):
        return failure
    if isinstance(failure, RPCError):
        return failure.tag
    return CONSTS.ERR.OTHER


def classify(tag: str) -> Recovery:
    if tag == CONSTS.ERR.DEVICE_ABSENT:
        return DEVICE_ABSENT
    if tag == CONSTS.ERR.DRIVER_ABSENT:
        return DRIVER_ABSENT
    return UNCLASSIFIED


def apply_failure(
    state: SessionState, failure: Union[str, BaseException]
) -> Recovery:
    """Classify `failure` (a tag or an exception) and apply the result to `state`."""
    recovery = classify(failure_tag(failure))
    state.device_status = recovery.device_status
    if recovery.driver_status is not None:
        state.driver_status = recovery.driver_status
    state.device_connected = recovery.device_connected
    state.cell_on = recovery.cell_on
    return recovery
