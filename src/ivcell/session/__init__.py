# -*- coding: utf-8 -*-
"""
Instrument session core.

Tracks driver availability, device connection and cell energisation for one
session against an IviumSoft server, drives the transitions through a
`SessionGateway`, classifies failures and polls the cell potential while the
session allows it.

Examples
--------
```python
from ivcell.server import ConnectionManager
from ivcell.session import Session

manager = ConnectionManager()
await manager.connect()
async with Session(manager) as session:
    await session.controller.open_driver()
    await session.controller.connect_device(True)
    ...
    print(session.view().potential_text)
# driver closed here, exactly once
```

See Also
--------
ivcell.session.controller : Transitions
ivcell.session.classifier : Failure classification
ivcell.session.poller : Measurement poller
ivcell.session.view : Presentation shape
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from ivcell.types import SessionGateway
from ivcell.util import DEFAULT_POLL_PERIOD

from .classifier import Recovery, apply_failure, classify, failure_tag
from .controller import SessionController
from .poller import MeasurementPoller, Reading
from .state import DEVICE_STATUS, DRIVER_STATUS, SessionSnapshot, SessionState
from .teardown import TeardownHook
from .view import SessionView, format_potential, session_view


class Session:
    """State, controller, poller and teardown hook of one session.

    The teardown hook is registered here, once; `close()` (or leaving the
    `async with` block) fires it, which stops polling and closes the driver.
    """

    def __init__(
        self,
        gateway: SessionGateway,
        period: float = DEFAULT_POLL_PERIOD,
        teardown: Optional[TeardownHook] = None,
    ):
        self.controller = SessionController(gateway)
        self.poller = MeasurementPoller(self.controller, period=period)
        self.teardown = teardown if teardown is not None else TeardownHook()
        if not self.teardown.register(self._end):
            raise RuntimeError("Teardown hook belongs to another session.")

    @property
    def state(self) -> SessionSnapshot:
        return self.controller.state

    @property
    def reading(self) -> Reading:
        return self.poller.reading

    def view(self) -> SessionView:
        return session_view(self.state, self.reading)

    async def _end(self) -> None:
        await self.poller.close()
        ok = await self.controller.close_driver()
        logger.info("Driver closed at session end: {}", ok)

    async def close(self) -> bool:
        return await self.teardown.fire()

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


__all__ = [
    "DEVICE_STATUS",
    "DRIVER_STATUS",
    "MeasurementPoller",
    "Reading",
    "Recovery",
    "Session",
    "SessionController",
    "SessionSnapshot",
    "SessionState",
    "SessionView",
    "TeardownHook",
    "apply_failure",
    "classify",
    "failure_tag",
    "format_potential",
    "session_view",
]
