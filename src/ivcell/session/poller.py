"""
Measurement poller.

Reads the cell potential every `period` seconds while the session allows it
(driver running, device connected, no transition in flight). The poller is a
level-triggered supervisor: it re-evaluates that condition on every session
state change, starting a poll task when it turns true and stopping it when it
turns false.

Requests already sent are never cancelled. Each poll task carries a generation
number; a result that arrives after its generation was superseded is dropped.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Callable, Optional

from loguru import logger

from ivcell.session.controller import SessionController
from ivcell.session.state import SessionSnapshot
from ivcell.types import SessionGateway
from ivcell.util import DEFAULT_POLL_PERIOD


@dataclass(frozen=True)
class Reading:
    """Latest potential (volts). `fresh` is False once polling has stopped."""

    value: Optional[float] = None
    fresh: bool = False


ReadingListener = Callable[[Reading], None]


class MeasurementPoller:
    """Poll `get_potential` through the controller's gateway.

    Parameters
    ----------
    controller : SessionController
        Session whose state gates polling. Failed polls are applied through it.
    period : float, optional
        Seconds between polls (and before the first one), by default
        DEFAULT_POLL_PERIOD.
    gateway : SessionGateway, optional
        Defaults to the controller's gateway.

    Built inside a running event loop, the poller starts at once if the session
    is already ready to poll.
    """

    def __init__(
        self,
        controller: SessionController,
        period: float = DEFAULT_POLL_PERIOD,
        gateway: Optional[SessionGateway] = None,
    ):
        if period <= 0:
            raise ValueError(f"Poll period must be positive, got {period}")
        self._controller = controller
        self._gateway = gateway if gateway is not None else controller.gateway
        self.period = period
        self._reading = Reading()
        self._listeners: list[ReadingListener] = []
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._requesting: Optional[asyncio.Task] = None  # poll task with a request out
        self._closed = False
        controller.add_listener(self._on_state_change)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # no loop yet, the next state change starts polling
            return
        self.evaluate()

    @property
    def reading(self) -> Reading:
        return self._reading

    @property
    def active(self) -> bool:
        return self._task is not None

    @property
    def generation(self) -> int:
        return self._generation

    def add_listener(self, listener: ReadingListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ReadingListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, reading: Reading) -> None:
        self._reading = reading
        for listener in list(self._listeners):
            try:
                listener(reading)
            except Exception:
                logger.exception("Reading listener {} failed.", listener)

    # ========================================================================
    # supervision
    # ========================================================================

    def _on_state_change(self, state: SessionSnapshot) -> None:
        self.evaluate(state)

    def evaluate(self, state: Optional[SessionSnapshot] = None) -> None:
        """Start or stop polling to match the session state."""
        if self._closed:
            return
        if state is None:
            state = self._controller.state
        if state.poll_ready and self._task is None:
            self._start()
        elif not state.poll_ready and self._task is not None:
            self._stop()

    def _start(self) -> None:
        self._generation += 1
        previous = self._requesting
        logger.debug("Polling started (generation {}).", self._generation)
        self._task = asyncio.get_running_loop().create_task(
            self._poll_loop(self._generation, previous),
            name=f"ivcell-poll-{self._generation}",
        )

    def _stop(self) -> None:
        task, self._task = self._task, None
        stopped = self._generation
        self._generation += 1
        logger.debug("Polling stopped (generation {}).", stopped)
        if task is not None and task is not self._requesting:
            task.cancel()
        if self._reading.fresh:
            self._publish(replace(self._reading, fresh=False))

    async def _poll_loop(
        self, generation: int, previous: Optional[asyncio.Task] = None
    ) -> None:
        while generation == self._generation:
            await asyncio.sleep(self.period)
            if previous is not None:
                # polls are strictly sequential
                await asyncio.wait({previous})
                previous = None
            if generation != self._generation:
                return
            self._requesting = asyncio.current_task()
            try:
                try:
                    value = await self._gateway.get_potential()
                except Exception as e:
                    if generation != self._generation:
                        logger.debug("Dropping stale poll failure: {}", e)
                        return
                    logger.warning("Potential poll failed: {}", e)
                    self._controller.apply_failure(e)
                    continue
                if generation != self._generation:
                    logger.debug("Dropping stale potential reading {}", value)
                    return
                logger.trace("Potential: {}", value)
                self._publish(Reading(value=float(value), fresh=True))
            finally:
                self._requesting = None

    async def close(self) -> None:
        """Stop polling for good and wait for any outstanding request."""
        self._closed = True
        self._controller.remove_listener(self._on_state_change)
        task = self._requesting
        if self._task is not None:
            self._stop()
        if task is not None and not task.done():
            await asyncio.wait({task})
