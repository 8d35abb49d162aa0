"""One-shot end-of-session hook."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from loguru import logger


class TeardownHook:
    """Holds a single async callback and fires it at most once.

    A second `register` is ignored, as is a second `fire`.
    """

    def __init__(self):
        self._callback: Optional[Callable[[], Awaitable[object]]] = None
        self._fired = False

    @property
    def registered(self) -> bool:
        return self._callback is not None

    @property
    def fired(self) -> bool:
        return self._fired

    def register(self, callback: Callable[[], Awaitable[object]]) -> bool:
        """Register the teardown callback. Returns False if one is already set."""
        if self._callback is not None:
            logger.warning("Teardown hook already registered, ignoring {}.", callback)
            return False
        self._callback = callback
        return True

    async def fire(self) -> bool:
        """Run the callback unless it already ran. Returns True if it ran now."""
        if self._fired:
            logger.debug("Teardown hook already fired.")
            return False
        if self._callback is None:
            logger.warning("Teardown hook fired with nothing registered.")
            return False
        self._fired = True
        logger.info("Session teardown.")
        await self._callback()
        return True
