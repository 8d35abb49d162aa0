"""
Connection manager for client-side server connections.

This class encapsulates all connection handling and server communication,
providing a clean interface for the rest of the application to use. It is
also the RPC gateway handed to the session core (see
`ivcell.types.SessionGateway`).
"""

from __future__ import annotations

from typing import Any, Optional

from loguru import logger

import ivcell.server.client as client
from ivcell.types import ClientConnection, ClientSyncResponse
from ivcell.util import (
    DEFAULT_HOST_ADDR,
    DEFAULT_PORT,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
)


class ConnectionManager:
    """
    Manages client-side connection to the server.

    This class handles connection lifecycle and state management, while delegating
    protocol operations to the client module functions. It provides a clean OO
    interface by automatically wrapping client functions as methods.
    """

    def __init__(self):
        """Initialize the connection manager."""
        self._connection: Optional[ClientConnection] = None
        self._client_sync: Optional[ClientSyncResponse] = None

    @property
    def connection(self) -> Optional[ClientConnection]:
        """Get the current connection."""
        return self._connection

    @property
    def client_sync(self) -> Optional[ClientSyncResponse]:
        """Get the last client sync response."""
        return self._client_sync

    def is_connected(self) -> bool:
        """Check if currently connected to server."""
        return self._connection is not None

    async def connect(
        self,
        host: str = DEFAULT_HOST_ADDR,
        msg_port: int = DEFAULT_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        request_retries: int = DEFAULT_RETRIES,
    ) -> None:
        """Connect to a running server."""
        if self._connection:
            logger.warning("Already connected, disconnecting first")
            self.disconnect()

        try:
            self._connection, self._client_sync = await client.open_connection(
                host, msg_port, timeout, request_retries
            )
        except Exception as e:
            # ensure these aren't set if connection fails
            self._connection = None
            self._client_sync = None
            raise e
        logger.info("Connected to server: {}", self._client_sync)

    def disconnect(self) -> None:
        """Disconnect from the server."""
        if self._connection:
            client.close_connection(self._connection)
            self._connection = None
            self._client_sync = None

    async def stop_server(self) -> None:
        """Ask the connected server to shut down, then disconnect."""
        if not self._connection:
            logger.warning("No connection, can't stop remote server.")
            return
        try:
            await client.shutdown_server(self._connection)
            logger.info("Server shutdown completed")
        finally:
            self.disconnect()

    def __del__(self):
        """Cleanup on deletion."""
        self.disconnect()

    # ========================================================================
    # Access client.py function 'through' the connection manager w automatic
    # check if connection is open.
    # ========================================================================

    def __getattr__(self, name: str) -> Any:
        """
        Delegate unknown attributes to client protocol functions.

        This provides a clean object-oriented interface to the client protocol functions
        by automatically injecting the connection object.

        Examples:
            manager = ConnectionManager()
            await manager.connect()

            await manager.ping()  # Calls client.ping(connection)
            await manager.echo("test")  # Calls client.echo(connection, "test")
            await manager.open_driver()  # Calls client.open_driver(connection)
            await manager.get_potential()

        Raises:
            RuntimeError: If not connected to server (when the wrapper is called)
            AttributeError: If no matching client function exists
        """
        if name.startswith("_"):
            raise AttributeError(
                f"'{self.__class__.__name__}' has no attribute '{name}'"
            )
        func = getattr(client, name, None)
        if func is not None and getattr(func, "_is_client_method", False):

            async def wrapper(*args, **kwargs):
                if not self._connection:
                    raise RuntimeError("Not connected to server")
                return await func(self._connection, *args, **kwargs)

            wrapper.__name__ = name
            return wrapper
        raise AttributeError(f"'{self.__class__.__name__}' has no attribute '{name}'")
