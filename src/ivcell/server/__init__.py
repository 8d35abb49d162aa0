# -*- coding: utf-8 -*-
"""
Server-client communication module for ivcell.

The server process owns the IviumSoft driver backend; clients (the session
core, the `ivcell monitor` CLI, scripts) talk to it over ZeroMQ. Every
remote operation either succeeds or fails with a failure category tag.

Examples
--------
Connecting to a running server:
```python
from ivcell.server import ConnectionManager
manager = ConnectionManager()
await manager.connect()
await manager.open_driver()
await manager.connect_device()
potential = await manager.get_potential()
```

See Also
--------
ivcell.server.client : Client-side communication functions
ivcell.server.server : Server implementation
ivcell.server.connection_manager : Connection management class
"""

from __future__ import annotations

from .client import (
    client_sync,
    close_connection,
    close_driver,
    connect_device,
    disconnect_device,
    echo,
    get_potential,
    get_server_log_path,
    open_connection,
    open_driver,
    ping,
    set_cell_off,
    set_cell_on,
    shutdown_server,
)
from .connection_manager import ConnectionManager
from .server import open_server_connection, serve, start_server

__all__ = [
    "ConnectionManager",
    "client_sync",
    "close_connection",
    "close_driver",
    "connect_device",
    "disconnect_device",
    "echo",
    "get_potential",
    "get_server_log_path",
    "open_connection",
    "open_driver",
    "open_server_connection",
    "ping",
    "serve",
    "set_cell_off",
    "set_cell_on",
    "shutdown_server",
    "start_server",
]
