"""
Shared types for client-server communication and the session core.

1. Messages (messages.py)
    - Request and the Response family, serialised with MessagePack (mashumaro)
      over ZeroMQ. `ErrorResponse.tag` carries the failure category.

2. Commands (commands.py)
    - `CONSTS`: command strings and failure category tags.

3. Protocols (protocols.py)
    - `DriverProtocol`: what the server needs from a driver backend.
    - `SessionGateway`: what the session core needs from the RPC side.

4. Validation (validation.py)
    - Handler/client correspondence registry.

Handling responses:
```python
from ivcell.types import ErrorResponse
if isinstance(response, ErrorResponse):
    print(f"Error [{response.tag}]: {response.value}")
```

See Also
--------
ivcell.server : Server-client communication module
ivcell.session : Session state machine
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import zmq
import zmq.asyncio

from .commands import CONSTS
from .messages import (
    ClientSyncResponse,
    ErrorResponse,
    FloatResponse,
    Message,
    MsgResponse,
    Request,
    Response,
    ValueResponse,
)
from .protocols import DriverProtocol, SessionGateway
from .validation import (
    HANDLER_REGISTRY,
    PENDING_COMMAND_VALIDATIONS,
    HandlerInfo,
    ValidationError,
    assert_valid_handler_client_correspondence,
    validate_handler_client_correspondence,
)


@dataclass
class ClientConnection:
    """Client-side connection information."""

    context: zmq.asyncio.Context
    msg_socket: zmq.asyncio.Socket  # REQ socket
    host: str
    msg_port: int
    # REQ sockets need strict send/recv alternation, shared between tasks
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass
class ServerConnection:
    """Server-side connection information."""

    msg_socket: zmq.asyncio.Socket  # ROUTER socket
    host: str
    msg_port: int
    shutdown_requested: bool = False


# Exceptions
class CommsError(Exception):
    """Base exception for communication errors."""

    pass


class RPCError(CommsError):
    """A remote operation failed.

    Attributes
    ----------
    command : str
        The command that failed.
    tag : str
        Failure category, one of `CONSTS.ERR.*`. Only this drives control flow.
    detail : str
        Free-form diagnostic text (advisory).
    """

    def __init__(self, command: str, tag: str = CONSTS.ERR.OTHER, detail: str = ""):
        super().__init__(f"Error returned from {command} [{tag}]: {detail}")
        self.command = command
        self.tag = tag
        self.detail = detail


__all__ = [
    "ClientConnection",
    "ServerConnection",
    "Message",
    "Request",
    "Response",
    "MsgResponse",
    "ValueResponse",
    "FloatResponse",
    "ErrorResponse",
    "ClientSyncResponse",
    "CONSTS",
    "DriverProtocol",
    "SessionGateway",
    "HANDLER_REGISTRY",
    "PENDING_COMMAND_VALIDATIONS",
    "HandlerInfo",
    "ValidationError",
    "validate_handler_client_correspondence",
    "assert_valid_handler_client_correspondence",
    "CommsError",
    "RPCError",
]
