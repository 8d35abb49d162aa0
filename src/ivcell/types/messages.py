"""Message types for client-server communication."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from mashumaro.mixins.msgpack import DataClassMessagePackMixin
from mashumaro.types import Discriminator

from .commands import CONSTS


@dataclass
class Message(DataClassMessagePackMixin):
    """Base class for all messages."""

    def __repr__(self):
        vals = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items())
        return f"{self.__class__.__name__}({vals})"


@dataclass(repr=False)
class Request(Message):
    """A request from client to server.

    Request needs to be general (client->server) as server has no info on what type of
    message it's getting. Requester does know what type of response to expect, so
    that object can be specialised.
    """

    command: str
    params: dict[str, bool | str | float | int | None] = field(default_factory=dict)


@dataclass(kw_only=True, repr=False)
class Response(Message):
    """A response from server to client's request."""

    type: str  # subclass to define
    value: Any  # subclass to define

    class Config:
        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass(kw_only=True, repr=False)
class MsgResponse(Response):
    type: str = "msg"
    value: str = ""


@dataclass(kw_only=True, repr=False)
class ValueResponse(Response):
    type: str = "value"
    value: int | float | str | bool = False


@dataclass(kw_only=True, repr=False)
class FloatResponse(Response):
    type: str = "float"
    value: float = 0.0


@dataclass(kw_only=True, repr=False)
class ErrorResponse(Response):
    """Failure reply. `tag` is the machine-matchable category, `value` is advisory."""

    type: str = "error"
    value: str = ""
    tag: str = CONSTS.ERR.OTHER


@dataclass(kw_only=True, repr=False)
class ClientSyncResponse(Response):
    type: str = "client_sync"
    value: str = ""
    system_name: str
    driver_type: str
    version: str
