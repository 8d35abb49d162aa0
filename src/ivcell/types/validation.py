"""Client/handler correspondence registry and validation.

Every server handler registers itself in `HANDLER_REGISTRY` (via `@handler`) with
the names of the client functions that call it. Every client function records its
command in `PENDING_COMMAND_VALIDATIONS` (via `@command`). The two are checked
against each other by `validate_handler_client_correspondence`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable


@dataclass
class HandlerInfo:
    """Stores the mapping between a server handler and its client methods.

    Attributes:
        handler_func: The server handler function
        client_methods: List of client method names that use this handler
        command: The command string that identifies this handler
    """

    handler_func: Callable
    client_methods: list[str]
    command: str


HANDLER_REGISTRY: dict[str, HandlerInfo] = {}
PENDING_COMMAND_VALIDATIONS: list[tuple[str, str]] = []


class ValidationError(Exception):
    """Base exception for validation errors."""

    pass


def validate_handler_client_correspondence() -> list[str]:
    """Validates the bidirectional correspondence between handlers and client methods.

    Checks:

    1. All client commands (@command decorated) have matching handlers registered
    2. All handlers (@handler decorated) have at least one client method
    3. All declared client methods actually exist in the client module
    4. All client methods are properly decorated with @command
    5. Commands match between handlers and their client methods

    Returns:
        List of validation error messages, empty if all valid
    """
    errors = []

    for command, func_name in PENDING_COMMAND_VALIDATIONS:
        if command not in HANDLER_REGISTRY:
            errors.append(
                f"Command {command} used by {func_name} not found in handler registry"
            )

    for command, info in HANDLER_REGISTRY.items():
        if not info.client_methods:
            errors.append(
                f"Handler {info.handler_func.__name__} for command {command}"
                + " has no registered client methods"
            )

    import ivcell.server.client as client

    for command, info in HANDLER_REGISTRY.items():
        for client_method in info.client_methods:
            if not hasattr(client, client_method):
                errors.append(
                    f"Client method {client_method} for command {command}"
                    + " not found in client module"
                )
                continue

            func = getattr(client, client_method)
            if not hasattr(func, "_is_client_method"):
                errors.append(
                    f"Client method {client_method} is not decorated with @command"
                )
            elif func._command != command:
                errors.append(
                    f"Client method {client_method} uses command {func._command}"
                    + f" but handler registered it for {command}"
                )

    return errors


def assert_valid_handler_client_correspondence():
    """Validates handler-client correspondence and raises if invalid.

    Raises:
        ValidationError: If any validation errors are found
    """
    errors = validate_handler_client_correspondence()
    if errors:
        raise ValidationError(
            "Handler-client correspondence validation failed:\n"
            + "\n".join(f"- {err}" for err in errors)
        )
