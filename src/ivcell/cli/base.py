import asyncio
from typing import Optional

import click
from loguru import logger
from rich.console import Console
from rich.live import Live

from ivcell.cli.display import render_session
from ivcell.device import DRIVER_TYPES, get_driver
from ivcell.server import ConnectionManager
from ivcell.server.server import open_server_connection, serve, start_server
from ivcell.session import Session
from ivcell.util import (
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_POLL_PERIOD,
    DEFAULT_PORT,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    start_client_log,
)


def print_tree(cmd, prefix="", parent_ctx=None):
    """Print command tree starting from given command."""
    ctx = click.Context(cmd, info_name=cmd.name, parent=parent_ctx)

    # Only print root name if no parent
    if not parent_ctx:
        click.echo(cmd.name)

    for sub in sorted(cmd.list_commands(ctx)):
        sub_cmd = cmd.get_command(ctx, sub)
        if isinstance(sub_cmd, click.Group):
            click.echo(f"{prefix}└── {sub}")
            print_tree(sub_cmd, prefix + "    ", ctx)
        else:
            click.echo(f"{prefix}└── {sub}")


def tree_option(f):
    """Add --tree option to command."""

    def callback(ctx, param, value):
        if not value or ctx.resilient_parsing:
            return
        print_tree(ctx.command)
        ctx.exit()

    return click.option(
        "--tree",
        is_flag=True,
        help="Show command tree from this point",
        expose_value=False,
        is_eager=True,
        callback=callback,
    )(f)


@click.group()
@tree_option
def cli():
    """ivcell - IviumSoft instrument session control.

    - Server owning the IviumSoft driver backend

    - Session monitor: driver, device and cell state with live potential
    """
    pass


@cli.command()
@click.option(
    "--system-name",
    "-n",
    default="mock",
    type=click.Choice(sorted(DRIVER_TYPES), case_sensitive=False),
    help='Driver backend to serve (default: "mock")',
)
@click.option(
    "--host-address",
    "-ha",
    default=DEFAULT_HOST_ADDR,
    help="Network address to bind server to (default: localhost)",
)
@click.option(
    "--msg-port",
    "-mp",
    default=DEFAULT_PORT,
    type=int,
    help=f"Port for command/response messages (default: {DEFAULT_PORT})",
)
@click.option(
    "--log-to-file/--no-log-to-file",
    "-ltf/",
    default=True,
    help="Enable/disable logging to file (default: enabled)",
)
@click.option(
    "--log-to-stdout/--no-log-to-stdout",
    "-lts/",
    default=True,
    help="Enable/disable console logging (default: enabled)",
)
@click.option(
    "--log-path",
    "-lp",
    default="",
    help="Custom path for log file (default: ~/.ivcell/server.log)",
)
@click.option(
    "--clear-prev-log/--no-clear-prev-log",
    "-c/",
    default=True,
    help="Clear previous log file on startup (default: enabled)",
)
@click.option(
    "--log-level",
    "-ll",
    default=DEFAULT_LOGLEVEL,
    help="Logging level (DEBUG, INFO, WARNING, ERROR) (default: INFO)",
)
def server(**kwargs):
    """Start the ivcell server.

    Owns the IviumSoft driver backend and answers session requests until a
    shutdown request arrives.
    """
    # Convert host_address to host for start_server
    kwargs["host"] = kwargs.pop("host_address")
    try:
        asyncio.run(start_server(**kwargs))
    except KeyboardInterrupt:
        click.echo("Server interrupted.")


@cli.command()
@click.option(
    "--host-address",
    "-ha",
    default="",
    help="Server address to connect to (required with --msg-port)",
)
@click.option(
    "--msg-port",
    "-mp",
    default="",
    help="Server message port to connect to (required with --host-address)",
)
@click.option(
    "--mock",
    is_flag=True,
    default=False,
    help="Run an in-process mock server instead of connecting to one",
)
@click.option(
    "--connect-device/--no-connect-device",
    "-d/",
    default=True,
    help="Connect the instrument after opening the driver (default: enabled)",
)
@click.option(
    "--cell-on/--no-cell-on",
    default=False,
    help="Switch the cell on once the device is connected (default: disabled)",
)
@click.option(
    "--period",
    "-p",
    default=DEFAULT_POLL_PERIOD,
    type=click.FloatRange(min=0, min_open=True),
    help=f"Seconds between potential reads (default: {DEFAULT_POLL_PERIOD})",
)
@click.option(
    "--duration",
    "-t",
    default=None,
    type=click.FloatRange(min=0),
    help="Stop after this many seconds (default: run until Ctrl-C)",
)
@click.option(
    "--timeout",
    default=DEFAULT_TIMEOUT,
    type=float,
    help=f"Seconds to wait for each server reply (default: {DEFAULT_TIMEOUT})",
)
@click.option(
    "--retries",
    default=DEFAULT_RETRIES,
    type=int,
    help=f"Request retries before giving up (default: {DEFAULT_RETRIES})",
)
@click.option(
    "--log-to-file/--no-log-to-file",
    "-ltf/",
    default=True,
    help="Enable/disable logging to file (default: enabled)",
)
@click.option(
    "--log-to-stdout/--no-log-to-stdout",
    "-lts/",
    default=False,
    help="Enable/disable console logging (default: disabled)",
)
@click.option(
    "--log-path", "-lp", help="Custom path for log file (default: ~/.ivcell/client.log)"
)
@click.option(
    "--log-level",
    "-ll",
    default=DEFAULT_LOGLEVEL,
    help="Logging level (DEBUG, INFO, WARNING, ERROR) (default: INFO)",
)
def monitor(**kwargs):
    """Run a session and show its state live.

    Opens the driver, optionally connects the device and switches the cell on,
    then displays driver, device and cell state with the polled potential.
    The driver is closed when the monitor exits.
    """
    if bool(kwargs["host_address"]) != bool(kwargs["msg_port"]):
        raise click.UsageError(
            "Must define both --host-address and --msg-port if defining one."
        )
    if kwargs["mock"] and kwargs["host_address"]:
        raise click.UsageError("--mock cannot be combined with --host-address.")

    start_client_log(
        log_to_file=kwargs.pop("log_to_file"),
        log_to_stdout=kwargs.pop("log_to_stdout"),
        log_path=kwargs.pop("log_path"),
        log_level=kwargs.pop("log_level"),
    )
    kwargs["host"] = kwargs.pop("host_address") or DEFAULT_HOST_ADDR
    kwargs["msg_port"] = int(kwargs["msg_port"] or DEFAULT_PORT)
    try:
        asyncio.run(run_monitor(console=Console(), **kwargs))
    except KeyboardInterrupt:
        click.echo("Monitor interrupted, session closed.")
    except Exception as e:
        logger.exception("Monitor failed.")
        raise click.ClickException(str(e))


async def run_monitor(
    host: str,
    msg_port: int,
    mock: bool = False,
    connect_device: bool = True,
    cell_on: bool = False,
    period: float = DEFAULT_POLL_PERIOD,
    duration: Optional[float] = None,
    timeout: float = DEFAULT_TIMEOUT,
    retries: int = DEFAULT_RETRIES,
    console: Optional[Console] = None,
) -> None:
    if console is None:
        console = Console()

    mock_server = None
    if mock:
        context, server_connection = open_server_connection(host, 0)
        msg_port = server_connection.msg_port
        mock_server = (
            server_connection,
            asyncio.create_task(serve(context, server_connection, get_driver("mock"))),
        )

    manager = ConnectionManager()
    try:
        await manager.connect(host, msg_port, timeout, retries)
        async with Session(manager, period=period) as session:
            with Live(
                render_session(session.view(), session.state),
                console=console,
                refresh_per_second=4,
            ) as live:

                def refresh(_):
                    live.update(render_session(session.view(), session.state))

                session.controller.add_listener(refresh)
                session.poller.add_listener(refresh)

                if await session.controller.open_driver():
                    if connect_device:
                        await session.controller.connect_device(True)
                    if cell_on:
                        await session.controller.set_cell_status(True)

                if duration is None:
                    await asyncio.Event().wait()
                else:
                    await asyncio.sleep(duration)
                refresh(None)
    finally:
        manager.disconnect()
        if mock_server is not None:
            server_connection, task = mock_server
            server_connection.shutdown_requested = True
            await task
