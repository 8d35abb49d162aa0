"""Rich rendering of the session view for `ivcell monitor`."""

from rich.markup import escape
from rich.table import Table

from ivcell.session import SessionSnapshot, SessionView
from ivcell.session.view import CONNECT_APP_LABEL

ya = "[green]+[/green]"
na = "[red]-[/red]"
wa = "[yellow]![/yellow]"


def _flag(value: bool) -> str:
    return ya if value else na


def render_session(view: SessionView, state: SessionSnapshot) -> Table:
    table = Table(show_header=False, box=None)
    table.add_column("Item")
    table.add_column("Value")

    if view.show_start_screen:
        table.add_row("[bold]IviumSoft[/bold]", f"{na} {state.driver_status}")
        table.add_row("", escape(f"[{CONNECT_APP_LABEL}]"))
        if view.driver_message:
            table.add_row(wa, view.driver_message)
        return table

    table.add_row("[bold]IviumSoft[/bold]", f"{ya} {state.driver_status}")
    table.add_row(
        "Device",
        f"{_flag(view.device_connected)} "
        + ("connected" if view.device_connected else "disconnected")
        + f" ({state.device_status})",
    )
    if view.device_error_text:
        table.add_row(wa, view.device_error_text)
    table.add_row(
        "Cell",
        f"{_flag(view.cell_on)} " + ("on" if view.cell_on else "off"),
    )
    if view.potential_text is not None:
        style = "bold" if view.potential_fresh else "dim"
        table.add_row("Potential", f"[{style}]{view.potential_text} V[/{style}]")
    else:
        table.add_row("Potential", "[dim]--[/dim]")
    if view.busy:
        table.add_row(wa, "busy...")
    return table
