import json
import typer
from typing import Any, List, Mapping
from pydantic import BaseModel
from rich.console import Console
from rich.table import Table
from hmrkit.utils.diagnostics import HMRDiagnostic

# Create a stderr console for logging
error_console = Console(stderr=True)

class OutputFormatter:
    """
    Handles output formatting for the CLI and the dev server.
    System logs go to stderr, command results to stdout.
    """

    @staticmethod
    def log(message: str, severity: str = "info") -> None:
        """
        Print system messages to stderr with color coding.
        """
        style = "white"
        prefix = "[HMR]"

        if severity == "warning":
            style = "yellow"
        elif severity == "error":
            style = "red"
        elif severity == "critical":
            style = "bold red"
        elif severity == "success":
            style = "green"

        error_console.print(f"[{style}]{prefix} {message}[/{style}]", highlight=False)

    @staticmethod
    def print_diagnostics(diagnostics: List[HMRDiagnostic]) -> None:
        """
        Prints a table of build diagnostics.
        """
        if not diagnostics:
            return

        table = Table(title="Rebuild Diagnostics", border_style="red", header_style="bold red")
        table.add_column("Severity", style="bold")
        table.add_column("Code")
        table.add_column("Message")
        table.add_column("Location")

        for diag in diagnostics:
            color = "red"
            if diag.severity == "warning":
                color = "yellow"
            elif diag.severity == "critical":
                color = "bold red"

            loc = f"{diag.file_path}"
            if diag.line_number:
                loc += f":{diag.line_number}"
                if diag.column:
                    loc += f":{diag.column}"

            table.add_row(
                f"[{color}]{diag.severity.upper()}[/{color}]",
                diag.error_code,
                diag.message,
                loc
            )

        error_console.print(table)
        error_console.print()

    @staticmethod
    def print_status(status: Mapping[str, Any]) -> None:
        """Render a `/hmr-status` snapshot as a two-column table on stdout."""
        table = Table(title="HMR Status", show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")

        table.add_row("Connected clients", str(status.get("connectedClients", 0)))
        table.add_row("Rebuilding", "yes" if status.get("isRebuilding") else "no")
        table.add_row("Queued", ", ".join(status.get("rebuildQueue") or []) or "-")
        table.add_row("Manifest keys", str(len(status.get("manifestKeys") or [])))

        Console().print(table)

    @staticmethod
    def print_data(data: Any) -> None:
        """
        Print a command result to stdout.
        Handles Pydantic models and complex types.
        """
        if isinstance(data, str):
            typer.echo(data)
            return

        def json_serializer(obj):
            if isinstance(obj, BaseModel):
                return obj.model_dump(mode='json', by_alias=True)
            if hasattr(obj, "isoformat"):
                return obj.isoformat()
            return str(obj)

        try:
            output = json.dumps(data, indent=2, default=json_serializer)
            typer.echo(output)
        except TypeError as e:
            OutputFormatter.log(f"JSON Serialization failed: {e}", severity="error")
            typer.echo(str(data))
