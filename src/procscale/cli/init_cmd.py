"""``procscale init``: scaffold a new handler file from a template."""

from __future__ import annotations

from pathlib import Path
from string import Template

import typer
from rich.console import Console

console = Console(stderr=True)

_HANDLER_TEMPLATE = Template('''\
"""Worker pool handler: $name.

Run with:
    procscale run $filename --initial 2 --max 8 --rate 20 --duration 30
"""

from __future__ import annotations

import time

from procscale import handler, setup, teardown, unit


@handler(name="$name")
class $class_name:
    """$name handler. One instance lives in each worker process."""

    @setup
    def open(self) -> None:
        """Acquire per-worker resources (connections, caches)."""
        self.handled = 0

    @unit
    def handle(self, payload: object) -> None:
        """Process one job."""
        time.sleep(0.05)
        self.handled += 1

    @teardown
    def close(self) -> None:
        """Release per-worker resources on cooperative retirement."""
''')


def init_cmd(
    name: str = typer.Argument(
        "my_pool",
        help="Name for the handler (used as filename and class name).",
    ),
) -> None:
    """Scaffold a new handler file in the current directory."""
    safe_name = "".join(c if c.isalnum() or c == "_" else "_" for c in name).lower()
    if not safe_name or safe_name[0].isdigit():
        safe_name = "handler_" + safe_name

    filename = f"{safe_name}.py"
    class_name = "".join(word.capitalize() for word in safe_name.split("_")) + "Handler"
    display_name = name.replace("_", " ").replace("-", " ").title()

    target = Path.cwd() / filename
    if target.exists():
        console.print(f"[red]File already exists:[/red] {filename}")
        raise typer.Exit(code=1)

    content = _HANDLER_TEMPLATE.substitute(
        name=display_name,
        filename=filename,
        class_name=class_name,
    )
    target.write_text(content)
    console.print(f"[green]Created handler:[/green] {filename}")
