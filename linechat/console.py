"""Terminal output for the interactive client."""

from __future__ import annotations

import time

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn


class ChatConsole:
    """
    Styled terminal output.

    Server text is printed with markup disabled so user supplied brackets
    (``[Private Message from ...]``, ``[CHAT]:``) are shown verbatim.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)

    def print_line(self, text: str) -> None:
        self.console.print(text, markup=False)

    def print_info(self, text: str) -> None:
        self.console.print(f"[bold green]{escape(text)}[/bold green]")

    def print_warning(self, text: str) -> None:
        self.console.print(f"[bold yellow]{escape(text)}[/bold yellow]")

    def print_error(self, text: str) -> None:
        self.console.print(f"[bold red]{escape(text)}[/bold red]")

    def prompt(self, label: str, default: str | None = None) -> str:
        if default is not None:
            self.console.print(f"[Hit ENTER for default: {default}]", markup=False, style="dim")
        return self.console.input(f"[bold green]{escape(label)}[/bold green] ")

    def loading_meter(self, label: str, steps: int = 50, delay_s: float = 0.02) -> None:
        """Draw a short progress bar; purely cosmetic."""
        progress = Progress(
            TextColumn("[bold orange3]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self.console,
            transient=True,
        )
        with progress:
            task_id = progress.add_task(label, total=steps)
            for _ in range(steps):
                time.sleep(delay_s)
                progress.advance(task_id)
