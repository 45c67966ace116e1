"""
Base Command Class

Abstract base for all Dockhand CLI commands.
Provides common output helpers and error handling.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import json

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dockhand.exceptions import DockhandError


class BaseCommand(ABC):
    """
    Abstract base command class.

    Provides:
    - Console output helpers
    - JSON output support
    - Error handling with consistent exit codes
    """

    def __init__(self, verbose: bool = False, json_output: bool = False):
        self.verbose = verbose
        self.json_output = json_output
        self.console = Console()

    def output_json(self, data: Any, exit_code: int = 0) -> None:
        """
        Output data as JSON.

        Args:
            data: Data to output as JSON
            exit_code: Exit code (0 for success, non-zero for error)
        """
        print(json.dumps(data, indent=2, default=str))
        if exit_code != 0:
            raise SystemExit(exit_code)

    def output_json_error(
        self, error: str, details: Optional[Dict[str, Any]] = None, exit_code: int = 1
    ) -> None:
        """Output error as JSON and exit."""
        error_data: Dict[str, Any] = {"error": error}
        if details:
            error_data["details"] = details
        self.output_json(error_data, exit_code=exit_code)

    def print_table(
        self, title: str, columns: List[str], rows: List[List[Any]]
    ) -> None:
        """Print rows as a rich table (skip in JSON mode)."""
        if self.json_output:
            return
        table = Table(title=title, title_justify="left", padding=(0, 1))
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*[str(cell) for cell in row])
        self.console.print(table)

    def print_success(self, message: str) -> None:
        """Print success message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[green]✓ {message}[/green]")

    def print_error(self, message: str) -> None:
        """Print error message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[red]✗ {message}[/red]")

    def print_warning(self, message: str) -> None:
        """Print warning message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[yellow]⚠ {message}[/yellow]")

    def print_dim(self, message: str) -> None:
        """Print dim message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[dim]{message}[/dim]")

    def exit_with_error(self, message: str, code: int = 1) -> None:
        """
        Print error and exit.

        Args:
            message: Error message
            code: Exit code
        """
        if self.json_output:
            self.output_json_error(message, exit_code=code)
        self.print_error(message)
        raise SystemExit(code)

    @abstractmethod
    def execute(self, **kwargs) -> None:
        """
        Execute command logic.

        Must be implemented by subclasses.
        """
        pass

    def run(self, **kwargs) -> None:
        """
        Run command with error handling.

        Args:
            **kwargs: Command arguments
        """
        try:
            self.execute(**kwargs)
        except KeyboardInterrupt:
            self.console.print("\n[yellow]⚠️  Operation cancelled by user[/yellow]")
            raise SystemExit(130)
        except SystemExit:
            raise
        except DockhandError as e:
            if self.json_output:
                details = {"context": e.context} if e.context else None
                self.output_json_error(e.message, details=details)
            self.console.print(f"\n[bold red]✗[/bold red] {escape(e.message)}")
            if e.context and self.verbose:
                self.print_dim(e.context)
            self.console.print()
            raise SystemExit(1)
        except Exception as e:
            error_type = type(e).__name__
            if self.json_output:
                self.output_json_error(f"{error_type}: {e}")
            self.console.print(f"\n[bold red]✗ {error_type}:[/bold red] {escape(str(e))}\n")
            raise SystemExit(1)
