"""
Result Models

Dataclass models for command execution results.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class CommandResult:
    """
    Result of one command execution, local or over SSH.

    stdout and stderr are kept separate and carry no trailing newline, so
    downstream parsing sees the same canonical text from every backend.
    """

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def is_success(self) -> bool:
        """Check if the command succeeded."""
        return self.exit_code == 0

    @property
    def is_failure(self) -> bool:
        """Check if the command failed."""
        return self.exit_code != 0

    def __repr__(self) -> str:
        return f"CommandResult(exit_code={self.exit_code})"
