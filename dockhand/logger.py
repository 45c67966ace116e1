"""
Deployment log files.

One plain-text file per deployment run, opened in append mode so shell
fragments redirected with `>> log 2>&1` and this writer can share it. A
log viewer tails the file while the run is in progress.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, TextIO

from dockhand.constants import LOG_DATETIME_FORMAT, SENSITIVE_KEYWORDS

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def strip_ansi(text: str) -> str:
    """Remove terminal color codes."""
    return ANSI_ESCAPE.sub("", text)


def mask_env(env: Dict[str, str]) -> Dict[str, str]:
    """Mask values of variables whose names look like secrets."""
    masked = {}
    for key, value in env.items():
        if any(word in key.upper() for word in SENSITIVE_KEYWORDS):
            masked[key] = "*" * 8
        else:
            masked[key] = value
    return masked


class DeploymentLog:
    """
    Append-only log of a single deployment run.

    - Header with application and run details
    - Timestamped lines with a level
    - Captured command output, one prefixed line per output line
    - Error blocks that are easy to grep for
    - Footer with the final status
    """

    def __init__(self, log_path: str, application: str, title: str):
        """
        Open (or create) the log file.

        Args:
            log_path: Absolute path of the log file
            application: Application name shown in the header
            title: Deployment title shown in the header
        """
        self.log_path = Path(log_path)
        self.application = application
        self.title = title
        self.has_errors = False

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        # Line buffered so tailing readers see progress immediately
        self.log_file: Optional[TextIO] = open(self.log_path, "a", buffering=1)
        self._write_header()

    def _write(self, text: str) -> None:
        if self.log_file:
            self.log_file.write(text)
            self.log_file.flush()

    def _write_header(self):
        """Write log file header"""
        self._write(
            f"""{"=" * 80}
Dockhand Deployment Log
{"=" * 80}
Application: {self.application}
Deployment: {self.title}
Started: {datetime.now().strftime(LOG_DATETIME_FORMAT)}
{"=" * 80}

"""
        )

    def log(self, message: str, level: str = "INFO"):
        """
        Log a message.

        Args:
            message: Message to log
            level: Log level (INFO, WARNING, ERROR, DEBUG)
        """
        timestamp = datetime.now().strftime("%H:%M:%S")
        self._write(f"[{timestamp}] [{level}] {message}\n")

    def step(self, name: str):
        """Mark the start of a pipeline stage."""
        self.log(f"Step: {name}")

    def log_output(self, output: str, stream: str = "stdout"):
        """
        Log captured command output.

        Args:
            output: Command output (single line or multiline)
            stream: Stream name (stdout, stderr)
        """
        if not output:
            return
        for line in strip_ansi(output).splitlines():
            self._write(f"  [{stream}] {line}\n")

    def log_error(self, error: str, context: Optional[str] = None):
        """
        Log an error block.

        Args:
            error: Error message
            context: Additional context (e.g., the failing stage)
        """
        self.has_errors = True
        block = f"\n{'!' * 80}\nERROR OCCURRED\n{'!' * 80}\n{error}\n"
        if context:
            block += f"\nContext: {context}\n"
        block += f"{'!' * 80}\n\n"
        self._write(block)

    def close(self, status: Optional[str] = None):
        """Write the footer and close the file."""
        if not self.log_file:
            return
        if status is None:
            status = "error" if self.has_errors else "done"
        self._write(
            f"""
{"=" * 80}
Completed: {datetime.now().strftime(LOG_DATETIME_FORMAT)}
Status: {status}
{"=" * 80}
"""
        )
        self.log_file.close()
        self.log_file = None
