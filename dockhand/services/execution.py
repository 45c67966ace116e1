"""
Execution backends.

Every command dockhand runs goes through an ExecutionBackend: the local
backend spawns `/bin/bash -c`, the remote backend ships the same text over
ssh(1). Both return a CommandResult with trailing newlines stripped from
stdout and stderr, and both raise ExecutionError only when the command could
not be run at all. A non-zero exit is returned, not raised.
"""

import logging
import os
import signal
import subprocess
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Optional

from dockhand.constants import REMOTE_PID_DIR, SSH_TRANSPORT_EXIT_CODE
from dockhand.core.shell import quote
from dockhand.exceptions import CommandFailure, DockhandError, ExecutionError, RunCancelled
from dockhand.models.results import CommandResult
from dockhand.models.ssh import SSHConnection

logger = logging.getLogger(__name__)

# Seconds between cancellation checks while a process runs
POLL_INTERVAL = 0.5

# Seconds a cancelled process group gets between SIGTERM and SIGKILL
KILL_GRACE_PERIOD = 5


class CancellationToken:
    """
    Cooperative cancellation flag shared between a run and its commands.

    Backends poll the token while a process is alive and kill the whole
    process group once it is set.
    """

    def __init__(self):
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Safe to call more than once."""
        self._event.set()

    def raise_if_cancelled(self, host: Optional[str] = None, command: str = "") -> None:
        if self.cancelled:
            raise RunCancelled("Run was cancelled", host=host, command=command)


def _normalize(output: Optional[str]) -> str:
    return (output or "").rstrip("\n")


def terminate_process_group(process: subprocess.Popen) -> None:
    """Kill a process started with start_new_session=True and its children."""
    try:
        os.killpg(process.pid, signal.SIGTERM)
        try:
            process.wait(timeout=KILL_GRACE_PERIOD)
        except subprocess.TimeoutExpired:
            os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        # Already gone
        return


def run_process(
    args,
    host: Optional[str],
    command: str,
    token: Optional[CancellationToken] = None,
    shell: bool = False,
) -> CommandResult:
    """
    Run a process to completion, honouring a cancellation token.

    Args:
        args: argv list, or a command string when shell=True
        host: Target host, used for error context only
        command: The logical command, used for error context only
        token: Optional cancellation token
        shell: Run args through /bin/bash

    Returns:
        CommandResult with normalized output

    Raises:
        ExecutionError: If the process could not be started
        RunCancelled: If the token was cancelled before or during the run
    """
    if token is not None:
        token.raise_if_cancelled(host, command)

    try:
        process = subprocess.Popen(
            args,
            shell=shell,
            executable="/bin/bash" if shell else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=True,
        )
    except OSError as e:
        raise ExecutionError(f"Could not start command: {e}", host=host, command=command)

    if token is None:
        stdout, stderr = process.communicate()
    else:
        while True:
            try:
                stdout, stderr = process.communicate(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if token.cancelled:
                    logger.info("Cancelling command (pid %s)", process.pid)
                    terminate_process_group(process)
                    process.communicate()
                    raise RunCancelled("Run was cancelled", host=host, command=command)

    return CommandResult(
        stdout=_normalize(stdout),
        stderr=_normalize(stderr),
        exit_code=process.returncode,
    )


class ExecutionBackend(ABC):
    """Runs a shell command against the local daemon or a remote host."""

    @abstractmethod
    def run(
        self,
        host: Optional[str],
        command: str,
        token: Optional[CancellationToken] = None,
    ) -> CommandResult:
        """
        Run a command and capture its output.

        Args:
            host: Server identifier, or None for the local daemon
            command: Shell command text
            token: Optional cancellation token

        Returns:
            CommandResult, also for non-zero exits

        Raises:
            ExecutionError: If the transport could not run the command
        """

    def check(
        self,
        host: Optional[str],
        command: str,
        token: Optional[CancellationToken] = None,
    ) -> CommandResult:
        """
        Run a command and require a zero exit status.

        Raises:
            ExecutionError: If the transport could not run the command
            CommandFailure: If the command exited non-zero
        """
        result = self.run(host, command, token)
        if result.is_failure:
            raise CommandFailure(result, host=host)
        return result


class LocalExecutionBackend(ExecutionBackend):
    """Runs commands on this machine through /bin/bash."""

    def run(self, host, command, token=None):
        logger.debug("Running local command (%d chars)", len(command))
        return run_process(command, None, command, token, shell=True)


class RemoteExecutionBackend(ExecutionBackend):
    """
    Runs commands on registered servers over ssh(1).

    Connections are multiplexed per host through SSH ControlMaster sockets,
    so repeated calls reuse one TCP session while it persists. Nothing
    relies on that session surviving between calls.

    Commands always run under `bash -c` whatever the login shell is. A
    cancellable command also records the pid of its remote session leader,
    which sshd starts in a process group of its own, so that cancelling can
    kill the remote process group over a second connection. Killing the
    local ssh client alone leaves the remote side running.
    """

    def __init__(self, resolve: Callable[[str], SSHConnection]):
        """
        Initialize remote backend.

        Args:
            resolve: Maps a server identifier to its SSH connection details
        """
        self.resolve = resolve

    def connection_for(self, host: str, command: str) -> SSHConnection:
        try:
            return self.resolve(host)
        except ExecutionError:
            raise
        except DockhandError as e:
            raise ExecutionError(
                f"Cannot connect to {host}: {e.message}", host=host, command=command
            ) from e

    def run(self, host, command, token=None):
        if not host:
            raise ExecutionError("Remote execution requires a host", command=command)

        connection = self.connection_for(host, command)
        logger.debug("Running remote command on %s (%d chars)", connection, len(command))

        if token is None:
            result = run_process(connection.build_command(wrap_command(command)), host, command)
        else:
            token.raise_if_cancelled(host, command)
            pid_file = f"{REMOTE_PID_DIR}/dockhand-{uuid.uuid4().hex}.pid"
            try:
                result = run_process(
                    connection.build_command(wrap_command(command, pid_file)), host, command, token
                )
            except RunCancelled:
                self.kill_remote(connection, host, pid_file)
                raise

        # ssh(1) reserves 255 for its own connection and auth failures
        if result.exit_code == SSH_TRANSPORT_EXIT_CODE:
            detail = result.stderr or "connection failed"
            raise ExecutionError(f"SSH transport failed: {detail}", host=host, command=command)
        return result

    def kill_remote(self, connection: SSHConnection, host: str, pid_file: str) -> None:
        """Terminate the remote process group recorded in pid_file."""
        kill = (
            f'pid=$(cat {pid_file} 2>/dev/null) && kill -TERM -- "-$pid"; '
            f"rm -f {pid_file}"
        )
        try:
            result = run_process(connection.build_command(wrap_command(kill)), host, kill)
        except ExecutionError as e:
            logger.warning("Could not stop cancelled command on %s: %s", host, e.message)
            return
        if result.is_failure:
            logger.warning(
                "Could not stop cancelled command on %s: %s",
                host,
                result.stderr or f"exit code {result.exit_code}",
            )


def wrap_command(command: str, pid_file: Optional[str] = None) -> str:
    """
    Wrap a command for the remote login shell.

    With a pid_file the outer shell records its pid first and removes the
    file once the command exits, keeping the command's exit status.
    """
    script = f"bash -c {quote(command)}"
    if pid_file is None:
        return script
    return (
        f"echo $$ > {pid_file}; {script}; "
        f"status=$?; rm -f {pid_file}; exit $status"
    )


class RoutingExecutionBackend(ExecutionBackend):
    """Dispatches to the local backend when no host is given, remote otherwise."""

    def __init__(self, local: ExecutionBackend, remote: ExecutionBackend):
        self.local = local
        self.remote = remote

    def run(self, host, command, token=None):
        if host:
            return self.remote.run(host, command, token)
        return self.local.run(None, command, token)
