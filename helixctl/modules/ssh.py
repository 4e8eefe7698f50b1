"""
Remote execution over SSH.

One SSHClient wraps one paramiko connection to one machine. All file operations
go through ``sudo`` so the login user only needs passwordless sudo rights.
"""
import logging
import os
import random
import shlex
import time
from typing import Any, Callable, Dict, Optional, Union

import paramiko

from helixctl.config import Config
from helixctl.errors import DialError, RemoteExecError
from helixctl.logs import node_logger
from helixctl.modules.template import render_string

logger = logging.getLogger("helixctl.ssh")

Content = Union[str, bytes]


class SSHClient:
    """Execute commands and synchronize files on a single machine."""

    def __init__(self, client: paramiko.SSHClient, user: str, hostname: str, address: str,
                 dry_run: bool = False, timeout: Optional[int] = None):
        """Wrap an already connected paramiko client.

        Args:
            client: Connected paramiko.SSHClient
            user: Login user
            hostname: Logical host name of the machine
            address: IP address the connection was made to
            dry_run: Only log commands, never execute them
            timeout: Per-command channel timeout in seconds (default: none)
        """
        self._client = client
        self.user = user
        self.hostname = hostname
        self.address = address
        self.dry_run = dry_run
        self.timeout = timeout
        self.log = node_logger("helixctl.ssh", hostname)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self):
        return f"SSHClient({self.user}@{self.hostname} [{self.address}])"

    def _exec(self, command: str, stdin: Content = "", quiet: bool = False) -> bytes:
        self.log.debug(f"Running: {command}")
        try:
            stdin_f, stdout_f, stderr_f = self._client.exec_command(command, timeout=self.timeout)
            if stdin:
                stdin_f.write(stdin)
                stdin_f.flush()
            stdin_f.channel.shutdown_write()

            output = stdout_f.read()
            errors = stderr_f.read().decode("utf-8", errors="replace")
            exit_status = stdout_f.channel.recv_exit_status()
        except (paramiko.SSHException, OSError, EOFError) as e:
            self.log.error(f"Connection failed while running '{command}': {e}")
            raise RemoteExecError(self.hostname, command, -1, str(e)) from e
        if exit_status != 0:
            if not quiet:
                self.log.error(f"Command '{command}' failed with exit status {exit_status}: {errors.strip()}")
            raise RemoteExecError(self.hostname, command, exit_status, errors)
        return output

    def run(self, command: str, stdin: Content = "", quiet: bool = False) -> str:
        """Run a command on the machine.

        Args:
            command: Shell command line
            stdin: Data fed to the command's standard input
            quiet: Do not log a failure at error level (for expected failures)

        Returns:
            str: Standard output without its trailing newline ("" in dry-run mode)

        Raises:
            RemoteExecError: If the command exits non-zero
        """
        if self.dry_run:
            self.log.info(f"Will run: {command}")
            return ""
        output = self._exec(command, stdin, quiet).decode("utf-8", errors="replace")
        if output.endswith("\n"):
            output = output[:-1]
        return output

    def ensure_directory(self, path: str, mode: int = 0o755) -> None:
        """Create a directory (with parents) and apply its permission mode."""
        quoted = shlex.quote(path)
        self.run(f"sudo mkdir -p {quoted} && sudo chmod 0{mode:o} {quoted}")

    def ensure_directory_of(self, file_path: str, mode: int = 0o755) -> None:
        parent = os.path.dirname(file_path)
        if parent and parent != "/":
            self.ensure_directory(parent, mode)

    def update_file(self, path: str, content: Content, mode: int) -> None:
        """Write content to a remote file and (re)apply its mode.

        The file is always overwritten; remote content is never compared first.
        """
        self.ensure_directory_of(path)
        quoted = shlex.quote(path)
        self.log.debug(f"Updating {path} (mode 0{mode:o})")
        self.run(f"sudo tee {quoted} > /dev/null", stdin=content)
        self.run(f"sudo chmod 0{mode:o} {quoted}")

    def read_file(self, path: str) -> bytes:
        """Return the raw content of a remote file."""
        if self.dry_run:
            self.log.info(f"Will run: sudo cat {path}")
            return b""
        return self._exec(f"sudo cat {shlex.quote(path)}")

    def render(self, template_body: str, destination: str, options: Dict[str, Any], mode: int) -> None:
        """Render a template with the given options and upload the result.

        Raises:
            TemplateRenderError: If the template is invalid or an option is missing
            RemoteExecError: If the upload fails
        """
        content = render_string(template_body, options)
        self.update_file(destination, content, mode)

    def remove_file(self, path: str) -> None:
        """Remove a file; a missing file is not an error."""
        try:
            self.run(f"sudo rm -f {shlex.quote(path)}", quiet=True)
        except RemoteExecError as e:
            self.log.warning(f"Failed to remove {path}: {e}")

    def remove_directory(self, path: str) -> None:
        """Remove a directory tree; a missing directory is not an error."""
        try:
            self.run(f"sudo rm -rf {shlex.quote(path)}", quiet=True)
        except RemoteExecError as e:
            self.log.warning(f"Failed to remove directory {path}: {e}")

    def close(self) -> None:
        self._client.close()


def dial(user: str, hostname: str, address: str, dry_run: bool = False,
         port: int = 22, key_path: Optional[str] = None, timeout: Optional[int] = None,
         attempts: Optional[int] = None,
         client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient) -> SSHClient:
    """Open an SSH connection to a machine, retrying the handshake a few times.

    Authentication uses the SSH agent and default keys (plus key_path when
    given). Unknown host keys are accepted.

    Args:
        user: Login user
        hostname: Logical host name (used for logging and certificates)
        address: IP address to connect to
        dry_run: Create a client that only logs commands
        port: SSH port
        key_path: Extra private key file
        timeout: Connection timeout in seconds (default: Config.SSH_TIMEOUT)
        attempts: Handshake attempts (default: Config.MAX_RETRIES)
        client_factory: Creates the underlying paramiko client

    Returns:
        SSHClient: Connected client

    Raises:
        DialError: If every attempt fails
    """
    timeout = timeout or Config.SSH_TIMEOUT
    attempts = attempts or Config.MAX_RETRIES
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        client = client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=address,
                port=port,
                username=user,
                key_filename=os.path.expanduser(key_path) if key_path else None,
                timeout=timeout,
                allow_agent=True,
                look_for_keys=True,
            )
            logger.debug(f"Connected to {user}@{hostname} ({address}:{port})")
            return SSHClient(client, user, hostname, address, dry_run=dry_run)
        except (paramiko.SSHException, OSError) as e:
            client.close()
            last_error = e
            logger.warning(f"Dial attempt {attempt}/{attempts} to {hostname} ({address}) failed: {e}")
            if attempt < attempts:
                time.sleep(random.uniform(0, Config.RETRY_DELAY))

    raise DialError(f"Failed to connect to {user}@{hostname} ({address}:{port}): {last_error}") from last_error
