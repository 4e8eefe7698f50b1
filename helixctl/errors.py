"""Exceptions raised by helixctl."""
from typing import Optional


class HelixError(Exception):
    """Base class for all helixctl errors."""
    pass


class ConfigurationError(HelixError):
    """Raised when required input is missing or a network specification is invalid."""
    pass


class TemplateRenderError(ConfigurationError):
    """Raised when a template cannot be parsed or rendered."""
    pass


class ResolutionError(HelixError):
    """Raised when a member name cannot be resolved to an address."""
    pass


class DialError(HelixError):
    """Raised when an SSH connection cannot be established."""
    pass


class RemoteExecError(HelixError):
    """Raised when a command fails on a remote machine."""

    def __init__(self, host: str, command: str, exit_status: int, stderr: str = ""):
        self.host = host
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        message = f"Command '{command}' failed on {host} with exit status {exit_status}"
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class CertificateError(HelixError):
    """Raised when key generation, signing or loading of trust material fails."""
    pass


class UnsupportedArchitectureError(HelixError):
    """Raised when a node reports a platform we cannot provision."""

    def __init__(self, machine: str, host: Optional[str] = None):
        self.machine = machine
        self.host = host
        where = f" on {host}" if host else ""
        super().__init__(f"Unsupported architecture '{machine}'{where}")


class ReadinessTimeoutError(HelixError, TimeoutError):
    """Raised when the control plane does not become responsive in time."""
    pass


class KubernetesAPIError(HelixError):
    """Raised when the API server rejects a request."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)
