"""
Error taxonomy for provisioning runs.

Only ``ConfigError`` and an unrecovered ``DirectoryRemovalError`` abort a
run. Everything else is caught by the lifecycle controller and recorded
as a failed step in the run report.
"""

from __future__ import annotations


class TelestackError(Exception):
    """Base class for all provisioning errors."""


class ConfigError(TelestackError):
    """Invalid environment/project input or settings file."""


class SourceMissingError(TelestackError):
    """An expected upstream checkout or template directory is absent."""

    def __init__(self, component: str, path: object):
        super().__init__(f"Source for '{component}' not found: {path}")
        self.component = component
        self.path = path


class TemplateMissingError(TelestackError):
    """No env template exists anywhere in a component's search chain."""


class AuthError(TelestackError):
    """Reverse-proxy control-plane login failed, fallback included."""


class NetworkOpError(TelestackError):
    """A network create/connect/remove call failed for a real reason."""


class DirectoryRemovalError(TelestackError):
    """A directory tree could not be removed within the retry budget."""

    def __init__(self, path: object, attempts: int, last_error: str = ""):
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Could not remove {path} after {attempts} attempt(s){detail}")
        self.path = path
        self.attempts = attempts
        self.last_error = last_error


class RuntimeCommandError(TelestackError):
    """A container-runtime command exited non-zero."""

    def __init__(self, args: list[str] | tuple[str, ...], returncode: int, stderr: str = ""):
        cmd = " ".join(args)
        msg = f"'{cmd}' exited {returncode}"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
