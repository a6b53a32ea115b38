"""
Error taxonomy of the launcher.

Every operation-level failure derives from LauncherError so the startup
driver and the HTTP shim can handle them in one place.
"""

from __future__ import annotations
from typing import Iterable, List


class LauncherError(Exception):
    """Base class for all launcher failures."""


class ValidationError(LauncherError):
    """Manifest (or other input) has the wrong shape. Fatal at startup."""

    def __init__(self, problems: Iterable[str], message: str = "Invalid plugins configuration"):
        self.problems: List[str] = list(problems)
        super().__init__(f"{message}: " + "; ".join(self.problems) if self.problems else message)


class PreconditionFailed(LauncherError):
    """Mutating operation attempted in the wrong lifecycle state."""


class DownloadError(LauncherError):
    pass


class InstallationFailed(LauncherError):
    pass


class NotInstalled(LauncherError):
    pass


class UnknownPlugin(LauncherError):
    pass


class DependencyUnmet(LauncherError):
    def __init__(self, plugin: str, unmet: Iterable[str]):
        self.plugin = plugin
        self.unmet: List[str] = list(unmet)
        super().__init__(
            f"Plugin {plugin} is enabled but its dependencies are not met. "
            f"Please enable [{', '.join(self.unmet)}] to use {plugin}."
        )


class OperationInProgress(LauncherError):
    pass


class ExecutableMissing(LauncherError):
    pass


class ServerNotRunning(LauncherError):
    pass


class UnknownSession(LauncherError):
    pass


class RconTransportError(LauncherError):
    pass
