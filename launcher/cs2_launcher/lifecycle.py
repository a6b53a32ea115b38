"""
lifecycle.py — CS2 dedicated server state machine
-------------------------------------------------
Installs/updates the server through SteamCMD, brings the plugin set in line
with the manifests and supervises the server process.

The status is never stored. It is derived on every call from the operation
flags below and from the liveness of the process handle, so a server that
exits on its own shows up as STOPPED without anybody calling stop().
"""

from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional
from .activation import ActivationController
from .errors import (
    ExecutableMissing,
    InstallationFailed,
    OperationInProgress,
    PreconditionFailed,
)
from .exe_patch import set_pe_subsystem
from .installer import Installer
from .logging_setup import get_logger
from .models import ServerStatus
from .process_runner import ProcessHandle, ProcessRunner
from .rcon_sessions import RconSessionManager
from .registry import PluginRegistry
from .settings import Settings
from .steamcmd import SteamCMD, SteamCmdFetcher

log = get_logger("cs2.launcher.lifecycle")


class ServerLifecycle:
    def __init__(
        self,
        settings: Settings,
        registry: PluginRegistry,
        installer: Installer,
        activation: ActivationController,
        runner: ProcessRunner,
        fetcher: SteamCmdFetcher,
        sessions: Optional[RconSessionManager] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.installer = installer
        self.activation = activation
        self.runner = runner
        self.fetcher = fetcher
        self.sessions = sessions or RconSessionManager(settings, self.is_running)

        self._flags = {"installing": False, "updating": False, "updating_plugins": False, "starting": False}
        self._flag_lock = threading.Lock()
        self._handle: Optional[ProcessHandle] = None

    # ---------------- guards ----------------
    @contextmanager
    def _guard(self, flag: str, message: str) -> Iterator[None]:
        with self._flag_lock:
            if self._flags[flag]:
                raise OperationInProgress(message)
            self._flags[flag] = True
        try:
            yield
        finally:
            with self._flag_lock:
                self._flags[flag] = False

    # ---------------- status ----------------
    def is_running(self) -> bool:
        handle = self._handle
        return handle is not None and handle.is_alive()

    def status(self) -> ServerStatus:
        with self._flag_lock:
            flags = dict(self._flags)
        if flags["installing"]:
            return ServerStatus.INSTALLING
        if flags["updating"]:
            return ServerStatus.UPDATING
        if flags["updating_plugins"]:
            return ServerStatus.UPDATING_PLUGINS
        if flags["starting"]:
            return ServerStatus.STARTING
        if self.is_running():
            return ServerStatus.RUNNING
        return ServerStatus.STOPPED

    @property
    def pid(self) -> Optional[int]:
        handle = self._handle
        return handle.pid if handle is not None and handle.is_alive() else None

    # ---------------- install / update ----------------
    def update(
        self,
        start_message: str = "Updating CS2 server...",
        success_message: str = "CS2 server updated successfully.",
        error_message: str = "CS2 server update failed. The executable was not found.",
    ) -> None:
        with self._guard("updating", "CS2 server update is already in progress."):
            log.info(start_message)
            exe = self.settings.server_executable
            if self.settings.skip_install:
                log.info("SKIP_INSTALL: not running SteamCMD for app %s.", self.settings.cs2_app_id)
            else:
                fetched = self.fetcher.fetch(self.settings.steamcmd_download_url, self.settings.steamcmd_dir)
                SteamCMD(fetched.executable_path).app_update(
                    self.settings.cs2_app_id, self.settings.kzserver_dir, validate=True
                )
                if self.settings.patch_console_subsystem and exe.exists():
                    set_pe_subsystem(exe)

            if not exe.exists():
                raise InstallationFailed(error_message)
            log.info(success_message)

    def install(self) -> None:
        with self._guard("installing", "CS2 server installation is already in progress."):
            self.update(
                "Installing CS2 server...",
                "CS2 server installed successfully.",
                "CS2 server installation failed. The executable was not found.",
            )

    def update_or_install(self) -> None:
        if self.settings.server_executable.exists():
            log.info("CS2 server already installed, updating...")
            self.update()
        elif self.settings.game_dir.exists():
            raise PreconditionFailed(
                f"CS2 server directory {self.settings.game_dir} exists but the server is not installed. "
                "Please remove the directory manually to confirm you want to reinstall CS2 server, then re-run."
            )
        else:
            self.install()

    # ---------------- plugins ----------------
    def update_plugins(self) -> List[str]:
        """
        Install Metamod, then every plugin in dependency order, switching each
        one on or off as its manifest says. Stops at the first failure.
        Returns the names of plugins that were freshly installed.
        """
        with self._guard("updating_plugins", "Plugins installation is already in progress."):
            if self.is_running():
                raise PreconditionFailed("Server must be stopped to update plugins.")
            fresh: List[str] = []
            if self.settings.metamod_download_url:
                self.installer.install_metamod(self.settings.metamod_download_url)
            else:
                log.warning("METAMOD_DOWNLOAD_URL not set, skipping Metamod installation.")

            for plugin in self.registry.ordered_by_dependencies():
                result = self.installer.install(plugin)
                if result.installed:
                    fresh.append(plugin.name)
                self.activation.set_active(plugin, plugin.enabled)
            log.info("Plugins are up to date (%d freshly installed).", len(fresh))
            return fresh

    # ---------------- process ----------------
    def _command(self) -> List[str]:
        s = self.settings
        cmd = [
            str(s.server_executable),
            "-dedicated",
            "-console",
            "-noshaderapi",
            "-usercon",
            "-toconsole",
            "-maxplayers_override", str(s.server_max_players),
            "-nohltv",
            "+sv_lan", "1" if s.server_lan_only else "0",
            "+sv_cheats", "1" if s.server_cheats_enabled else "0",
            "+hostport", str(s.server_port),
        ]
        if s.rcon_password:
            cmd += ["+rcon_password", s.rcon_password]
        if s.steam_gslt_token:
            cmd += ["+sv_setsteamaccount", s.steam_gslt_token]
        if s.server_workshop_map:
            cmd += ["+host_workshop_map", s.server_workshop_map]
        return cmd + list(s.server_extra_args)

    def _on_exit(self, handle: ProcessHandle, rc: int) -> None:
        # only forget the handle if it was not superseded in the meantime
        if self._handle is handle:
            log.info("CS2 server process exited (rc=%s).", rc)
            self.sessions.close_all()
            self._handle = None

    def start(self) -> ProcessHandle:
        exe = self.settings.server_executable
        if not exe.exists():
            raise ExecutableMissing("CS2 server executable not found. Please ensure CS2 server is installed correctly.")

        with self._guard("starting", "CS2 server is already starting."):
            previous = self._handle
            if previous is not None and previous.is_alive():
                log.info("CS2 server is already running. Stopping the existing server before starting a new one.")
                self.sessions.close_all()
                previous.kill()
            self._handle = None

            log.info("Starting CS2 server...")
            handle = self.runner.start(
                "server",
                self._command(),
                cwd=exe.parent,
                log_file=self.settings.logs_dir / "server.log",
                on_exit=self._on_exit,
            )
            self._handle = handle
            log.info("CS2 server started on localhost:%s.", self.settings.server_port)
            return handle

    def stop(self) -> None:
        handle = self._handle
        if handle is None or not handle.is_alive():
            log.info("CS2 server is not running.")
            self._handle = None
            return

        log.info("Stopping CS2 server...")
        self.sessions.close_all()
        handle.kill()
        self._handle = None
        log.info("CS2 server stopped successfully.")
