from __future__ import annotations
from typing import Any, Dict, List, Optional
from .activation import ActivationController
from .config_store import ConfigStore
from .errors import LauncherError, PreconditionFailed
from .fs_layout import build_layout, ensure_dirs
from .installer import Downloader, Installer, http_get
from .lifecycle import ServerLifecycle
from .logging_setup import get_logger
from .manifest_store import JsonManifestStore
from .models import DashboardData, PluginManifest, PluginView, ServerStatus
from .process_runner import ProcessRunner
from .rcon_sessions import ClientFactory, RconSessionManager
from .registry import PluginRegistry
from .server_info import ServerInfoQuery
from .settings import Settings
from .steamcmd import SteamCmdFetcher

log = get_logger("cs2.launcher.orch")


class Orchestrator:
    """Owns every piece of launcher state; nothing lives in module globals."""

    def __init__(self, settings: Settings, *, downloader: Downloader = http_get,
                 runner: Optional[ProcessRunner] = None,
                 fetcher: Optional[SteamCmdFetcher] = None,
                 rcon_client_factory: Optional[ClientFactory] = None):
        self.settings = settings
        self.layout = build_layout(settings)
        self.configs = ConfigStore(settings.config_dir)
        self.registry = PluginRegistry(
            JsonManifestStore(settings.plugins_config_path),
            loader_name=settings.loader_plugin_name,
            status_provider=self.status,
        )
        self.installer = Installer(self.layout, downloader=downloader)
        self.activation = ActivationController(self.layout, self.registry)
        self.runner = runner or ProcessRunner(recent_lines=settings.recent_log_lines)
        self.lifecycle = ServerLifecycle(
            settings,
            self.registry,
            self.installer,
            self.activation,
            self.runner,
            fetcher or SteamCmdFetcher(downloader),
        )
        if rcon_client_factory is not None:
            self.lifecycle.sessions = RconSessionManager(settings, self.lifecycle.is_running, rcon_client_factory)
        self.server_info = ServerInfoQuery(self.sessions, port=settings.server_port)

    @property
    def sessions(self) -> RconSessionManager:
        return self.lifecycle.sessions

    def status(self) -> ServerStatus:
        return self.lifecycle.status()

    def prepare_environment(self) -> None:
        ensure_dirs(self.settings)
        self.registry.load()

    # ---------------- startup driver ----------------
    def run(self, *, start: bool = True) -> None:
        """
        Update server -> install/activate plugins -> start server.

        Any failure is logged and re-raised; a partially set up plugin set is
        never started.
        """
        try:
            self.lifecycle.update_or_install()
            self.lifecycle.update_plugins()
            if start:
                self.lifecycle.start()
        except LauncherError:
            log.exception("Startup halted")
            raise

    # ---------------- operator operations ----------------
    def toggle_plugin(self, name: str, enable: bool) -> PluginManifest:
        if self.status() != ServerStatus.STOPPED:
            raise PreconditionFailed("Server must be stopped to enable or disable plugins.")
        plugin = self.registry.require(name)
        self.activation.set_active(plugin, enable)
        self.registry.persist()
        return plugin

    def plugin_views(self) -> List[PluginView]:
        views = []
        for p in self.registry.all():
            state = self.layout.installation_state(p)
            views.append(PluginView(plugin=p.to_record(), installed=state.installed, active=state.active))
        return views

    def plan(self) -> Dict[str, Any]:
        """Dry run: install order plus what is on disk right now. No side effects."""
        steps = []
        for p in self.registry.ordered_by_dependencies():
            state = self.layout.installation_state(p)
            steps.append({
                "name": p.name,
                "kind": p.kind.value,
                "enabled": p.enabled,
                "installed": state.installed,
                "active": state.active,
                "will_install": not state.installed,
                "unmet_dependencies": self.activation.unmet_dependencies(p) if p.enabled else [],
                "target": str(self.layout.resolve(p, p.target_extract_path)),
            })
        return {
            "status": self.status().value,
            "server_installed": self.settings.server_executable.exists(),
            "plugins": steps,
        }

    def dashboard(self) -> DashboardData:
        info = self.server_info.query()
        return DashboardData(
            status=self.status(),
            active_map=info.active_map,
            plugins=self.plugin_views(),
            configs=self.configs.list(),
            server_logs=self.runner.recent_logs(),
            connected_players=info.connected_players,
            local_address=info.local_address,
            public_address=info.public_address,
        )
