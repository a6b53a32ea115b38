"""
activation.py — enable/disable installed plugins without removing them
-----------------------------------------------------------------------
A plugin is switched off by renaming its primary artifact (the .dll of a
CounterStrikeSharp plugin, the .vdf of a Metamod plugin) to "<name>.disabled"
and back. The file name on disk is the only record of the state.
"""

from __future__ import annotations
from pathlib import Path
from typing import List
from .errors import DependencyUnmet, NotInstalled
from .fs_layout import DISABLED_SUFFIX, Layout
from .logging_setup import get_logger
from .models import PluginKind, PluginManifest
from .registry import PluginRegistry

log = get_logger("cs2.launcher.activation")


class ActivationController:
    def __init__(self, layout: Layout, registry: PluginRegistry):
        self.layout = layout
        self.registry = registry

    def _artifact_pair(self, plugin: PluginManifest) -> tuple[Path, Path] | None:
        active = self.layout.artifact_path(plugin)
        if active is None:
            return None
        return active, active.with_name(active.name + DISABLED_SUFFIX)

    def is_active(self, plugin: PluginManifest) -> bool:
        return self.layout.installation_state(plugin).active

    # ---------------- dependency gating ----------------
    def unmet_dependencies(self, plugin: PluginManifest) -> List[str]:
        unmet = []
        for dep in plugin.dependencies:
            dep_plugin = self.registry.get(dep)
            # unknown names may be installed by hand, nothing to check
            if dep_plugin is not None and not self.is_active(dep_plugin):
                unmet.append(dep)
        return unmet

    def dependencies_satisfied(self, plugin: PluginManifest) -> bool:
        return not self.unmet_dependencies(plugin)

    # ---------------- transitions ----------------
    def activate(self, plugin: PluginManifest) -> None:
        unmet = self.unmet_dependencies(plugin)
        if unmet:
            raise DependencyUnmet(plugin.display_name, unmet)

        pair = self._artifact_pair(plugin)
        if pair is not None:
            active, disabled = pair
            if active.exists():
                if disabled.exists():
                    disabled.unlink()
                log.info("Plugin %s is already enabled.", plugin.display_name)
            elif not disabled.exists():
                raise NotInstalled(f"Plugin {plugin.display_name} not found in CS2 server directory ({active}).")
            else:
                disabled.rename(active)
                log.info("Plugin %s has been enabled.", plugin.display_name)
        plugin.enabled = True

    def deactivate(self, plugin: PluginManifest) -> None:
        pair = self._artifact_pair(plugin)
        if pair is not None:
            active, disabled = pair
            if disabled.exists() and not active.exists():
                log.info("Plugin %s is already disabled.", plugin.display_name)
            elif not active.exists():
                raise NotInstalled(f"Plugin {plugin.display_name} not found in CS2 server directory ({active}).")
            else:
                if disabled.exists():
                    # stale copy from an earlier update; the fresh artifact wins
                    disabled.unlink()
                active.rename(disabled)
                log.info("Plugin %s has been disabled.", plugin.display_name)
        plugin.enabled = False

    def set_active(self, plugin: PluginManifest, enable: bool) -> None:
        if enable:
            self.activate(plugin)
        else:
            self.deactivate(plugin)
