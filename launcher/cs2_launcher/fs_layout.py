from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Dict
from .errors import ValidationError
from .models import InstallationState, PluginKind, PluginManifest
from .settings import Settings

DISABLED_SUFFIX = ".disabled"

@dataclass(frozen=True)
class Layout:
    game: Path
    csgo: Path
    addons: Path
    metamod: Path
    cssharp: Path
    cssharpplugins: Path
    cssharpconfigs: Path
    cssharpshared: Path

    def roots(self) -> Dict[str, Path]:
        return {
            "game": self.game,
            "csgo": self.csgo,
            "addons": self.addons,
            "metamod": self.metamod,
            "cssharp": self.cssharp,
            "cssharpplugins": self.cssharpplugins,
            "cssharpconfigs": self.cssharpconfigs,
            "cssharpshared": self.cssharpshared,
        }

    # ---------------- per-plugin locations ----------------
    def plugin_dir(self, plugin: PluginManifest) -> Path:
        if plugin.kind == PluginKind.LOADER:
            return self.addons / plugin.name
        if plugin.kind == PluginKind.SCRIPTED_PLUGIN:
            base = self.cssharpshared if plugin.is_shared_library else self.cssharpplugins
            return base / plugin.name
        # config-only plugins own no directory; their configs land wherever they point
        return self.cssharpconfigs / "plugins" / plugin.name

    def plugin_config(self, plugin: PluginManifest) -> Path:
        if plugin.kind == PluginKind.LOADER:
            return self.metamod / f"{plugin.name}.vdf"
        return self.cssharpconfigs / "plugins" / plugin.name

    def artifact_path(self, plugin: PluginManifest) -> Path | None:
        """The file whose name decides whether the server loads the plugin."""
        if plugin.kind == PluginKind.LOADER:
            return self.plugin_config(plugin)
        if plugin.kind == PluginKind.SCRIPTED_PLUGIN:
            return self.plugin_dir(plugin) / f"{plugin.name}.dll"
        return None

    def resolve(self, plugin: PluginManifest, path: str) -> Path:
        """
        Resolve a manifest path.

        "@<root>/rest" names a well-known directory (see roots()) or one of the
        per-plugin roots "@plugin" / "@pluginconfig"; the remainder is appended.
        Anything else is taken as a filesystem path, relative to the cwd.
        """
        normalized = path.replace("\\", "/")
        if normalized.startswith("@"):
            head, _, rest = normalized[1:].partition("/")
            if head == "plugin":
                base = self.plugin_dir(plugin)
            elif head == "pluginconfig":
                base = self.plugin_config(plugin)
            elif head in self.roots():
                base = self.roots()[head]
            else:
                raise ValidationError(
                    [f"{plugin.name}: unknown directory '@{head}' in path {path!r}"],
                    message="Invalid plugin path",
                )
            return (base / rest) if rest else base
        p = Path(normalized)
        return p if p.is_absolute() else Path.cwd() / p

    def installation_state(self, plugin: PluginManifest) -> InstallationState:
        if plugin.kind == PluginKind.CONFIG_ONLY:
            installed = all(self.resolve(plugin, c.target).exists() for c in plugin.configs)
            return InstallationState(installed=installed, active=plugin.enabled)
        artifact = self.artifact_path(plugin)
        return InstallationState(
            installed=self.plugin_dir(plugin).exists(),
            active=artifact is not None and artifact.exists(),
        )

def build_layout(settings: Settings) -> Layout:
    game = settings.game_dir
    csgo = game / "csgo"
    addons = csgo / "addons"
    cssharp = addons / "counterstrikesharp"
    return Layout(
        game=game,
        csgo=csgo,
        addons=addons,
        metamod=addons / "metamod",
        cssharp=cssharp,
        cssharpplugins=cssharp / "plugins",
        cssharpconfigs=cssharp / "configs",
        cssharpshared=cssharp / "shared",
    )

def ensure_dirs(settings: Settings) -> None:
    for p in [settings.steamcmd_dir, settings.config_dir, settings.logs_dir, settings.plugins_config_path.parent]:
        p.mkdir(parents=True, exist_ok=True)
