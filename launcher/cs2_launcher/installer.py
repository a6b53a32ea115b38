from __future__ import annotations
import io
import json
import re
import shutil
import urllib.error
import urllib.request
import zipfile
from pathlib import Path
from typing import Callable
from .archive import extract_zip
from .errors import DownloadError, InstallationFailed
from .fs_layout import Layout
from .logging_setup import get_logger
from .models import ConfigEntry, InstallResult, PluginKind, PluginManifest

log = get_logger("cs2.launcher.install")

Downloader = Callable[[str], bytes]

METAMOD_PLUGIN = PluginManifest(
    name="metamod",
    display_name="Metamod",
    kind=PluginKind.LOADER,
    download_url="about:metamod",
    target_extract_path="@csgo",
)

_GAMEINFO_GAME_LINE = re.compile(r"^([ \t]*)(Game\s+csgo\r?\n)", re.MULTILINE)
_GAMEINFO_METAMOD_LINE = "Game\tcsgo/addons/metamod"


def http_get(url: str) -> bytes:
    req = urllib.request.Request(url, headers={"User-Agent": "cs2-launcher"})
    try:
        with urllib.request.urlopen(req) as resp:
            return resp.read()
    except urllib.error.HTTPError as e:
        raise DownloadError(f"Failed to download {url}: {e.code} {e.reason}") from e
    except (urllib.error.URLError, OSError) as e:
        raise DownloadError(f"Failed to download {url}: {e}") from e


class Installer:
    def __init__(self, layout: Layout, downloader: Downloader = http_get):
        self.layout = layout
        self.downloader = downloader

    def is_installed(self, plugin: PluginManifest) -> bool:
        return self.layout.installation_state(plugin).installed

    def install(self, plugin: PluginManifest) -> InstallResult:
        """
        Download and extract a plugin unless it is already on disk.

        Declared configs are (re)materialized in both cases. Returns
        installed=False when nothing had to be downloaded.
        """
        if self.is_installed(plugin):
            log.info("%s is already installed, skipping installation...", plugin.display_name)
            self.install_configs(plugin)
            return InstallResult(plugin=plugin.name, installed=False)

        if plugin.kind == PluginKind.CONFIG_ONLY:
            log.info("Installing configs of %s...", plugin.display_name)
            self.install_configs(plugin)
            return InstallResult(plugin=plugin.name, installed=True)

        log.info("Installing %s from %s...", plugin.display_name, plugin.download_url)
        data = self.downloader(plugin.download_url)
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise InstallationFailed(f"{plugin.display_name} installation failed: download is not a zip archive.") from e

        target_dir = self.layout.resolve(plugin, plugin.target_extract_path)
        with archive:
            extract_zip(archive, target_dir, plugin.archive_subpath)

        if not self.is_installed(plugin):
            raise InstallationFailed(
                f"{plugin.display_name} installation failed: "
                f"{self.layout.plugin_dir(plugin)} not found after extraction."
            )
        log.info("%s installed successfully.", plugin.display_name)

        self.install_configs(plugin)
        return InstallResult(plugin=plugin.name, installed=True)

    # ---------------- configs ----------------
    def install_configs(self, plugin: PluginManifest) -> None:
        if not plugin.configs:
            return
        log.info("Creating configs for %s...", plugin.display_name)
        for entry in plugin.configs:
            self._materialize(plugin, entry)
        log.info("Configs for %s created successfully.", plugin.display_name)

    def _reference(self, plugin: PluginManifest, value: str) -> Path | None:
        """The file a config string points at, or None when the string is literal content."""
        if not _looks_like_path(value):
            return None
        try:
            ref = self.layout.resolve(plugin, value)
            return ref if ref.is_file() else None
        except OSError:
            # e.g. ENAMETOOLONG: a long content line is not a file name
            return None

    def _materialize(self, plugin: PluginManifest, entry: ConfigEntry) -> None:
        target = self.layout.resolve(plugin, entry.target)
        target.parent.mkdir(parents=True, exist_ok=True)

        source = entry.config
        if isinstance(source, str):
            ref = self._reference(plugin, source)
            if ref is not None:
                # first-install default: never clobber an operator-edited file
                if target.exists():
                    log.debug("Config %s exists, keeping it (source %s)", target, ref)
                    return
                shutil.copyfile(ref, target)
                return
            content = source
        elif isinstance(source, (dict, list)):
            content = json.dumps(source, indent=2, ensure_ascii=False)
        elif source is None:
            content = ""
        else:
            content = json.dumps(source)
        target.write_text(content, encoding="utf-8")

    # ---------------- loader bootstrap ----------------
    def install_metamod(self, download_url: str) -> InstallResult:
        """Install Metamod into csgo/ and register it in gameinfo.gi on first install."""
        metamod = METAMOD_PLUGIN.model_copy(deep=True, update={"download_url": download_url})
        gameinfo = self.layout.csgo / "gameinfo.gi"
        if not self.is_installed(metamod) and not gameinfo.exists():
            raise InstallationFailed(
                "CS2 server gameinfo.gi file not found. Please ensure CS2 server is installed correctly."
            )

        result = self.install(metamod)
        if result.installed:
            register_metamod(gameinfo)
        return result


def register_metamod(gameinfo: Path) -> bool:
    """Add the Metamod search path in front of the csgo one. Returns True if the file changed."""
    content = gameinfo.read_bytes().decode("utf-8")
    if _GAMEINFO_METAMOD_LINE in content:
        return False
    patched = _GAMEINFO_GAME_LINE.sub(
        lambda m: f"{m.group(1)}{_GAMEINFO_METAMOD_LINE}\r\n{m.group(1)}{m.group(2)}", content, count=1
    )
    if patched == content:
        log.warning("No 'Game csgo' search path found in %s, Metamod not registered", gameinfo)
        return False
    gameinfo.write_bytes(patched.encode("utf-8"))
    log.info("Registered Metamod in %s", gameinfo)
    return True


def _looks_like_path(value: str) -> bool:
    return bool(value) and "\n" not in value and len(value) < 4096
