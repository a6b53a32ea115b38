"""
Tests for archive extraction, plugin installation, config materialization
and the Metamod bootstrap.
"""

import json
import zipfile
import pytest
from unittest.mock import Mock

from cs2_launcher.archive import extract_zip
from cs2_launcher.errors import DownloadError, InstallationFailed
from cs2_launcher.installer import METAMOD_PLUGIN, Installer, register_metamod
from cs2_launcher.models import InstallResult, PluginManifest

from conftest import loader_record, make_zip, scripted_record


class CountingDownloader:
    def __init__(self, archives):
        self.archives = archives
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        return self.archives[url]


CSSHARP_ZIP = make_zip({
    "addons/counterstrikesharp/api/CounterStrikeSharp.API.dll": b"dll",
    "addons/metamod/counterstrikesharp.vdf": "\"Metamod Plugin\" {}",
})

GAMEINFO = (
    "\t\tSearchPaths\r\n"
    "\t\t{\r\n"
    "\t\t\tGame_LowViolence\tcsgo_lv\r\n"
    "\t\t\tGame\tcsgo\r\n"
    "\t\t\tGame\tcsgo_imported\r\n"
    "\t\t}\r\n"
)


class TestExtractZip:

    def test_rebases_below_base_dir(self, tmp_path):
        data = make_zip({
            "release/addons/x.txt": "x",
            "release/addons/sub/y.txt": "y",
            "docs/readme.md": "skip me",
        })
        written = extract_zip(data, tmp_path / "out", "release/")
        assert written == 2
        assert (tmp_path / "out" / "addons" / "x.txt").read_text() == "x"
        assert (tmp_path / "out" / "addons" / "sub" / "y.txt").read_text() == "y"
        assert not (tmp_path / "out" / "docs").exists()

    def test_skips_entries_escaping_target(self, tmp_path):
        data = make_zip({"../evil.txt": "no", "ok.txt": "yes"})
        assert extract_zip(data, tmp_path / "out") == 1
        assert not (tmp_path / "evil.txt").exists()
        assert (tmp_path / "out" / "ok.txt").exists()


class TestInstall:

    def test_install_is_idempotent(self, layout):
        plugin = PluginManifest.model_validate(loader_record())
        downloader = CountingDownloader({plugin.download_url: CSSHARP_ZIP})
        installer = Installer(layout, downloader=downloader)

        first = installer.install(plugin)
        second = installer.install(plugin)

        assert first.installed is True
        assert second.installed is False
        assert downloader.calls == [plugin.download_url]
        assert (layout.addons / "counterstrikesharp" / "api" / "CounterStrikeSharp.API.dll").exists()
        assert layout.installation_state(plugin).active

    def test_scripted_plugin_into_its_own_dir(self, layout):
        plugin = PluginManifest.model_validate(
            scripted_record("kz", targetExtractDir="@plugin", dirInZipToExtract="bin/kz")
        )
        data = make_zip({"bin/kz/kz.dll": b"dll", "bin/kz/kz.deps.json": "{}"})
        Installer(layout, downloader=lambda url: data).install(plugin)

        assert (layout.cssharpplugins / "kz" / "kz.dll").exists()
        assert layout.installation_state(plugin).installed

    def test_missing_archive_subpath_fails_without_target(self, layout):
        plugin = PluginManifest.model_validate(
            scripted_record("kz", targetExtractDir="@plugin", dirInZipToExtract="bin/kz")
        )
        data = make_zip({"other/kz.dll": b"dll"})

        with pytest.raises(InstallationFailed):
            Installer(layout, downloader=lambda url: data).install(plugin)
        assert not layout.plugin_dir(plugin).exists()

    def test_download_error_propagates(self, layout):
        def broken(url):
            raise DownloadError(f"Failed to download {url}: 404 Not Found")

        plugin = PluginManifest.model_validate(loader_record())
        with pytest.raises(DownloadError):
            Installer(layout, downloader=broken).install(plugin)

    def test_not_a_zip(self, layout):
        plugin = PluginManifest.model_validate(loader_record())
        with pytest.raises(InstallationFailed):
            Installer(layout, downloader=lambda url: b"<html>not found</html>").install(plugin)


class TestConfigs:

    def test_reference_is_copied_once_literal_is_overwritten(self, layout, tmp_path):
        default_cfg = tmp_path / "defaults" / "kz.cfg"
        default_cfg.parent.mkdir()
        default_cfg.write_text("kz_default 1", encoding="utf-8")

        plugin = PluginManifest.model_validate({
            "name": "kzcfg",
            "type": "config-only",
            "configs": [
                {"target": "@csgo/cfg/kz.cfg", "config": str(default_cfg)},
                {"target": "@cssharpconfigs/core.json", "config": {"PublicChatTrigger": ["!"]}},
                {"target": "@csgo/cfg/motd.txt", "config": "welcome"},
            ],
        })
        installer = Installer(layout)

        assert installer.install(plugin).installed is True
        kz_cfg = layout.csgo / "cfg" / "kz.cfg"
        motd = layout.csgo / "cfg" / "motd.txt"
        assert kz_cfg.read_text(encoding="utf-8") == "kz_default 1"
        assert json.loads((layout.cssharpconfigs / "core.json").read_text(encoding="utf-8")) == {"PublicChatTrigger": ["!"]}
        assert motd.read_text(encoding="utf-8") == "welcome"

        kz_cfg.write_text("kz_default 0", encoding="utf-8")
        motd.write_text("edited", encoding="utf-8")
        assert installer.install(plugin).installed is False

        assert kz_cfg.read_text(encoding="utf-8") == "kz_default 0"
        assert motd.read_text(encoding="utf-8") == "welcome"

    def test_long_literal_line_is_content(self, layout):
        content = "hostname " + "x" * 300
        plugin = PluginManifest.model_validate({
            "name": "longcfg",
            "type": "config-only",
            "configs": [{"target": "@csgo/cfg/server.cfg", "config": content}],
        })
        Installer(layout).install(plugin)
        assert (layout.csgo / "cfg" / "server.cfg").read_text(encoding="utf-8") == content

    def test_config_only_installed_when_targets_exist(self, layout):
        plugin = PluginManifest.model_validate({
            "name": "cfgs",
            "type": "config-only",
            "enabled": False,
            "configs": [{"target": "@csgo/cfg/server.cfg", "config": "hostname kz"}],
        })
        assert layout.installation_state(plugin).installed is False
        Installer(layout).install(plugin)
        state = layout.installation_state(plugin)
        assert state.installed is True
        assert state.active is False


class TestMetamod:

    def _metamod_zip(self):
        return make_zip({"addons/metamod/bin/win64/metamod.2.cs2.dll": b"dll"})

    def test_requires_gameinfo(self, layout):
        installer = Installer(layout, downloader=lambda url: self._metamod_zip())
        with pytest.raises(InstallationFailed):
            installer.install_metamod("https://example.invalid/mm.zip")

    def test_registers_search_path_once(self, layout):
        layout.csgo.mkdir(parents=True)
        gameinfo = layout.csgo / "gameinfo.gi"
        gameinfo.write_bytes(GAMEINFO.encode("utf-8"))
        downloader = CountingDownloader({"https://example.invalid/mm.zip": self._metamod_zip()})
        installer = Installer(layout, downloader=downloader)

        assert installer.install_metamod("https://example.invalid/mm.zip").installed is True
        assert installer.install_metamod("https://example.invalid/mm.zip").installed is False

        content = gameinfo.read_bytes().decode("utf-8")
        assert content.count("csgo/addons/metamod") == 1
        assert "Game\tcsgo/addons/metamod\r\n\t\t\tGame\tcsgo\r\n" in content
        assert len(downloader.calls) == 1

    def test_builtin_manifest_is_not_shared(self, layout):
        layout.csgo.mkdir(parents=True)
        (layout.csgo / "gameinfo.gi").write_bytes(GAMEINFO.encode("utf-8"))
        installer = Installer(layout)
        installer.install = Mock(return_value=InstallResult(plugin="metamod", installed=False))

        installer.install_metamod("https://example.invalid/mm.zip")

        passed = installer.install.call_args.args[0]
        assert passed.download_url == "https://example.invalid/mm.zip"
        assert passed.dependencies is not METAMOD_PLUGIN.dependencies
        assert passed.configs is not METAMOD_PLUGIN.configs
        assert METAMOD_PLUGIN.download_url == "about:metamod"

    def test_register_metamod_is_idempotent(self, tmp_path):
        gameinfo = tmp_path / "gameinfo.gi"
        gameinfo.write_bytes(GAMEINFO.encode("utf-8"))
        assert register_metamod(gameinfo) is True
        assert register_metamod(gameinfo) is False
