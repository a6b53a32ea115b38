"""
Tests for the SteamCMD bootstrap and the PE subsystem patch.
"""

import struct
import pytest
from unittest.mock import Mock, patch

from cs2_launcher.errors import InstallationFailed
from cs2_launcher.exe_patch import SUBSYSTEM_CONSOLE, SUBSYSTEM_WINDOWS, set_pe_subsystem
from cs2_launcher.steamcmd import SteamCMD, SteamCmdFetcher

from conftest import make_zip


def _fake_pe(subsystem):
    data = bytearray(0x200)
    data[0:2] = b"MZ"
    struct.pack_into("<I", data, 0x3C, 0x80)
    data[0x80:0x84] = b"PE\0\0"
    struct.pack_into("<H", data, 0x80 + 0x5C, subsystem)
    return bytes(data)


class TestSteamCmdFetcher:

    def test_downloads_once(self, tmp_path):
        downloader = Mock(return_value=make_zip({"steamcmd.sh": "#!/bin/sh\n"}))
        fetcher = SteamCmdFetcher(downloader)

        first = fetcher.fetch("https://example.invalid/steamcmd.zip", tmp_path / "steamcmd")
        second = fetcher.fetch("https://example.invalid/steamcmd.zip", tmp_path / "steamcmd")

        assert first.executable_path == tmp_path / "steamcmd" / "steamcmd.sh"
        assert second == first
        assert downloader.call_count == 1

    def test_archive_without_executable(self, tmp_path):
        fetcher = SteamCmdFetcher(Mock(return_value=make_zip({"readme.txt": "x"})))
        with pytest.raises(InstallationFailed):
            fetcher.fetch("https://example.invalid/steamcmd.zip", tmp_path / "steamcmd")


class TestSteamCMD:

    def test_app_update_arguments(self, tmp_path):
        with patch("cs2_launcher.steamcmd.subprocess.run") as run:
            run.return_value = Mock(returncode=0, stdout="", stderr="")
            SteamCMD(tmp_path / "steamcmd.sh").app_update(730, tmp_path / "kzserver")

        cmd = run.call_args.args[0]
        assert cmd == [
            str(tmp_path / "steamcmd.sh"),
            "+force_install_dir", str(tmp_path / "kzserver"),
            "+login", "anonymous",
            "+app_update", "730", "validate",
            "+quit",
        ]

    def test_nonzero_exit_is_not_fatal(self, tmp_path):
        with patch("cs2_launcher.steamcmd.subprocess.run") as run:
            run.return_value = Mock(returncode=7, stdout="", stderr="")
            SteamCMD(tmp_path / "steamcmd.sh").app_update(730, tmp_path, validate=False)

    def test_missing_binary(self, tmp_path):
        with pytest.raises(InstallationFailed):
            SteamCMD(tmp_path / "does-not-exist").app_update(730, tmp_path)


class TestPeSubsystem:

    def test_patch_once(self, tmp_path):
        exe = tmp_path / "cs2.exe"
        exe.write_bytes(_fake_pe(SUBSYSTEM_WINDOWS))

        assert set_pe_subsystem(exe) is True
        assert struct.unpack_from("<H", exe.read_bytes(), 0x80 + 0x5C)[0] == SUBSYSTEM_CONSOLE
        assert set_pe_subsystem(exe) is False
        assert not (tmp_path / "cs2.exe.modified").exists()

    def test_not_a_pe_file(self, tmp_path):
        exe = tmp_path / "cs2.exe"
        exe.write_bytes(b"MZ" + b"\0" * 0x100)
        with pytest.raises(InstallationFailed):
            set_pe_subsystem(exe)
