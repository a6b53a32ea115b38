from __future__ import annotations
import stat
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List
from .archive import extract_zip
from .errors import InstallationFailed
from .installer import Downloader, http_get
from .logging_setup import get_logger

log = get_logger("cs2.launcher.steamcmd")

_EXECUTABLES = ("steamcmd.exe", "steamcmd.sh")

@dataclass(frozen=True)
class FetchResult:
    executable_path: Path

class SteamCmdFetcher:
    """Downloads the SteamCMD bootstrap archive; safe to call on every run."""

    def __init__(self, downloader: Downloader = http_get):
        self.downloader = downloader

    def fetch(self, url: str, dest_dir: Path) -> FetchResult:
        existing = self._find_executable(dest_dir)
        if existing is None:
            log.info("Downloading SteamCMD from %s into %s", url, dest_dir)
            dest_dir.mkdir(parents=True, exist_ok=True)
            extract_zip(self.downloader(url), dest_dir)
            existing = self._find_executable(dest_dir)
        if existing is None:
            raise InstallationFailed(f"SteamCMD executable not found in {dest_dir} after download.")
        if existing.suffix == ".sh":
            existing.chmod(existing.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return FetchResult(executable_path=existing)

    @staticmethod
    def _find_executable(dest_dir: Path) -> Path | None:
        for name in _EXECUTABLES:
            p = dest_dir / name
            if p.is_file():
                return p
        return None

class SteamCMD:
    def __init__(self, executable: Path):
        self.bin = executable

    def _run(self, args: List[str]) -> None:
        cmd = [str(self.bin)] + args + ["+quit"]
        log.info("SteamCMD: %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise InstallationFailed(f"SteamCMD could not be started: {e}") from e
        if proc.stdout:
            log.debug("steamcmd stdout: %s", proc.stdout[-4000:])
        if proc.stderr:
            log.debug("steamcmd stderr: %s", proc.stderr[-4000:])
        # the return code is unreliable after self-updates; callers check the installed files
        if proc.returncode != 0:
            log.warning("SteamCMD exited with rc=%s", proc.returncode)

    def app_update(self, app_id: int, install_dir: Path, *, validate: bool = True) -> None:
        args: List[str] = [
            "+force_install_dir", str(install_dir),
            "+login", "anonymous",
            "+app_update", str(app_id),
        ]
        if validate:
            args.append("validate")
        self._run(args)
