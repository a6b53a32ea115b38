from __future__ import annotations
import io
import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import Optional, Union
from .logging_setup import get_logger

log = get_logger("cs2.launcher.archive")

def _normalize_base_dir(base_dir: Optional[str]) -> Optional[str]:
    if not base_dir:
        return None
    base = base_dir.replace("\\", "/").strip("/")
    return (base + "/") if base else None

def _safe_relative(name: str) -> Optional[PurePosixPath]:
    rel = PurePosixPath(name)
    if rel.is_absolute() or any(part == ".." for part in rel.parts) or not rel.parts:
        return None
    return rel

def extract_zip(archive: Union[bytes, zipfile.ZipFile], target_dir: Path, base_dir: Optional[str] = None) -> int:
    """
    Extract an archive into target_dir.

    With base_dir only entries below that archive folder are written, rebased so
    that base_dir itself maps onto target_dir. Entries outside of it, directory
    entries and entries escaping target_dir are skipped. Returns the number of
    files written.
    """
    zf = archive if isinstance(archive, zipfile.ZipFile) else zipfile.ZipFile(io.BytesIO(archive))
    prefix = _normalize_base_dir(base_dir)
    written = 0

    for info in zf.infolist():
        name = info.filename.replace("\\", "/")
        if info.is_dir() or name.endswith("/"):
            continue
        if prefix:
            if not name.startswith(prefix):
                continue
            name = name[len(prefix):]
        rel = _safe_relative(name)
        if rel is None:
            log.warning("Skipping unsafe archive entry %s", info.filename)
            continue

        dest = target_dir.joinpath(*rel.parts)
        dest.parent.mkdir(parents=True, exist_ok=True)
        with zf.open(info) as src, open(dest, "wb") as out:
            shutil.copyfileobj(src, out)
        written += 1

    log.debug("Extracted %d file(s) into %s (base_dir=%s)", written, target_dir, base_dir)
    return written
