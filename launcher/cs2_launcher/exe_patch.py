from __future__ import annotations
import shutil
import struct
from pathlib import Path
from .errors import InstallationFailed
from .logging_setup import get_logger

log = get_logger("cs2.launcher.exe")

_PE_OFFSET_POS = 0x3C
_PE_SIGNATURE = 0x4550  # "PE\0\0"
_SUBSYSTEM_OFFSET = 0x5C

SUBSYSTEM_WINDOWS = 0x02
SUBSYSTEM_CONSOLE = 0x03

def set_pe_subsystem(path: Path, subsystem: int = SUBSYSTEM_CONSOLE) -> bool:
    """
    Rewrite the PE optional-header subsystem of a Windows executable so the
    dedicated server writes to the console it was started from.

    Works on a copy that replaces the original only when the patch succeeded.
    Returns False if the file already had the requested subsystem.
    """
    with path.open("rb") as f:
        header = f.read(4096)
    if len(header) < _PE_OFFSET_POS + 4:
        raise InstallationFailed(f"{path} is too small to be a PE executable")
    pe_offset = struct.unpack_from("<I", header, _PE_OFFSET_POS)[0]
    with path.open("rb") as f:
        f.seek(pe_offset)
        sig = f.read(4)
        f.seek(pe_offset + _SUBSYSTEM_OFFSET)
        current = f.read(2)
    if len(sig) < 4 or struct.unpack("<I", sig)[0] != _PE_SIGNATURE:
        raise InstallationFailed(f"Error in find PE header of {path}")
    if len(current) == 2 and struct.unpack("<H", current)[0] == subsystem:
        return False

    patched = path.with_name(path.name + ".modified")
    shutil.copyfile(path, patched)
    try:
        with patched.open("r+b") as f:
            f.seek(pe_offset + _SUBSYSTEM_OFFSET)
            f.write(struct.pack("<H", subsystem))
        patched.replace(path)
    finally:
        patched.unlink(missing_ok=True)
    log.info("Patched PE subsystem of %s to %d", path, subsystem)
    return True
