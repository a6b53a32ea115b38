from __future__ import annotations
import subprocess
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Deque, List, Optional
from .logging_setup import get_logger
from .models import ServerLogEntry

log = get_logger("cs2.launcher.proc")

_ERROR_MARKERS = ("error", "failed", "exception")

@dataclass
class ProcessHandle:
    name: str
    proc: subprocess.Popen
    reader: Optional[threading.Thread] = field(default=None, repr=False)

    @property
    def pid(self) -> int:
        return self.proc.pid

    def is_alive(self) -> bool:
        return self.proc.poll() is None

    def kill(self) -> None:
        if self.is_alive():
            log.info("Killing %s (pid=%s)", self.name, self.proc.pid)
            self.proc.kill()

def _open_log_file(path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    return open(path, "a", encoding="utf-8", buffering=1)

class ProcessRunner:
    """
    Spawns supervised processes and streams their combined output into a log
    file and a bounded in-memory buffer. on_exit fires once the process is
    gone, whatever the cause.
    """

    def __init__(self, recent_lines: int = 500):
        self.recent: Deque[ServerLogEntry] = deque(maxlen=recent_lines)
        self._lock = threading.Lock()

    def start(self, name: str, cmd: List[str], *, cwd: Optional[Path] = None, log_file: Optional[Path] = None,
              env: Optional[dict] = None,
              on_exit: Optional[Callable[[ProcessHandle, int], None]] = None) -> ProcessHandle:
        log.info("Starting %s: %s", name, " ".join(cmd))
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            env=env,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
        handle = ProcessHandle(name=name, proc=proc)
        reader = threading.Thread(
            target=self._pump,
            args=(handle, log_file, on_exit),
            name=f"{name}-output",
            daemon=True,
        )
        handle.reader = reader
        reader.start()
        return handle

    def _pump(self, handle: ProcessHandle, log_file: Optional[Path],
              on_exit: Optional[Callable[[ProcessHandle, int], None]]) -> None:
        fh = None
        if log_file:
            try:
                fh = _open_log_file(log_file)
            except OSError:
                log.exception("Cannot open log file %s for appending", log_file)
        proc_log = get_logger(f"cs2.server.{handle.name}")
        try:
            if handle.proc.stdout is not None:
                for line in iter(handle.proc.stdout.readline, ""):
                    line = line.rstrip("\r\n")
                    if not line:
                        continue
                    self.record(line)
                    proc_log.debug(line)
                    if fh:
                        fh.write(line + "\n")
        except (OSError, ValueError):
            log.exception("Error while reading output of %s", handle.name)
        finally:
            if fh:
                fh.close()
            rc = handle.proc.wait()
            log.info("%s exited with rc=%s", handle.name, rc)
            if on_exit is not None:
                on_exit(handle, rc)

    def record(self, message: str) -> None:
        lowered = message.lower()
        kind = "error" if any(m in lowered for m in _ERROR_MARKERS) else "log"
        entry = ServerLogEntry(
            timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            message=message,
            type=kind,
        )
        with self._lock:
            self.recent.append(entry)

    def recent_logs(self) -> List[ServerLogEntry]:
        with self._lock:
            return list(self.recent)
