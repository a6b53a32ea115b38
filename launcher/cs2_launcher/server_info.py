from __future__ import annotations
import re
from typing import Optional
from .errors import LauncherError, UnknownSession
from .logging_setup import get_logger
from .models import ServerInfo
from .rcon_sessions import RconSessionManager

log = get_logger("cs2.launcher.info")

STATUS_COMMAND = "status"

# CS2: "loaded spawngroup(  1)  : SV:  [1: de_dust2 | main lump | mapload]"
_SPAWNGROUP_MAP = re.compile(r"loaded spawngroup\(\s*1\)\s*:\s*SV:\s*\[1:\s*([^\s|\]]+)", re.IGNORECASE)
# CS:GO style fallback: "map     : de_dust2"
_MAP_LINE = re.compile(r"^\s*map\s*:\s*(\S+)", re.IGNORECASE | re.MULTILINE)
# "players  : 3 humans, 0 bots (16 max) (not hibernating)"
_PLAYERS = re.compile(r"^\s*players\s*:\s*(\d+)\s+humans?", re.IGNORECASE | re.MULTILINE)
# "udp/ip   : 0.0.0.0:27015 (local: 192.168.1.2:27015) (public IP from Steam: 1.2.3.4)"
_UDP_IP = re.compile(r"^\s*udp/ip\s*:\s*(\S+)", re.IGNORECASE | re.MULTILINE)
_LOCAL = re.compile(r"\(local:\s*([^)\s]+)\)", re.IGNORECASE)
_PUBLIC = re.compile(r"public\s+IP\s+from\s+Steam:\s*([^)\s]+)", re.IGNORECASE)


def _first(pattern: re.Pattern, text: str) -> Optional[str]:
    m = pattern.search(text)
    return m.group(1) if m else None


def parse_status(text: str, port: Optional[int] = None) -> ServerInfo:
    active_map = _first(_SPAWNGROUP_MAP, text) or _first(_MAP_LINE, text)
    players = _first(_PLAYERS, text)
    local = _first(_LOCAL, text) or _first(_UDP_IP, text) or ""
    public = _first(_PUBLIC, text) or ""
    if public and port is not None and ":" not in public:
        public = f"{public}:{port}"
    return ServerInfo(
        active_map=active_map,
        connected_players=int(players) if players else 0,
        local_address=local,
        public_address=public,
    )


class ServerInfoQuery:
    """One-shot status query: open a session, run `status`, parse, close."""

    def __init__(self, sessions: RconSessionManager, port: Optional[int] = None):
        self.sessions = sessions
        self.port = port

    def _close(self, session_id: str) -> None:
        try:
            self.sessions.close(session_id)
        except UnknownSession:
            # already closed by a concurrent stop()
            log.debug("Status query session %s was already closed", session_id)

    def query(self) -> ServerInfo:
        if not self.sessions.is_server_running():
            return ServerInfo()
        try:
            session_id = self.sessions.open()
        except LauncherError as e:
            log.warning("Status query could not open an RCON session: %s", e)
            return ServerInfo()
        try:
            reply = self.sessions.execute(session_id, STATUS_COMMAND)
        except LauncherError as e:
            log.warning("Status query failed: %s", e)
            return ServerInfo()
        finally:
            self._close(session_id)
        return parse_status(reply, self.port)
