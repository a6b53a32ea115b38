"""
rcon_sessions.py — Remote console sessions to the running server
-----------------------------------------------------------------
Each session is its own authenticated Source RCON connection, stored under a
random id. Sessions are independent of each other; all of them are closed
when the server stops.
"""

from __future__ import annotations
import threading
import time
import uuid
from typing import Callable, Dict, List
from rcon.exceptions import EmptyResponse, SessionTimeout, WrongPassword
from rcon.source import Client
from .errors import RconTransportError, ServerNotRunning, UnknownSession
from .logging_setup import get_logger
from .settings import Settings

log = get_logger("cs2.launcher.rcon")

_TRANSPORT_ERRORS = (OSError, EmptyResponse, SessionTimeout, WrongPassword)

ClientFactory = Callable[..., Client]


class RconSessionManager:
    def __init__(self, settings: Settings, is_server_running: Callable[[], bool],
                 client_factory: ClientFactory = Client):
        self.settings = settings
        self.is_server_running = is_server_running
        self.client_factory = client_factory
        self._sessions: Dict[str, Client] = {}
        self._lock = threading.Lock()

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def open(self) -> str:
        if not self.is_server_running():
            raise ServerNotRunning("CS2 server is not running.")

        client = self.client_factory(
            self.settings.rcon_host,
            self.settings.effective_rcon_port,
            timeout=self.settings.rcon_timeout,
            passwd=self.settings.rcon_password,
        )
        try:
            client.connect(login=True)
        except _TRANSPORT_ERRORS as e:
            client.close()
            raise RconTransportError(f"Could not open RCON session: {e!r}") from e

        session_id = uuid.uuid4().hex
        with self._lock:
            self._sessions[session_id] = client
        log.info("Opened RCON session %s", session_id)
        return session_id

    def _get(self, session_id: str) -> Client:
        with self._lock:
            client = self._sessions.get(session_id)
        if client is None:
            raise UnknownSession(f"RCON session {session_id!r} not found")
        return client

    def execute(self, session_id: str, command: str) -> str:
        client = self._get(session_id)
        log.debug("RCON %s> %s", session_id, command)
        try:
            return client.run(command)
        except _TRANSPORT_ERRORS as e:
            # the session stays open; the caller decides whether to retry or close
            raise RconTransportError(f"RCON command failed: {e!r}") from e

    def _shutdown(self, session_id: str, client: Client) -> None:
        try:
            client.close()
        except OSError as e:
            log.warning("Error closing RCON session %s: %s", session_id, e)

    def _settle(self) -> None:
        # the server finishes its side of the close asynchronously
        if self.settings.rcon_close_settle_seconds > 0:
            time.sleep(self.settings.rcon_close_settle_seconds)

    def close(self, session_id: str) -> None:
        client = self._get(session_id)
        self._shutdown(session_id, client)
        self._settle()
        with self._lock:
            self._sessions.pop(session_id, None)
        log.info("Closed RCON session %s", session_id)

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.items())
        if not sessions:
            return
        for session_id, client in sessions:
            self._shutdown(session_id, client)
        self._settle()
        with self._lock:
            for session_id, _ in sessions:
                self._sessions.pop(session_id, None)
        log.info("Closed %d RCON session(s)", len(sessions))
