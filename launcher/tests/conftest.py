"""
Shared fixtures: a throw-away server tree under tmp_path, in-memory zip
archives and stand-ins for the server process and the RCON client.
"""

import io
import json
import zipfile
import pytest

from cs2_launcher.fs_layout import build_layout
from cs2_launcher.manifest_store import JsonManifestStore
from cs2_launcher.process_runner import ProcessHandle, ProcessRunner
from cs2_launcher.registry import PluginRegistry
from cs2_launcher.settings import Settings


STATUS_REPLY = """\
Server:  Running [0.0.0.0:27015]
Steam:   Connected
udp/ip   : 0.0.0.0:27015 (local: 192.168.1.20:27015) (public IP from Steam: 203.0.113.7)
players  : 3 humans, 0 bots (64 max) (not hibernating) (unreserved)
loaded spawngroup(  1)  : SV:  [1: kz_grotto | main lump | mapload]
"""


def make_zip(files):
    """Build a zip archive in memory from {name: text-or-bytes}."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


class FakeProc:
    """Just enough of subprocess.Popen for ProcessHandle."""
    _next_pid = 1000

    def __init__(self):
        FakeProc._next_pid += 1
        self.pid = FakeProc._next_pid
        self.returncode = None
        self.killed = False

    def poll(self):
        return self.returncode

    def kill(self):
        self.killed = True
        self.returncode = -9


class FakeRunner(ProcessRunner):
    """Records start() calls instead of spawning processes."""

    def __init__(self):
        super().__init__(recent_lines=50)
        self.started = []
        self.before_start = None

    def start(self, name, cmd, *, cwd=None, log_file=None, env=None, on_exit=None):
        if self.before_start is not None:
            self.before_start()
        handle = ProcessHandle(name=name, proc=FakeProc())
        self.started.append({"handle": handle, "cmd": cmd, "cwd": cwd, "on_exit": on_exit})
        self.record(f"{name} started")
        return handle


class FakeRconClient:
    instances = []

    def __init__(self, host, port, timeout=None, passwd=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.passwd = passwd
        self.connected = False
        self.closed = False
        self.commands = []
        self.fail_with = None
        FakeRconClient.instances.append(self)

    def connect(self, login=False):
        if self.passwd == "refused":
            raise ConnectionRefusedError("connection refused")
        self.connected = True

    def run(self, command, *args):
        if self.fail_with is not None:
            raise self.fail_with
        self.commands.append(command)
        if command == "status":
            return STATUS_REPLY
        return f"echo {command}"

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_fake_clients():
    FakeRconClient.instances.clear()
    yield
    FakeRconClient.instances.clear()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        kzserver_dir=tmp_path / "kzserver",
        steamcmd_dir=tmp_path / "steamcmd",
        plugins_config_path=tmp_path / "plugins.json",
        config_dir=tmp_path / "configs",
        logs_dir=tmp_path / "logs",
        metamod_download_url="",
        skip_install=True,
        patch_console_subsystem=False,
        rcon_password="secret",
        rcon_close_settle_seconds=0,
    )


@pytest.fixture
def layout(settings):
    return build_layout(settings)


@pytest.fixture
def server_exe(settings):
    exe = settings.server_executable
    exe.parent.mkdir(parents=True, exist_ok=True)
    exe.write_bytes(b"MZ")
    return exe


@pytest.fixture
def write_manifests(settings):
    def _write(records):
        settings.plugins_config_path.write_text(json.dumps(records), encoding="utf-8")
        return settings.plugins_config_path
    return _write


@pytest.fixture
def make_registry(settings, write_manifests):
    def _make(records, status_provider=None):
        write_manifests(records)
        registry = PluginRegistry(
            JsonManifestStore(settings.plugins_config_path),
            loader_name=settings.loader_plugin_name,
            status_provider=status_provider,
        )
        registry.load()
        return registry
    return _make


def loader_record(name="counterstrikesharp", **extra):
    record = {"name": name, "type": "loader", "downloadUrl": f"https://example.invalid/{name}.zip"}
    record.update(extra)
    return record


def scripted_record(name, **extra):
    record = {"name": name, "type": "scripted-plugin", "downloadUrl": f"https://example.invalid/{name}.zip"}
    record.update(extra)
    return record
