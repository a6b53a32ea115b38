from __future__ import annotations
from typing import Any, Dict, Optional
from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from . import __version__
from .errors import (
    DependencyUnmet,
    DownloadError,
    ExecutableMissing,
    InstallationFailed,
    LauncherError,
    NotInstalled,
    OperationInProgress,
    PreconditionFailed,
    RconTransportError,
    ServerNotRunning,
    UnknownPlugin,
    UnknownSession,
    ValidationError,
)
from .logging_setup import get_logger
from .models import PluginManifest
from .orchestrator import Orchestrator
from .settings import Settings

log = get_logger("cs2.launcher.api")

_STATUS_CODES = [
    (ValidationError, 400),
    (UnknownPlugin, 404),
    (UnknownSession, 404),
    (PreconditionFailed, 409),
    (OperationInProgress, 409),
    (ServerNotRunning, 409),
    (ExecutableMissing, 409),
    (NotInstalled, 409),
    (DependencyUnmet, 409),
    (DownloadError, 502),
    (RconTransportError, 502),
    (InstallationFailed, 500),
]

class ActionResult(BaseModel):
    ok: bool
    detail: str | None = None
    data: dict | None = None

class CommandRequest(BaseModel):
    command: str

class ConfigBody(BaseModel):
    config: str

def _status_code(exc: LauncherError) -> int:
    for cls, code in _STATUS_CODES:
        if isinstance(exc, cls):
            return code
    return 500

def create_app(settings: Settings, orch: Optional[Orchestrator] = None) -> FastAPI:
    app = FastAPI(title="CS2 Launcher API", version=__version__)
    if orch is None:
        orch = Orchestrator(settings)
        orch.prepare_environment()
    app.state.orch = orch

    @app.exception_handler(LauncherError)
    async def launcher_error(request: Request, exc: LauncherError):
        code = _status_code(exc)
        if code >= 500:
            log.error("%s %s failed: %s", request.method, request.url.path, exc)
        body: Dict[str, Any] = {"ok": False, "error": str(exc)}
        if isinstance(exc, ValidationError):
            body["problems"] = exc.problems
        return JSONResponse(status_code=code, content=body)

    def plugins_payload() -> dict:
        return {"plugins": [v.model_dump(by_alias=True) for v in orch.plugin_views()]}

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/status", response_model=ActionResult)
    def status():
        return ActionResult(ok=True, data={"status": orch.status().value, "pid": orch.lifecycle.pid})

    @app.post("/server/start", response_model=ActionResult)
    def start_server():
        orch.lifecycle.start()
        return ActionResult(ok=True, detail="started", data={"status": orch.status().value})

    @app.post("/server/stop", response_model=ActionResult)
    def stop_server():
        orch.lifecycle.stop()
        return ActionResult(ok=True, detail="stopped", data={"status": orch.status().value})

    @app.post("/server/update-plugins", response_model=ActionResult)
    def update_plugins():
        fresh = orch.lifecycle.update_plugins()
        return ActionResult(ok=True, detail="plugins updated", data={"installed": fresh})

    # ---------------- plugins ----------------
    @app.get("/plugins")
    def get_plugins():
        return plugins_payload()

    @app.get("/plan")
    def plan():
        return orch.plan()

    @app.put("/plugins/{name}")
    def put_plugin(name: str, plugin: Dict[str, Any] = Body(...)):
        try:
            manifest = PluginManifest.model_validate({**plugin, "name": name})
        except PydanticValidationError as e:
            raise ValidationError([f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]) from e
        orch.registry.update(manifest)
        return plugins_payload()

    @app.delete("/plugins/{name}")
    def delete_plugin(name: str):
        orch.registry.remove(name)
        return plugins_payload()

    @app.post("/plugins/{name}/enable")
    def enable_plugin(name: str):
        orch.toggle_plugin(name, True)
        return plugins_payload()

    @app.post("/plugins/{name}/disable")
    def disable_plugin(name: str):
        orch.toggle_plugin(name, False)
        return plugins_payload()

    # ---------------- configs ----------------
    @app.get("/configs")
    def get_config_names():
        return {"names": orch.configs.list()}

    @app.get("/configs/{name}")
    def get_config(name: str):
        if name not in orch.configs.list():
            raise HTTPException(status_code=404, detail="config_not_found")
        return {"name": name, "config": orch.configs.read(name)}

    @app.put("/configs/{name}", response_model=ActionResult)
    def save_config(name: str, body: ConfigBody):
        orch.configs.write(name, body.config)
        return ActionResult(ok=True, detail="saved")

    # ---------------- remote console ----------------
    @app.post("/rcon/sessions")
    def start_rcon_session():
        return {"sessionId": orch.sessions.open()}

    @app.post("/rcon/sessions/{session_id}/execute")
    def execute_rcon_command(session_id: str, body: CommandRequest):
        return {"response": orch.sessions.execute(session_id, body.command)}

    @app.delete("/rcon/sessions/{session_id}", response_model=ActionResult)
    def end_rcon_session(session_id: str):
        orch.sessions.close(session_id)
        return ActionResult(ok=True, detail="closed")

    @app.get("/dashboard")
    def dashboard():
        return orch.dashboard().model_dump(mode="json", by_alias=True)

    return app
