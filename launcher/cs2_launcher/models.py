from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator, model_validator


class PluginKind(str, Enum):
    LOADER = "loader"                    # native Metamod-level plugin
    SCRIPTED_PLUGIN = "scripted-plugin"  # runs on top of the CounterStrikeSharp runtime
    CONFIG_ONLY = "config-only"          # ships no archive, only config files

# older manifests use the mod framework names
_LEGACY_KINDS = {
    "metamod": PluginKind.LOADER,
    "counterstrikesharp": PluginKind.SCRIPTED_PLUGIN,
    "configonly": PluginKind.CONFIG_ONLY,
}


class ConfigEntry(BaseModel):
    """One config file a plugin wants on disk.

    `config` is either a string (a symbolic/absolute path to copy from, or the
    literal file content when no such file exists) or structured JSON data.
    """
    target: str
    config: Any = None


class PluginManifest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    display_name: str = Field(default="", alias="displayName")
    description: str = ""
    kind: PluginKind = Field(..., validation_alias=AliasChoices("type", "kind"), serialization_alias="type")
    download_url: str = Field(default="", alias="downloadUrl")
    target_extract_path: str = Field(default="@csgo", alias="targetExtractDir")
    archive_subpath: Optional[str] = Field(default=None, alias="dirInZipToExtract")
    enabled: bool = True
    is_shared_library: bool = Field(default=False, alias="isCounterStrikeSharpSharedPlugin")
    dependencies: List[str] = Field(default_factory=list)
    configs: List[ConfigEntry] = Field(default_factory=list)

    @field_validator("kind", mode="before")
    @classmethod
    def _legacy_kind(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _LEGACY_KINDS.get(v.strip().lower(), v)
        return v

    @field_validator("dependencies")
    @classmethod
    def _unique_dependencies(cls, v: List[str]) -> List[str]:
        # a set with stable iteration order
        return list(dict.fromkeys(d.strip() for d in v if d and d.strip()))

    @model_validator(mode="after")
    def _check_consistency(self) -> "PluginManifest":
        if not self.display_name:
            self.display_name = self.name
        if self.name in self.dependencies:
            raise ValueError(f"plugin {self.name!r} must not depend on itself")
        if self.kind != PluginKind.CONFIG_ONLY and not self.download_url:
            raise ValueError("downloadUrl is required unless type is config-only")
        return self

    def add_dependency(self, name: str) -> None:
        if name != self.name and name not in self.dependencies:
            self.dependencies.append(name)

    def to_record(self) -> Dict[str, Any]:
        """Manifest-store representation (JSON keys of plugins.json)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ServerStatus(str, Enum):
    INSTALLING = "INSTALLING"
    UPDATING = "UPDATING"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    UPDATING_PLUGINS = "UPDATING_PLUGINS"


@dataclass(frozen=True)
class InstallationState:
    installed: bool
    active: bool


@dataclass(frozen=True)
class InstallResult:
    plugin: str
    installed: bool


class ServerLogEntry(BaseModel):
    timestamp: str
    message: str
    type: Literal["log", "error"] = "log"


class ServerInfo(BaseModel):
    active_map: Optional[str] = Field(default=None, serialization_alias="activeMap")
    connected_players: int = Field(default=0, serialization_alias="connectedPlayers")
    local_address: str = Field(default="", serialization_alias="localAddress")
    public_address: str = Field(default="", serialization_alias="publicAddress")


class PluginView(BaseModel):
    """Manifest plus derived on-disk state, as shown to the operator."""
    plugin: Dict[str, Any]
    installed: bool
    active: bool


class DashboardData(BaseModel):
    status: ServerStatus
    active_map: Optional[str] = Field(default=None, serialization_alias="activeMap")
    plugins: List[PluginView] = Field(default_factory=list)
    configs: List[str] = Field(default_factory=list)
    server_logs: List[ServerLogEntry] = Field(default_factory=list, serialization_alias="serverLogs")
    connected_players: int = Field(default=0, serialization_alias="connectedPlayers")
    local_address: str = Field(default="", serialization_alias="localAddress")
    public_address: str = Field(default="", serialization_alias="publicAddress")
