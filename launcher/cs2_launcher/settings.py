from __future__ import annotations
from pathlib import Path
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    kzserver_dir: Path = Field(default=Path("./kzserver"), alias="KZSERVER_DIR")
    steamcmd_dir: Path = Field(default=Path("./steamcmd"), alias="STEAMCMD_DIR")
    plugins_config_path: Path = Field(default=Path("./plugins.json"), alias="PLUGINS_CONFIG_PATH")
    config_dir: Path = Field(default=Path("./configs"), alias="CONFIG_DIR")
    logs_dir: Path = Field(default=Path("./logs"), alias="LOGS_DIR")

    steamcmd_download_url: str = Field(
        default="https://steamcdn-a.akamaihd.net/client/installer/steamcmd.zip",
        alias="STEAMCMD_DOWNLOAD_URL",
    )
    metamod_download_url: str = Field(default="", alias="METAMOD_DOWNLOAD_URL")
    cs2_app_id: int = Field(default=730, alias="CS2_APP_ID")
    skip_install: bool = Field(default=False, alias="SKIP_INSTALL")
    patch_console_subsystem: bool = Field(default=True, alias="PATCH_CONSOLE_SUBSYSTEM")

    steam_gslt_token: str = Field(default="", alias="STEAM_GSLT_TOKEN")
    server_port: int = Field(default=27015, alias="SERVER_PORT")
    server_max_players: int = Field(default=64, alias="SERVER_MAX_PLAYERS")
    server_lan_only: bool = Field(default=False, alias="SERVER_LAN_ONLY")
    server_cheats_enabled: bool = Field(default=False, alias="SERVER_CHEATS_ENABLED")
    server_workshop_map: str = Field(default="3121168339", alias="SERVER_WORKSHOP_MAP")
    server_extra_args: list[str] = Field(default_factory=list, alias="SERVER_EXTRA_ARGS")

    rcon_host: str = Field(default="127.0.0.1", alias="SERVER_RCON_HOST")
    rcon_port: Optional[int] = Field(default=None, alias="SERVER_RCON_PORT")
    rcon_password: str = Field(default="", alias="SERVER_RCON_PASSWORD")
    rcon_timeout: float = Field(default=5.0, alias="SERVER_RCON_TIMEOUT")
    rcon_close_settle_seconds: float = Field(default=0.5, alias="RCON_CLOSE_SETTLE_SECONDS")

    # name of the loader-kind plugin every scripted plugin implicitly depends on
    loader_plugin_name: str = Field(default="counterstrikesharp", alias="LOADER_PLUGIN_NAME")

    recent_log_lines: int = Field(default=500, alias="RECENT_LOG_LINES")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="CLIENT_PORT")

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    @property
    def game_dir(self) -> Path:
        return self.kzserver_dir / "game"

    @property
    def server_executable(self) -> Path:
        return self.game_dir / "bin" / "win64" / "cs2.exe"

    @property
    def effective_rcon_port(self) -> int:
        return self.rcon_port if self.rcon_port is not None else self.server_port
