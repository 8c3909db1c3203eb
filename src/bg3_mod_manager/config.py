import os
import sys
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    if env := os.environ.get("BG3MM_DATA_DIR"):
        return Path(env)
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    elif sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / "BG3ModManager"


def _default_larian_dir() -> Path:
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "Larian Studios" / "Baldur's Gate 3"
    return Path.home() / "Documents" / "Larian Studios" / "Baldur's Gate 3"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BG3MM_",
        extra="ignore",
    )

    data_dir: Path = Path("")
    db_path: Path = Path("")
    larian_dir: Path = Path("")
    mods_dir: Path = Path("")
    modsettings_path: Path = Path("")
    hazard_dir: Path = Path("")
    game_binary_dir: Path = Path("")
    extension_library_name: str = "libbg3se.dylib"
    extension_data_dir: Path = Path("")
    host: str = "127.0.0.1"
    port: int = 8426
    cors_origins: list[str] = []

    @model_validator(mode="after")
    def _resolve_data_paths(self) -> "Settings":
        if self.data_dir == Path(""):
            self.data_dir = _default_data_dir()
        if self.db_path == Path(""):
            self.db_path = self.data_dir / "bg3mm.db"
        if self.larian_dir == Path(""):
            self.larian_dir = _default_larian_dir()
        if self.mods_dir == Path(""):
            self.mods_dir = self.larian_dir / "Mods"
        if self.modsettings_path == Path(""):
            self.modsettings_path = (
                self.larian_dir / "PlayerProfiles" / "Public" / "modsettings.lsx"
            )
        if self.hazard_dir == Path(""):
            self.hazard_dir = self.larian_dir / "ModCrashSanityCheck"
        if self.game_binary_dir == Path(""):
            self.game_binary_dir = (
                Path.home()
                / "Library/Application Support/Steam/steamapps/common/Baldurs Gate 3"
                / "Baldur's Gate 3.app"
                / "Contents"
                / "MacOS"
            )
        if self.extension_data_dir == Path(""):
            self.extension_data_dir = Path.home() / "Library" / "Application Support" / "BG3SE"
        return self


settings = Settings()
