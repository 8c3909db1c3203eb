"""Probes for the game environment around the mod list.

* Script Extender (the runtime extension some mods need) deployment status,
  plus the persisted "was deployed" flag used to notice it disappearing.
* Hazard directories the game creates that interfere with mod loading
  (``ModCrashSanityCheck`` deactivates externally managed mods on launch).
* The load-order fingerprint stored after each write.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from sqlmodel import Session

from bg3_mod_manager.config import Settings
from bg3_mod_manager.constants import SETTING_EXTENSION_DEPLOYED, SETTING_LOAD_ORDER_FINGERPRINT
from bg3_mod_manager.services import fingerprint
from bg3_mod_manager.services.settings_helpers import get_flag, get_setting, set_flag, set_setting

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExtensionStatus:
    installed: bool
    deployed: bool
    library_path: Path | None = None
    logs_path: Path | None = None


def probe_extension(settings: Settings) -> ExtensionStatus:
    """Check whether the Script Extender library is deployed next to the game binary."""
    library = settings.game_binary_dir / settings.extension_library_name
    deployed = library.is_file()
    data_dir_exists = settings.extension_data_dir.is_dir()
    logs = settings.extension_data_dir / "logs"
    return ExtensionStatus(
        installed=deployed or data_dir_exists,
        deployed=deployed,
        library_path=library if deployed else None,
        logs_path=logs if logs.is_dir() else None,
    )


def hazard_paths(settings: Settings) -> list[Path]:
    """Existing hazard directories."""
    return [p for p in (settings.hazard_dir,) if p.is_dir()]


def delete_hazard(path: str | Path, settings: Settings) -> bool:
    """Remove a known hazard directory. Paths that are not known hazards are refused.

    Returns False if the directory was already gone.
    """
    target = Path(path)
    if target not in (settings.hazard_dir,):
        raise ValueError(f"Not a known hazard directory: {target}")
    if not target.exists():
        return False
    shutil.rmtree(target)
    logger.info("Deleted hazard directory %s", target)
    return True


# ---- Persisted flags ----


def was_extension_deployed(session: Session) -> bool:
    return get_flag(session, SETTING_EXTENSION_DEPLOYED)


def record_extension_status(session: Session, status: ExtensionStatus) -> None:
    """Remember a deployment once seen. The flag is only cleared explicitly."""
    if status.deployed and not was_extension_deployed(session):
        set_flag(session, SETTING_EXTENSION_DEPLOYED, True)
        session.commit()
        logger.info("Recorded Script Extender deployment")


def clear_extension_flag(session: Session) -> None:
    set_flag(session, SETTING_EXTENSION_DEPLOYED, False)
    session.commit()


def record_load_order_fingerprint(session: Session, modsettings_path: str | Path) -> str | None:
    digest = fingerprint.compute_file(modsettings_path)
    if digest is not None:
        set_setting(session, SETTING_LOAD_ORDER_FINGERPRINT, digest)
        session.commit()
    return digest


def load_order_changed_externally(session: Session, modsettings_path: str | Path) -> bool:
    stored = get_setting(session, SETTING_LOAD_ORDER_FINGERPRINT)
    return fingerprint.has_changed(modsettings_path, stored)
