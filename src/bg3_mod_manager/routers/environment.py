"""Endpoints for the game environment: Script Extender, hazards, fingerprint."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from bg3_mod_manager.config import settings
from bg3_mod_manager.database import get_session
from bg3_mod_manager.services.environment import (
    clear_extension_flag,
    delete_hazard,
    hazard_paths,
    load_order_changed_externally,
    probe_extension,
    record_extension_status,
    record_load_order_fingerprint,
    was_extension_deployed,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/environment", tags=["environment"])


class EnvironmentOut(BaseModel):
    extension_installed: bool
    extension_deployed: bool
    extension_previously_deployed: bool
    extension_library_path: str | None = None
    hazard_paths: list[str]
    load_order_changed: bool


class HazardDeleteRequest(BaseModel):
    path: str


class FingerprintOut(BaseModel):
    fingerprint: str | None = None


@router.get("/", response_model=EnvironmentOut)
def get_environment(session: Session = Depends(get_session)) -> EnvironmentOut:
    status = probe_extension(settings)
    previously = was_extension_deployed(session)
    record_extension_status(session, status)
    return EnvironmentOut(
        extension_installed=status.installed,
        extension_deployed=status.deployed,
        extension_previously_deployed=previously,
        extension_library_path=str(status.library_path) if status.library_path else None,
        hazard_paths=[str(p) for p in hazard_paths(settings)],
        load_order_changed=load_order_changed_externally(session, settings.modsettings_path),
    )


@router.post("/hazards/delete")
def remove_hazard(data: HazardDeleteRequest) -> dict[str, bool]:
    try:
        deleted = delete_hazard(data.path, settings)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    except OSError as exc:
        logger.warning("Failed to delete %s: %s", data.path, exc)
        raise HTTPException(500, f"Could not delete {data.path}: {exc}") from exc
    return {"deleted": deleted}


@router.post("/extension/acknowledge", status_code=204)
def acknowledge_extension_removed(session: Session = Depends(get_session)) -> None:
    """Forget that Script Extender was deployed, silencing the removal warning."""
    clear_extension_flag(session)


@router.post("/fingerprint", response_model=FingerprintOut)
def store_fingerprint(session: Session = Depends(get_session)) -> FingerprintOut:
    """Remember the current modsettings.lsx so later external edits are noticed."""
    return FingerprintOut(fingerprint=record_load_order_fingerprint(session, settings.modsettings_path))
