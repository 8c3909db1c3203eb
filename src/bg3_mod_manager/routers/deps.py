"""Shared FastAPI dependencies used across routers."""

from fastapi import HTTPException
from sqlmodel import Session

from bg3_mod_manager.config import settings
from bg3_mod_manager.database import engine
from bg3_mod_manager.services.category_inference import CategoryInferenceService
from bg3_mod_manager.services.environment import (
    hazard_paths,
    load_order_changed_externally,
    probe_extension,
    record_extension_status,
    was_extension_deployed,
)
from bg3_mod_manager.services.mod_set import EnvironmentFacts, ModNotFoundError, ModSet

_mod_set: ModSet | None = None


def live_environment() -> EnvironmentFacts:
    """Probe the game install and persisted flags for validation."""
    status = probe_extension(settings)
    with Session(engine) as session:
        previously = was_extension_deployed(session)
        record_extension_status(session, status)
        changed = load_order_changed_externally(session, settings.modsettings_path)
    return EnvironmentFacts(
        extension_status=status,
        extension_previously_deployed=previously,
        hazard_paths=tuple(hazard_paths(settings)),
        external_mutation=changed,
    )


def get_mod_set() -> ModSet:
    """Process-wide mod set, created on first use."""
    global _mod_set
    if _mod_set is None:
        _mod_set = ModSet(
            categories=CategoryInferenceService(Session(engine)),
            environment=live_environment,
        )
    return _mod_set


def mod_or_404(mod_set: ModSet, mod_id: str):
    try:
        return mod_set.get(mod_id)
    except ModNotFoundError as exc:
        raise HTTPException(404, str(exc)) from exc
