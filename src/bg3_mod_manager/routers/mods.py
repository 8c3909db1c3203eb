"""Endpoints for the discovered mod set: refresh, activation and ordering."""

import json
import logging
import queue
import threading
from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from bg3_mod_manager.config import settings
from bg3_mod_manager.routers.deps import get_mod_set, mod_or_404
from bg3_mod_manager.schemas.load_order import CategoryRequest, MoveRequest, RefreshResult
from bg3_mod_manager.schemas.mod import ModRecord, ModSetState
from bg3_mod_manager.services.discovery import (
    discover_mods,
    partition_by_load_order,
    read_active_entries,
)
from bg3_mod_manager.services.mod_set import ModNotFoundError, ModSet
from bg3_mod_manager.services.progress import ProgressCallback, noop_progress

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mods", tags=["mods"])

_cancel_refresh = threading.Event()


def _mutate(fn, *args):
    """Run a ModSet mutator, mapping lookup and rule errors to HTTP errors."""
    try:
        return fn(*args)
    except ModNotFoundError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc


def rescan(
    mod_set: ModSet,
    *,
    on_progress: ProgressCallback = noop_progress,
    should_cancel: Callable[[], bool] | None = None,
) -> RefreshResult:
    """Rediscover the Mods folder and reload *mod_set* from modsettings.lsx.

    A cancelled scan leaves the mod set untouched.
    """
    result = discover_mods(settings.mods_dir, on_progress=on_progress, should_cancel=should_cancel)
    if not result.cancelled:
        entries = read_active_entries(settings.modsettings_path)
        active, inactive = partition_by_load_order(result.mods, entries)
        mod_set.load(active, inactive)
    return RefreshResult(
        discovered=len(result.mods),
        failures=result.failures,
        cancelled=result.cancelled,
        state=mod_set.state(),
    )


@router.get("/", response_model=ModSetState)
def get_state(mod_set: ModSet = Depends(get_mod_set)) -> ModSetState:
    return mod_set.state()


@router.post("/refresh", response_model=RefreshResult)
def refresh(mod_set: ModSet = Depends(get_mod_set)) -> RefreshResult:
    """Rescan the Mods folder and reapply the game's current load order."""
    _cancel_refresh.clear()
    return rescan(mod_set, should_cancel=_cancel_refresh.is_set)


@router.post("/refresh-stream")
def refresh_stream(mod_set: ModSet = Depends(get_mod_set)) -> StreamingResponse:
    """Rescan on a worker thread, streaming progress as server-sent events."""
    q: queue.Queue[dict | None] = queue.Queue()

    def on_progress(phase: str, message: str, percent: int) -> None:
        q.put({"phase": phase, "message": message, "percent": percent})

    def run_scan() -> None:
        try:
            result = rescan(mod_set, on_progress=on_progress, should_cancel=_cancel_refresh.is_set)
            if result.cancelled:
                q.put({"phase": "cancelled", "message": "Refresh cancelled", "percent": 0})
            else:
                q.put(
                    {
                        "phase": "done",
                        "message": f"Done: {result.discovered} mods, {len(result.failures)} failed",
                        "percent": 100,
                    }
                )
        except Exception:
            logger.exception("Refresh failed")
            q.put({"phase": "error", "message": "Refresh failed unexpectedly", "percent": 0})
        finally:
            q.put(None)

    _cancel_refresh.clear()
    threading.Thread(target=run_scan, daemon=True).start()

    def event_stream():
        while True:
            item = q.get()
            if item is None:
                break
            yield f"data: {json.dumps(item)}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/refresh/cancel")
def cancel_refresh() -> dict[str, bool]:
    """Ask a running refresh to stop before its next archive."""
    _cancel_refresh.set()
    return {"cancelled": True}

@router.get("/{mod_id}", response_model=ModRecord)
def get_mod(mod_id: str, mod_set: ModSet = Depends(get_mod_set)) -> ModRecord:
    return mod_or_404(mod_set, mod_id)


@router.post("/{mod_id}/activate", response_model=ModSetState)
def activate(mod_id: str, mod_set: ModSet = Depends(get_mod_set)) -> ModSetState:
    _mutate(mod_set.activate, mod_id)
    return mod_set.state()


@router.post("/{mod_id}/deactivate", response_model=ModSetState)
def deactivate(mod_id: str, mod_set: ModSet = Depends(get_mod_set)) -> ModSetState:
    _mutate(mod_set.deactivate, mod_id)
    return mod_set.state()


@router.post("/{mod_id}/move", response_model=ModSetState)
def move(
    mod_id: str, data: MoveRequest, mod_set: ModSet = Depends(get_mod_set)
) -> ModSetState:
    _mutate(mod_set.move, mod_id, data.index)
    return mod_set.state()


@router.post("/{mod_id}/move-to-top", response_model=ModSetState)
def move_to_top(mod_id: str, mod_set: ModSet = Depends(get_mod_set)) -> ModSetState:
    _mutate(mod_set.move_to_top, mod_id)
    return mod_set.state()


@router.post("/{mod_id}/move-to-bottom", response_model=ModSetState)
def move_to_bottom(mod_id: str, mod_set: ModSet = Depends(get_mod_set)) -> ModSetState:
    _mutate(mod_set.move_to_bottom, mod_id)
    return mod_set.state()


@router.post("/{mod_id}/activate-dependencies", response_model=ModSetState)
def activate_dependencies(
    mod_id: str, mod_set: ModSet = Depends(get_mod_set)
) -> ModSetState:
    _mutate(mod_set.activate_missing_dependencies, mod_id)
    return mod_set.state()


@router.put("/{mod_id}/category", response_model=ModRecord)
def set_category(
    mod_id: str, data: CategoryRequest, mod_set: ModSet = Depends(get_mod_set)
) -> ModRecord:
    mod = _mutate(mod_set.set_category, mod_id, data.category)
    logger.info("Category for %s set to %s", mod.id, data.category)
    return mod
