"""Endpoints for sorting, validating and importing the load order."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from bg3_mod_manager.routers.deps import get_mod_set
from bg3_mod_manager.schemas.load_order import (
    ImportRequest,
    ImportSummaryOut,
    LoadOrderIds,
    SmartSortOut,
)
from bg3_mod_manager.schemas.warning import Severity, WarningSummary
from bg3_mod_manager.services.load_order import CycleError
from bg3_mod_manager.services.load_order_import import LoadOrderImportError, parse_file
from bg3_mod_manager.services.mod_set import ModSet
from bg3_mod_manager.services.validation import blocks_save

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/load-order", tags=["load-order"])


@router.get("/", response_model=LoadOrderIds)
def get_load_order(mod_set: ModSet = Depends(get_mod_set)) -> LoadOrderIds:
    return LoadOrderIds(ids=mod_set.load_order_ids())


@router.post("/sort", response_model=LoadOrderIds)
def sort_load_order(mod_set: ModSet = Depends(get_mod_set)) -> LoadOrderIds:
    """Dependency sort. A cycle leaves the order untouched and returns 409."""
    try:
        ids = mod_set.sort_by_dependencies()
    except CycleError as exc:
        raise HTTPException(
            409, {"message": str(exc), "mod_ids": exc.mod_ids}
        ) from exc
    return LoadOrderIds(ids=ids)


@router.post("/smart-sort", response_model=SmartSortOut)
def smart_sort_load_order(mod_set: ModSet = Depends(get_mod_set)) -> SmartSortOut:
    result = mod_set.smart_sort()
    return SmartSortOut(
        ids=mod_set.load_order_ids(),
        categorized={tier.label: ids for tier, ids in result.categorized.items()},
        cyclic_tiers=[tier.label for tier in result.cyclic_tiers],
    )


@router.get("/warnings", response_model=WarningSummary)
def get_warnings(mod_set: ModSet = Depends(get_mod_set)) -> WarningSummary:
    warnings = mod_set.revalidate()
    return WarningSummary(
        warnings=warnings,
        critical=sum(1 for w in warnings if w.severity is Severity.critical),
        blocks_save=blocks_save(warnings),
    )


@router.post("/import", response_model=ImportSummaryOut)
def import_load_order(
    data: ImportRequest, mod_set: ModSet = Depends(get_mod_set)
) -> ImportSummaryOut:
    """Replace the load order with one read from a modsettings, JSON or save file."""
    try:
        parsed = parse_file(data.path)
    except LoadOrderImportError as exc:
        raise HTTPException(400, str(exc)) from exc
    summary = mod_set.apply_import(parsed.entries, parsed.source_name)
    return ImportSummaryOut(
        source_name=summary.source_name,
        matched=summary.matched,
        missing=summary.missing,
        state=mod_set.state(),
    )
