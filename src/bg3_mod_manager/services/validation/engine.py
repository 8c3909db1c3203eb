"""Run every registered validation check over a mod configuration."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from pathlib import Path

from bg3_mod_manager.schemas.mod import ModRecord
from bg3_mod_manager.schemas.warning import ModWarning, Severity
from bg3_mod_manager.services.environment import ExtensionStatus
from bg3_mod_manager.services.validation.checks import ValidationContext, get_all_checks

logger = logging.getLogger(__name__)


def validate(
    active: list[ModRecord],
    inactive: list[ModRecord],
    extension_status: ExtensionStatus | None = None,
    extension_previously_deployed: bool = False,
    *,
    hazard_paths: Iterable[str | Path] = (),
    external_mutation: bool = False,
) -> list[ModWarning]:
    """Return all findings for the configuration, most severe first.

    The result is recomputed from scratch on every call. Findings are data:
    nothing here raises because of what it finds.
    """
    start = time.perf_counter()
    ctx = ValidationContext(
        active=list(active),
        inactive=list(inactive),
        extension_status=extension_status,
        extension_previously_deployed=extension_previously_deployed,
        hazard_paths=tuple(Path(p) for p in hazard_paths),
        external_mutation=external_mutation,
    )

    warnings: list[ModWarning] = []
    for check in get_all_checks():
        try:
            warnings.extend(check.check(ctx))
        except Exception:
            logger.exception("Validation check %s failed", check.category)

    warnings.sort(key=lambda w: -w.severity.rank)
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    logger.debug(
        "Validated %d active / %d inactive mods: %d findings in %dms",
        len(ctx.active),
        len(ctx.inactive),
        len(warnings),
        elapsed_ms,
    )
    return warnings


def validate_for_save(
    active: list[ModRecord],
    inactive: list[ModRecord],
    extension_status: ExtensionStatus | None = None,
    extension_previously_deployed: bool = False,
    *,
    hazard_paths: Iterable[str | Path] = (),
    external_mutation: bool = False,
) -> list[ModWarning]:
    """Findings that matter before writing the load order (warning and above)."""
    return [
        w
        for w in validate(
            active,
            inactive,
            extension_status,
            extension_previously_deployed,
            hazard_paths=hazard_paths,
            external_mutation=external_mutation,
        )
        if w.severity.rank >= Severity.warning.rank
    ]


def blocks_save(warnings: Iterable[ModWarning]) -> bool:
    return any(w.severity is Severity.critical for w in warnings)
