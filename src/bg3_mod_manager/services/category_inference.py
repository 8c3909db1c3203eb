"""Assign load-order tiers to mods.

Inference order, first match wins:

1. a user override stored in ``category_overrides``,
2. the mod's tags against per-tier keywords,
3. the display name against per-tier phrases,
4. nothing: the mod stays uncategorized.

Tiers are scanned from 1 (framework) to 5 (late loader), so when keywords
from several tiers match, the earlier tier wins.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlmodel import Session, select

from bg3_mod_manager.models.category_override import CategoryOverride
from bg3_mod_manager.schemas.mod import ModCategory, ModRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Keyword tables
# ---------------------------------------------------------------------------

# (substrings, exact matches) per tier, compared against lowercased tags
_TAG_RULES: dict[ModCategory, tuple[tuple[str, ...], tuple[str, ...]]] = {
    ModCategory.FRAMEWORK: (("framework", "library"), ("api",)),
    ModCategory.GAMEPLAY: (
        ("gameplay", "fix", "balance", "tweak", "qol", "item", "equipment", "armor", "weapon"),
        (),
    ),
    ModCategory.CONTENT: (
        ("class", "subclass", "spell", "feat", "race", "background", "metamagic", "cantrip"),
        (),
    ),
    ModCategory.VISUAL: (
        (
            "cosmetic",
            "visual",
            "appearance",
            "hair",
            "head",
            "tattoo",
            "eye",
            "body",
            "face",
            "dye",
            "texture",
        ),
        (),
    ),
    ModCategory.LATE_LOADER: (("compatibility",), ("patch", "combiner")),
}

_NAME_PHRASES: dict[ModCategory, tuple[str, ...]] = {
    ModCategory.FRAMEWORK: (
        "community library",
        "improvedui",
        "impui",
        "5espells",
        "unlock level curve",
        "mod configuration menu",
        "mcm",
        "vlad's grimoire",
        "vladsgrimoire",
        "script extender",
        "native mod loader",
        "mod fixer",
        "bg3se",
    ),
    ModCategory.GAMEPLAY: (),
    ModCategory.CONTENT: (
        "subclass",
        "new class",
        "extra spell",
        "featsextra",
        "metamagic extended",
        "wild magic d100",
        "expansion",
        "additional spell",
        "new race",
    ),
    ModCategory.VISUAL: (
        "hair",
        "cosmetic",
        "appearance",
        "portrait",
        "eyes",
        "skin",
        "tattoo",
        "body mod",
        "head mod",
        "dye",
        "visual overhaul",
        "reshade",
    ),
    ModCategory.LATE_LOADER: (
        "compatibility framework",
        "spell list combiner",
        "compat patch",
        "compatibility patch",
        " cf ",
        "patches for ",
    ),
}

_PATCH_SUFFIXES = (" patch", " patches")
_PATCH_MIN_NAME_LEN = 10

# Well-known mods whose tier is fixed regardless of tags or name.
_KNOWN_MODS: dict[str, ModCategory] = {
    "755a8a72-407f-4f0d-9a33-274ac0f5b45d": ModCategory.FRAMEWORK,  # Mod Configuration Menu
    "67bbb2ec-4900-4aaf-af8d-e2d3fbc47bd8": ModCategory.LATE_LOADER,  # Compatibility Framework
}


def infer_from_tags(tags: Iterable[str]) -> ModCategory | None:
    lowered = [t.lower() for t in tags]
    for tier in ModCategory:
        contains, exact = _TAG_RULES[tier]
        for tag in lowered:
            if tag in exact or any(word in tag for word in contains):
                return tier
    return None


def infer_from_name(name: str) -> ModCategory | None:
    lowered = name.lower()
    for tier in ModCategory:
        if any(phrase in lowered for phrase in _NAME_PHRASES[tier]):
            return tier
        if (
            tier is ModCategory.LATE_LOADER
            and lowered.endswith(_PATCH_SUFFIXES)
            and len(lowered) > _PATCH_MIN_NAME_LEN
        ):
            return tier
    return None


def infer_category(mod: ModRecord) -> ModCategory | None:
    """Infer a tier from the known-mods table, then tags, then the display name."""
    return (
        _KNOWN_MODS.get(mod.id.lower())
        or infer_from_tags(mod.tags)
        or infer_from_name(mod.display_name)
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class CategoryInferenceService:
    """Category inference backed by persisted user overrides."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _row(self, mod_id: str) -> CategoryOverride | None:
        return self._session.exec(
            select(CategoryOverride).where(CategoryOverride.mod_id == mod_id.lower())
        ).first()

    def get_override(self, mod_id: str) -> ModCategory | None:
        row = self._row(mod_id)
        return ModCategory(row.tier) if row else None

    def set_override(self, mod_id: str, category: ModCategory | None) -> None:
        """Persist *category* for *mod_id*; ``None`` clears the override."""
        if category is None:
            self.clear_override(mod_id)
            return
        row = self._row(mod_id)
        if row:
            row.tier = int(category)
        else:
            row = CategoryOverride(mod_id=mod_id.lower(), tier=int(category))
        self._session.add(row)
        self._session.commit()
        logger.info("Category override for %s set to %s", mod_id, category.label)

    def clear_override(self, mod_id: str) -> None:
        row = self._row(mod_id)
        if row:
            self._session.delete(row)
            self._session.commit()
            logger.info("Category override for %s cleared", mod_id)

    def all_overrides(self) -> dict[str, ModCategory]:
        rows = self._session.exec(select(CategoryOverride)).all()
        return {row.mod_id: ModCategory(row.tier) for row in rows}

    def infer(self, mod: ModRecord) -> ModCategory | None:
        override = self.get_override(mod.id)
        if override is not None:
            return override
        return infer_category(mod)

    def apply(self, mods: Iterable[ModRecord]) -> None:
        """Write the inferred category onto each record in place."""
        overrides = self.all_overrides()
        for mod in mods:
            mod.category = overrides.get(mod.id) or infer_category(mod)
