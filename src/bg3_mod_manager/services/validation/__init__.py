"""Validation core: checks over the active/inactive mod lists."""

from bg3_mod_manager.services.validation.checks import get_all_checks, register_check
from bg3_mod_manager.services.validation.engine import blocks_save, validate, validate_for_save

__all__ = ["blocks_save", "get_all_checks", "register_check", "validate", "validate_for_save"]
