from pathlib import Path

import pytest

from bg3_mod_manager.constants import GUSTAV_DEV_UUID
from bg3_mod_manager.schemas.mod import MetadataSource, gustav_dev
from bg3_mod_manager.schemas.warning import Severity, WarningCategory
from bg3_mod_manager.services.environment import ExtensionStatus
from bg3_mod_manager.services.validation import (
    blocks_save,
    get_all_checks,
    register_check,
    validate,
    validate_for_save,
)
from bg3_mod_manager.services.validation import checks as checks_mod

DEPLOYED = ExtensionStatus(installed=True, deployed=True)
MISSING = ExtensionStatus(installed=False, deployed=False)


def by_category(warnings, category):
    return [w for w in warnings if w.category == category]


class TestMissingDependency:
    def test_absent_dependency(self, builders):
        a = builders.make_mod("a", "Alpha", deps=["b"])
        warnings = validate([a], [])
        assert len(warnings) == 1
        w = warnings[0]
        assert w.category is WarningCategory.missing_dependency
        assert w.severity is Severity.warning
        assert w.affected_ids == ["a"]
        assert w.suggested_action.kind == "install"

    def test_inactive_dependency_suggests_activation(self, builders):
        a = builders.make_mod("a", deps=["b"])
        b = builders.make_mod("b", "Beta")
        [w] = by_category(validate([a], [b]), WarningCategory.missing_dependency)
        assert "Beta" in w.message
        assert w.suggested_action.kind == "activate"
        assert w.suggested_action.mod_id == "b"

    def test_base_module_dependency_is_ignored(self, builders):
        a = builders.make_mod("a", deps=[GUSTAV_DEV_UUID])
        assert validate([a], []) == []

    def test_self_dependency_is_ignored(self, builders):
        a = builders.make_mod("a", deps=["a"])
        assert by_category(validate([a], []), WarningCategory.missing_dependency) == []


class TestWrongOrder:
    def test_dependency_after_dependent(self, builders):
        a = builders.make_mod("a", deps=["b"])
        b = builders.make_mod("b")
        warnings = validate([gustav_dev(), a, b], [])
        assert len(warnings) == 1
        w = warnings[0]
        assert w.category is WarningCategory.wrong_order
        assert set(w.affected_ids) == {"a", "b"}
        assert w.suggested_action.kind == "reorder"

    def test_correct_order_is_clean(self, builders):
        a = builders.make_mod("a", deps=["b"])
        b = builders.make_mod("b")
        assert validate([b, a], []) == []


class TestCircularDependency:
    def test_cycle_is_critical(self, builders):
        a = builders.make_mod("a", deps=["b"])
        b = builders.make_mod("b", deps=["a"])
        [w] = by_category(validate([a, b], []), WarningCategory.circular_dependency)
        assert w.severity is Severity.critical
        assert sorted(w.affected_ids) == ["a", "b"]


class TestDuplicateId:
    def test_two_active_copies_are_critical(self, builders):
        first = builders.make_mod("a", source_archive_path="/m/A1.pak")
        second = builders.make_mod("a", source_archive_path="/m/A2.pak")
        [w] = by_category(validate([first, second], []), WarningCategory.duplicate_id)
        assert w.severity is Severity.critical
        assert "A1.pak" in w.detail and "A2.pak" in w.detail

    def test_inactive_copy_is_a_warning(self, builders):
        first = builders.make_mod("a")
        second = builders.make_mod("a")
        [w] = by_category(validate([first], [second]), WarningCategory.duplicate_id)
        assert w.severity is Severity.warning


class TestConflict:
    def test_same_warning_whichever_side_declares(self, builders):
        a1 = builders.make_mod("a", conflicts=["b"])
        b1 = builders.make_mod("b")
        a2 = builders.make_mod("a")
        b2 = builders.make_mod("b", conflicts=["a"])
        w1 = by_category(validate([a1, b1], []), WarningCategory.conflict)
        w2 = by_category(validate([a2, b2], []), WarningCategory.conflict)
        assert len(w1) == len(w2) == 1
        assert w1[0].affected_ids == w2[0].affected_ids == ["a", "b"]
        assert w1[0].suggested_action == w2[0].suggested_action

    def test_both_sides_declaring_reports_once(self, builders):
        a = builders.make_mod("a", conflicts=["b"])
        b = builders.make_mod("b", conflicts=["a"])
        assert len(by_category(validate([a, b], []), WarningCategory.conflict)) == 1

    def test_inactive_conflict_is_ignored(self, builders):
        a = builders.make_mod("a", conflicts=["b"])
        b = builders.make_mod("b")
        assert validate([a], [b]) == []


class TestOrphanedAndMetadata:
    def test_imported_placeholder_is_critical(self, builders):
        ghost = builders.make_mod("g", "Ghost", source=MetadataSource.imported)
        warnings = validate([ghost], [])
        [w] = by_category(warnings, WarningCategory.orphaned_entry)
        assert w.severity is Severity.critical
        assert w.suggested_action.kind == "deactivate"
        assert blocks_save(warnings)

    def test_filename_only_mod_is_info(self, builders):
        plain = builders.make_mod("p", source=MetadataSource.filename)
        [w] = validate([], [plain])
        assert w.category is WarningCategory.no_metadata
        assert w.severity is Severity.info


class TestExtensionRequired:
    def test_single_aggregated_warning(self, builders):
        a = builders.make_mod("a", "Alpha", requires_runtime_extension=True)
        b = builders.make_mod("b", "Beta", requires_runtime_extension=True)
        [w] = validate([a, b], [], MISSING)
        assert w.category is WarningCategory.extension_required
        assert w.affected_ids == ["a", "b"]
        assert "Alpha" in w.detail and "Beta" in w.detail

    def test_deployed_is_clean(self, builders):
        a = builders.make_mod("a", requires_runtime_extension=True)
        assert validate([a], [], DEPLOYED, True) == []

    def test_inactive_mods_do_not_count(self, builders):
        a = builders.make_mod("a", requires_runtime_extension=True)
        assert validate([], [a], MISSING) == []

    def test_previously_deployed_extension_removed(self):
        [w] = validate([], [], MISSING, True)
        assert w.category is WarningCategory.extension_required
        assert w.suggested_action.kind == "view-extension-status"


class TestEnvironment:
    def test_hazard_and_external_mutation(self):
        warnings = validate([], [], hazard_paths=["/x/ModCrashSanityCheck"], external_mutation=True)
        assert [w.category for w in warnings] == [
            WarningCategory.external_mutation,
            WarningCategory.environment_hazard,
        ]
        hazard = warnings[1]
        assert hazard.suggested_action.kind == "delete"
        assert hazard.suggested_action.path == str(Path("/x/ModCrashSanityCheck"))


class TestEngine:
    def test_sorted_by_severity(self, builders):
        plain = builders.make_mod("p", source=MetadataSource.filename)
        a = builders.make_mod("a", deps=["missing"])
        ghost = builders.make_mod("g", source=MetadataSource.imported)
        warnings = validate([a, ghost], [plain])
        assert [w.severity for w in warnings] == [Severity.critical, Severity.warning, Severity.info]

    def test_validate_for_save_drops_info(self, builders):
        plain = builders.make_mod("p", source=MetadataSource.filename)
        assert validate_for_save([], [plain]) == []
        assert not blocks_save([])

    def test_failing_check_is_logged_not_raised(self, builders, monkeypatch, caplog):
        class Exploding:
            category = WarningCategory.conflict

            def check(self, ctx):
                raise RuntimeError("boom")

        monkeypatch.setattr(checks_mod, "_CHECKS", [*checks_mod._CHECKS])
        register_check(Exploding)
        a = builders.make_mod("a", deps=["b"])
        warnings = validate([a], [])
        assert len(warnings) == 1
        assert "boom" in caplog.text

    def test_registry_holds_every_category(self):
        categories = {c.category for c in get_all_checks()}
        assert categories == set(WarningCategory)

    @pytest.mark.parametrize("active_first", [True, False])
    def test_is_pure(self, builders, active_first):
        a = builders.make_mod("a", deps=["b"])
        b = builders.make_mod("b")
        order = [a, b] if active_first else [b, a]
        assert validate(order, []) == validate(list(order), [])
