import pytest

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


class TestProbeExtension:
    def test_not_installed(self, game_dirs):
        status = probe_extension(game_dirs)
        assert status.installed is False
        assert status.deployed is False
        assert status.library_path is None

    def test_deployed(self, game_dirs):
        game_dirs.game_binary_dir.mkdir(parents=True)
        lib = game_dirs.game_binary_dir / game_dirs.extension_library_name
        lib.write_bytes(b"\x7fELF")
        (game_dirs.extension_data_dir / "logs").mkdir(parents=True)
        status = probe_extension(game_dirs)
        assert status.deployed is True
        assert status.installed is True
        assert status.library_path == lib
        assert status.logs_path == game_dirs.extension_data_dir / "logs"

    def test_installed_but_not_deployed(self, game_dirs):
        game_dirs.extension_data_dir.mkdir(parents=True)
        status = probe_extension(game_dirs)
        assert status.installed is True
        assert status.deployed is False


class TestHazards:
    def test_detect_and_delete(self, game_dirs):
        assert hazard_paths(game_dirs) == []
        game_dirs.hazard_dir.mkdir()
        (game_dirs.hazard_dir / "crash.txt").write_text("x")
        assert hazard_paths(game_dirs) == [game_dirs.hazard_dir]
        assert delete_hazard(game_dirs.hazard_dir, game_dirs) is True
        assert not game_dirs.hazard_dir.exists()
        assert delete_hazard(game_dirs.hazard_dir, game_dirs) is False

    def test_refuses_other_paths(self, game_dirs, tmp_path):
        with pytest.raises(ValueError, match="Not a known hazard"):
            delete_hazard(tmp_path, game_dirs)
        assert tmp_path.exists()


class TestPersistedFlags:
    def test_deployment_is_remembered_until_cleared(self, session, game_dirs):
        assert was_extension_deployed(session) is False
        game_dirs.game_binary_dir.mkdir(parents=True)
        (game_dirs.game_binary_dir / game_dirs.extension_library_name).write_bytes(b"")
        record_extension_status(session, probe_extension(game_dirs))
        assert was_extension_deployed(session) is True

        (game_dirs.game_binary_dir / game_dirs.extension_library_name).unlink()
        record_extension_status(session, probe_extension(game_dirs))
        assert was_extension_deployed(session) is True

        clear_extension_flag(session)
        assert was_extension_deployed(session) is False

    def test_external_mutation(self, session, game_dirs):
        path = game_dirs.modsettings_path
        path.parent.mkdir(parents=True)
        path.write_bytes(b"<save/>")
        assert load_order_changed_externally(session, path) is False

        assert record_load_order_fingerprint(session, path) is not None
        assert load_order_changed_externally(session, path) is False

        path.write_bytes(b"<save><changed/></save>")
        assert load_order_changed_externally(session, path) is True
