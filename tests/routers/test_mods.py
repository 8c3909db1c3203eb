import json

from bg3_mod_manager.constants import GUSTAV_DEV_UUID
from bg3_mod_manager.routers import mods as mods_router

ALPHA = "11111111-1111-1111-1111-111111111111"
BETA = "22222222-2222-2222-2222-222222222222"


def _install(game_dirs, builders):
    mods = game_dirs.mods_dir
    builders.build_pak(
        mods / "Alpha.pak",
        {"Mods/Alpha/meta.lsx": builders.meta_lsx(ALPHA, "Alpha", dependencies=[(BETA, "Beta")])},
    )
    builders.build_pak(mods / "Beta.pak", {"Mods/Beta/meta.lsx": builders.meta_lsx(BETA, "Beta")})
    game_dirs.modsettings_path.parent.mkdir(parents=True, exist_ok=True)
    game_dirs.modsettings_path.write_bytes(builders.modsettings_lsx([(ALPHA, "Alpha")]))


class TestState:
    def test_empty_state_has_base_module(self, client):
        r = client.get("/api/v1/mods/")
        assert r.status_code == 200
        data = r.json()
        assert data["load_order"] == [GUSTAV_DEV_UUID]
        assert data["inactive"] == []

    def test_unknown_mod(self, client):
        assert client.get("/api/v1/mods/nope").status_code == 404


class TestRefresh:
    def test_discovers_and_applies_modsettings(self, client, game_dirs, builders):
        _install(game_dirs, builders)
        r = client.post("/api/v1/mods/refresh")
        assert r.status_code == 200
        data = r.json()
        assert data["discovered"] == 2
        assert data["state"]["load_order"] == [GUSTAV_DEV_UUID, ALPHA]
        assert [m["id"] for m in data["state"]["inactive"]] == [BETA]

    def test_empty_mods_folder(self, client):
        r = client.post("/api/v1/mods/refresh")
        assert r.status_code == 200
        assert r.json()["discovered"] == 0


class TestMutations:
    def test_activate_move_deactivate(self, client, game_dirs, builders):
        _install(game_dirs, builders)
        client.post("/api/v1/mods/refresh")

        r = client.post(f"/api/v1/mods/{BETA}/activate")
        assert r.status_code == 200
        assert r.json()["load_order"] == [GUSTAV_DEV_UUID, ALPHA, BETA]

        r = client.post(f"/api/v1/mods/{BETA}/move", json={"index": 0})
        assert r.json()["load_order"] == [GUSTAV_DEV_UUID, BETA, ALPHA]

        r = client.post(f"/api/v1/mods/{BETA}/move-to-bottom")
        assert r.json()["load_order"] == [GUSTAV_DEV_UUID, ALPHA, BETA]

        r = client.post(f"/api/v1/mods/{BETA}/move-to-top")
        assert r.json()["load_order"] == [GUSTAV_DEV_UUID, BETA, ALPHA]

        r = client.post(f"/api/v1/mods/{ALPHA}/deactivate")
        assert r.json()["load_order"] == [GUSTAV_DEV_UUID, BETA]

    def test_activate_dependencies(self, client, game_dirs, builders):
        _install(game_dirs, builders)
        client.post("/api/v1/mods/refresh")
        r = client.post(f"/api/v1/mods/{ALPHA}/activate-dependencies")
        assert r.status_code == 200
        assert r.json()["load_order"] == [GUSTAV_DEV_UUID, BETA, ALPHA]

    def test_base_module_is_protected(self, client):
        r = client.post(f"/api/v1/mods/{GUSTAV_DEV_UUID}/deactivate")
        assert r.status_code == 400

    def test_unknown_mod_is_404(self, client):
        assert client.post("/api/v1/mods/nope/activate").status_code == 404
        assert client.post("/api/v1/mods/nope/move", json={"index": 1}).status_code == 404


class TestCategory:
    def test_set_and_clear(self, client, game_dirs, builders):
        _install(game_dirs, builders)
        client.post("/api/v1/mods/refresh")
        r = client.put(f"/api/v1/mods/{ALPHA}/category", json={"category": 1})
        assert r.status_code == 200
        assert r.json()["category"] == 1

        r = client.put(f"/api/v1/mods/{ALPHA}/category", json={"category": None})
        assert r.json()["category"] is None

    def test_invalid_tier(self, client, game_dirs, builders):
        _install(game_dirs, builders)
        client.post("/api/v1/mods/refresh")
        r = client.put(f"/api/v1/mods/{ALPHA}/category", json={"category": 9})
        assert r.status_code == 422


def _events(body: str) -> list[dict]:
    return [json.loads(line[len("data: ") :]) for line in body.splitlines() if line.startswith("data: ")]


class TestRefreshStream:
    def test_streams_progress_then_done(self, client, game_dirs, builders, mod_set):
        _install(game_dirs, builders)
        r = client.post("/api/v1/mods/refresh-stream")
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/event-stream")
        events = _events(r.text)
        assert events[0]["phase"] == "discover"
        assert [e["percent"] for e in events if e["message"].startswith("Read:")] == [50, 100]
        assert events[-1]["phase"] == "done"
        assert events[-1]["message"] == "Done: 2 mods, 0 failed"
        assert mod_set.load_order_ids() == [GUSTAV_DEV_UUID, ALPHA]

    def test_failure_is_reported_as_event(self, client, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(mods_router, "discover_mods", boom)
        events = _events(client.post("/api/v1/mods/refresh-stream").text)
        assert events == [{"phase": "error", "message": "Refresh failed unexpectedly", "percent": 0}]


class TestRescan:
    def test_cancelled_scan_leaves_mod_set_alone(self, mod_set, game_dirs, builders):
        _install(game_dirs, builders)
        result = mods_router.rescan(mod_set, should_cancel=lambda: True)
        assert result.cancelled
        assert result.discovered == 0
        assert mod_set.load_order_ids() == [GUSTAV_DEV_UUID]

    def test_progress_is_reported(self, mod_set, game_dirs, builders):
        _install(game_dirs, builders)
        seen = []
        mods_router.rescan(mod_set, on_progress=lambda phase, msg, pct: seen.append(pct))
        assert seen[0] == 0
        assert seen[-1] == 100

    def test_cancel_endpoint_sets_flag(self, client):
        assert client.post("/api/v1/mods/refresh/cancel").json() == {"cancelled": True}
        assert mods_router._cancel_refresh.is_set()
        client.post("/api/v1/mods/refresh")
        assert not mods_router._cancel_refresh.is_set()
